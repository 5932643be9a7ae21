"""Generate the EC P-521 key pair used to sign gateway requests.

Upload the public key to the gateway console and set SIGNING_KEY_ID to the
key id it returns.
"""

import argparse
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec


def main() -> None:
    """CLI entrypoint writing private + public PEM files."""

    parser = argparse.ArgumentParser(description="Generate an ES512 signing key pair.")
    parser.add_argument("--private-out", default="ec512-private-key.pem")
    parser.add_argument("--public-out", default="ec512-public-key.pem")
    parser.add_argument("--force", action="store_true", help="overwrite existing files")
    args = parser.parse_args()

    private_path = Path(args.private_out)
    public_path = Path(args.public_out)
    if private_path.exists() and not args.force:
        print(f"{private_path} already exists (use --force to overwrite)")
        raise SystemExit(1)

    key = ec.generate_private_key(ec.SECP521R1())
    private_path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    private_path.chmod(0o600)
    public_path.write_bytes(
        key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )
    print(f"Wrote {private_path} and {public_path}")


if __name__ == "__main__":
    main()
