"""Ask a running service to validate request signing against the gateway."""

import argparse
import json

import httpx


def main() -> None:
    """CLI entrypoint; exits non-zero when the signature is rejected."""

    parser = argparse.ArgumentParser(description="Call the test-signature endpoint and print the result.")
    parser.add_argument("--api-url", default="http://localhost:8000")
    args = parser.parse_args()

    resp = httpx.get(f"{args.api_url}/api/payments/test-signature", timeout=15.0)
    resp.raise_for_status()
    body = resp.json()
    print(json.dumps(body, indent=2))
    if not body.get("valid"):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
