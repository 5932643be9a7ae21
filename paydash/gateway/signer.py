"""Detached JWS request signing for mutating gateway calls.

The signed content is `"<METHOD> <path>\\n"`, one `"<Name>: <value>\\n"` line
per signed header, then the exact body bytes. The JWS header names the signed
headers in `tl_headers` and the payload segment is left empty in the output.
"""

from dataclasses import dataclass
from pathlib import Path

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from paydash.gateway.errors import SignatureFailure


SIGNATURE_HEADER = "Tl-Signature"
IDEMPOTENCY_HEADER = "Idempotency-Key"
SIGNING_ALGORITHM = "ES512"


@dataclass(frozen=True)
class SignedRequest:
    """One signed mutating call. Built once per logical request and resent as-is."""

    method: str
    path: str
    idempotency_key: str
    body: bytes
    signature: str

    def headers(self) -> dict[str, str]:
        return {IDEMPOTENCY_HEADER: self.idempotency_key, SIGNATURE_HEADER: self.signature}


def canonical_signing_payload(method: str, path: str, headers: list[tuple[str, str]], body: bytes) -> bytes:
    """Build the exact byte sequence that is signed.

    Method is upper-cased, path and header values are used as given, and the
    body is appended untouched.
    """

    lines = [f"{method.upper()} {path}\n"]
    for name, value in headers:
        lines.append(f"{name}: {value}\n")
    return "".join(lines).encode("utf-8") + body


class RequestSigner:
    """Produces `Tl-Signature` header values with a long-lived P-521 key."""

    def __init__(self, key_id: str, private_key: ec.EllipticCurvePrivateKey) -> None:
        if not key_id:
            raise SignatureFailure("signing key id is not configured")
        if not isinstance(private_key, ec.EllipticCurvePrivateKey) or not isinstance(
            private_key.curve, ec.SECP521R1
        ):
            raise SignatureFailure("signing key must be an EC P-521 private key")
        self.key_id = key_id
        self._private_key = private_key

    @classmethod
    def from_pem(cls, key_id: str, pem: bytes) -> "RequestSigner":
        try:
            private_key = serialization.load_pem_private_key(pem, password=None)
        except (ValueError, TypeError) as exc:
            raise SignatureFailure(f"signing key could not be parsed: {exc}") from exc
        return cls(key_id, private_key)

    @classmethod
    def from_pem_file(cls, key_id: str, path: str | Path) -> "RequestSigner":
        """Load the signing key at startup; any problem is fatal."""

        try:
            pem = Path(path).read_bytes()
        except OSError as exc:
            raise SignatureFailure(f"signing key not found at {path}: {exc}") from exc
        return cls.from_pem(key_id, pem)

    def sign(self, method: str, path: str, headers: list[tuple[str, str]], body: bytes) -> str:
        payload = canonical_signing_payload(method, path, headers, body)
        jws_headers = {
            "typ": None,
            "kid": self.key_id,
            "tl_version": "2",
            "tl_headers": ",".join(name for name, _ in headers),
        }
        try:
            token = jwt.api_jws.encode(payload, self._private_key, algorithm=SIGNING_ALGORITHM, headers=jws_headers)
        except (ValueError, TypeError, jwt.PyJWTError) as exc:
            raise SignatureFailure(f"request signing failed: {exc}") from exc
        header_segment, _, signature_segment = token.split(".")
        return f"{header_segment}..{signature_segment}"

    def sign_request(self, method: str, path: str, idempotency_key: str, body: bytes) -> SignedRequest:
        """Sign `body` for `method path` with the idempotency key as the one signed header."""

        signature = self.sign(method, path, [(IDEMPOTENCY_HEADER, idempotency_key)], body)
        return SignedRequest(
            method=method.upper(),
            path=path,
            idempotency_key=idempotency_key,
            body=body,
            signature=signature,
        )
