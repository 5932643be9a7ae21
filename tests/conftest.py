"""Shared fixtures: throwaway signing key, SQLite store and a fake gateway.

Environment is set before any `paydash` import so the settings singleton and
the engine pick it up.
"""

import json
import os
import tempfile
from itertools import count
from pathlib import Path
from urllib.parse import parse_qs

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jwt.utils import base64url_decode, base64url_encode

_TMP = Path(tempfile.mkdtemp(prefix="paydash-tests-"))
_SIGNING_KEY = ec.generate_private_key(ec.SECP521R1())
_KEY_PATH = _TMP / "ec512-private-key.pem"
_KEY_PATH.write_bytes(
    _SIGNING_KEY.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
)

os.environ.update(
    {
        "SERVICE_NAME": "payments-api-test",
        "DATABASE_DSN": f"sqlite:///{_TMP / 'paydash.db'}",
        "TRACING_ENABLED": "false",
        "GATEWAY_AUTH_URL": "https://auth.gateway.test",
        "GATEWAY_API_URL": "https://api.gateway.test",
        "GATEWAY_CLIENT_ID": "client-id",
        "GATEWAY_CLIENT_SECRET": "client-secret",
        "SIGNING_KEY_ID": "test-kid",
        "SIGNING_PRIVATE_KEY_PATH": str(_KEY_PATH),
        "HOSTED_PAGE_URL": "https://hpp.gateway.test/payments",
        "HOSTED_PAGE_RETURN_URI": "http://localhost:5173/dashboard",
        "RECONCILE_DELAY_SECONDS": "0",
        "AUTH_DOMAIN": "idp.test",
        "AUTH_AUDIENCE": "paydash-api",
    }
)

from paydash.gateway.signer import RequestSigner, canonical_signing_payload  # noqa: E402


FOUR_HOURS = 4 * 60 * 60


def verify_signature(request: httpx.Request, public_key) -> bool:
    """Gateway-side check of a detached `Tl-Signature` header."""

    signature = request.headers.get("Tl-Signature")
    if not signature:
        return False
    header_segment, payload_segment, signature_segment = signature.split(".")
    if payload_segment:
        return False
    header = json.loads(base64url_decode(header_segment))
    names = [name for name in header.get("tl_headers", "").split(",") if name]
    signed_headers = [(name, request.headers[name]) for name in names]
    payload = canonical_signing_payload(request.method, request.url.path, signed_headers, request.content)
    token = f"{header_segment}.{base64url_encode(payload).decode()}.{signature_segment}"
    try:
        jwt.api_jws.decode(token, public_key, algorithms=["ES512"])
    except jwt.PyJWTError:
        return False
    return True


class FakeGateway:
    """In-memory gateway + token endpoint served through `httpx.MockTransport`.

    Creation is deduplicated by idempotency key. `statuses[payment_id]` scripts
    what successive GETs report (the last entry repeats). `outages` is a queue
    of responses or exceptions returned instead of the next API call.
    """

    def __init__(self, public_key, token_lifetime: int = FOUR_HOURS) -> None:
        self.public_key = public_key
        self.token_lifetime = token_lifetime
        self.token_status = 200
        self.token_calls = 0
        self.token_forms: list[dict] = []
        self.create_calls = 0
        self.get_calls = 0
        self.created_status = "authorization_required"
        self.resources: dict[str, dict] = {}
        self.by_idempotency_key: dict[str, str] = {}
        self.statuses: dict[str, list[dict]] = {}
        self.outages: list = []
        self.seen_signatures: list[str] = []
        self._ids = count(1)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "auth.gateway.test":
            return self._token(request)
        if self.outages:
            outage = self.outages.pop(0)
            if isinstance(outage, Exception):
                raise outage
            return outage
        if not request.headers.get("Authorization", "").startswith("Bearer token-"):
            return httpx.Response(401, json={"title": "Unauthorized"})
        path = request.url.path
        if request.method == "POST" and path == "/v3/payments":
            return self._create(request)
        if request.method == "GET" and path.startswith("/v3/payments/"):
            return self._get(path.rsplit("/", 1)[1])
        if request.method == "POST" and path == "/test-signature":
            return httpx.Response(204 if verify_signature(request, self.public_key) else 401)
        return httpx.Response(404, json={"title": "Not Found"})

    def _token(self, request: httpx.Request) -> httpx.Response:
        self.token_calls += 1
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.token_forms.append(form)
        if self.token_status != 200:
            return httpx.Response(self.token_status, json={"error": "invalid_client"})
        return httpx.Response(
            200,
            json={
                "access_token": f"token-{self.token_calls}",
                "expires_in": self.token_lifetime,
                "token_type": "Bearer",
            },
        )

    def _create(self, request: httpx.Request) -> httpx.Response:
        self.create_calls += 1
        if not verify_signature(request, self.public_key):
            return httpx.Response(401, json={"title": "Invalid Signature"})
        self.seen_signatures.append(request.headers["Tl-Signature"])
        key = request.headers["Idempotency-Key"]
        if key in self.by_idempotency_key:
            return httpx.Response(201, json=self.resources[self.by_idempotency_key[key]])
        body = json.loads(request.content)
        payment_id = f"pay-{next(self._ids)}"
        resource = {
            "id": payment_id,
            "status": self.created_status,
            "amount_in_minor": body["amount_in_minor"],
            "currency": body["currency"],
            "resource_token": "abc",
            "user": {"id": body["user"]["id"]},
        }
        self.resources[payment_id] = resource
        self.by_idempotency_key[key] = payment_id
        return httpx.Response(201, json=resource)

    def _get(self, payment_id: str) -> httpx.Response:
        self.get_calls += 1
        resource = self.resources.get(payment_id)
        if resource is None:
            return httpx.Response(404, json={"title": "Payment Not Found"})
        script = self.statuses.get(payment_id)
        if script:
            update = script.pop(0) if len(script) > 1 else script[0]
            resource.update(update)
        return httpx.Response(200, json={k: v for k, v in resource.items() if k != "resource_token"})

    def add_payment(self, payment_id: str, status: str, **extra) -> None:
        self.resources[payment_id] = {
            "id": payment_id,
            "status": status,
            "amount_in_minor": 5000,
            "currency": "GBP",
            **extra,
        }


@pytest.fixture
def signing_key():
    return _SIGNING_KEY


@pytest.fixture
def signer():
    return RequestSigner.from_pem_file("test-kid", _KEY_PATH)


@pytest.fixture
def fake_gateway():
    return FakeGateway(_SIGNING_KEY.public_key())


@pytest.fixture
def token_leases(fake_gateway):
    from paydash.gateway.token_lease import TokenLeaseManager

    return TokenLeaseManager(
        "https://auth.gateway.test",
        "client-id",
        "client-secret",
        transport=fake_gateway.transport(),
    )


@pytest.fixture
def gateway_client(signer, token_leases, fake_gateway):
    from paydash.gateway.client import GatewayClient

    return GatewayClient(
        "https://api.gateway.test",
        signer,
        token_leases,
        hosted_page_url="https://hpp.gateway.test/payments",
        return_uri="http://localhost:5173/dashboard",
        transport=fake_gateway.transport(),
    )


@pytest.fixture
def db_session_factory():
    from paydash.common.db import Base, SessionLocal, engine
    from paydash.services.payments import repository
    from paydash.services.payments.models import PaymentRecord  # noqa: F401

    Base.metadata.create_all(engine)
    yield SessionLocal
    with SessionLocal() as db:
        repository.delete_all_payments(db)
        db.commit()
