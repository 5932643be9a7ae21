"""Authoritative operations against the remote payment gateway.

Neither operation persists anything; callers own persistence.
"""

import json
import time
from typing import Any
from uuid import uuid4

import httpx
from pydantic import ValidationError

from paydash.common.config import settings
from paydash.common.logging import logger
from paydash.common.metrics import gateway_request_duration_seconds, gateway_requests_total
from paydash.common.state_machine import map_gateway_status
from paydash.common.tracing import tracer
from paydash.gateway.errors import (
    GatewayRejected,
    GatewayResponseInvalid,
    GatewayUnavailable,
)
from paydash.gateway.schemas import (
    CreatePaymentRequest,
    GatewayPayment,
    PaymentIntent,
    build_hosted_authorization_link,
)
from paydash.gateway.signer import RequestSigner, SignedRequest
from paydash.gateway.token_lease import TokenLeaseManager


PAYMENTS_PATH = "/v3/payments"
TEST_SIGNATURE_PATH = "/test-signature"


def encode_body(body: dict[str, Any]) -> bytes:
    """Serialize once; the same bytes are signed and sent."""

    return json.dumps(body, separators=(",", ":")).encode("utf-8")


def to_intent(resource: GatewayPayment, hosted_authorization_link: str | None = None) -> PaymentIntent:
    """Map a gateway resource to a `PaymentIntent`, status passed through verbatim."""

    try:
        status = map_gateway_status(resource.status)
    except ValueError as exc:
        raise GatewayResponseInvalid(f"unknown gateway status {resource.status!r}") from exc
    return PaymentIntent(
        payment_id=resource.id,
        amount_in_minor=resource.amount_in_minor,
        currency=resource.currency,
        status=status,
        hosted_authorization_link=hosted_authorization_link,
        failure_reason=resource.failure_reason,
        failure_stage=resource.failure_stage,
        gateway_data=resource.model_dump(exclude_none=True, exclude={"resource_token"}),
    )


class GatewayClient:
    """Composes signer + token leases to create and fetch payment resources."""

    def __init__(
        self,
        api_url: str,
        signer: RequestSigner,
        token_leases: TokenLeaseManager,
        hosted_page_url: str,
        return_uri: str,
        timeout_seconds: float = 10.0,
        connect_retries: int = 0,
        transport: httpx.AsyncBaseTransport | None = None,
        service_name: str | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.signer = signer
        self.token_leases = token_leases
        self.hosted_page_url = hosted_page_url
        self.return_uri = return_uri
        self.timeout_seconds = timeout_seconds
        self.connect_retries = connect_retries
        self.transport = transport
        self.service_name = service_name or settings.service_name

    def build_create_body(self, req: CreatePaymentRequest) -> dict[str, Any]:
        return {
            "amount_in_minor": req.amount_in_minor,
            "currency": req.currency.upper(),
            "payment_method": {
                "type": "bank_transfer",
                "provider_selection": {"type": "user_selected"},
                "beneficiary": {
                    "type": "external_account",
                    "account_holder_name": settings.beneficiary_name,
                    "account_identifier": {
                        "type": "sort_code_account_number",
                        "sort_code": settings.beneficiary_sort_code,
                        "account_number": settings.beneficiary_account_number,
                    },
                    "reference": req.reference,
                },
            },
            "user": {
                "id": str(uuid4()),
                "name": req.payer_name,
                "email": req.payer_email,
            },
        }

    async def _send(
        self,
        operation: str,
        method: str,
        path: str,
        signed: SignedRequest | None = None,
    ) -> httpx.Response:
        """Issue one bearer-authenticated call and classify transport/5xx/4xx failures."""

        token = await self.token_leases.acquire()
        request_headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        body = None
        idempotency_key = None
        if signed is not None:
            body = signed.body
            idempotency_key = signed.idempotency_key
            request_headers["Content-Type"] = "application/json"
            request_headers.update(signed.headers())

        # Connection-level retries resend the already-built request, idempotency key included.
        transport = self.transport or httpx.AsyncHTTPTransport(retries=self.connect_retries)
        start = time.perf_counter()
        outcome = "ok"
        try:
            async with httpx.AsyncClient(base_url=self.api_url, timeout=self.timeout_seconds, transport=transport) as client:
                resp = await client.request(method, path, content=body, headers=request_headers)
        except httpx.HTTPError as exc:
            outcome = "unavailable"
            logger.error("gateway_unreachable operation=%s error=%s", operation, exc)
            raise GatewayUnavailable(f"gateway unreachable: {exc}", idempotency_key=idempotency_key) from exc
        finally:
            gateway_request_duration_seconds.labels(service=self.service_name, operation=operation).observe(
                max(0.0, time.perf_counter() - start)
            )

        try:
            if resp.status_code >= 500:
                outcome = "unavailable"
                logger.error("gateway_unavailable operation=%s status_code=%s", operation, resp.status_code)
                raise GatewayUnavailable(
                    f"gateway returned {resp.status_code}",
                    status_code=resp.status_code,
                    idempotency_key=idempotency_key,
                )
            if resp.status_code >= 400:
                outcome = "rejected"
                title, detail = _problem_details(resp)
                if resp.status_code == 401:
                    # Lease might have been revoked upstream; next acquire exchanges again.
                    self.token_leases.invalidate()
                logger.warning(
                    "gateway_rejected operation=%s status_code=%s title=%s",
                    operation,
                    resp.status_code,
                    title,
                )
                raise GatewayRejected(resp.status_code, title, detail)
        finally:
            gateway_requests_total.labels(service=self.service_name, operation=operation, outcome=outcome).inc()
        return resp

    def _parse(self, resp: httpx.Response) -> GatewayPayment:
        try:
            return GatewayPayment.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise GatewayResponseInvalid(f"gateway payment response is malformed: {exc}") from exc

    async def create_payment(self, req: CreatePaymentRequest, idempotency_key: str | None = None) -> PaymentIntent:
        """Create one payment resource.

        One idempotency key is generated per logical creation (or supplied by a
        caller retrying after `GatewayUnavailable`) and is part of the signed
        content.
        """

        key = idempotency_key or str(uuid4())
        body = encode_body(self.build_create_body(req))
        with tracer.start_as_current_span("gateway.create_payment"):
            signed = self.signer.sign_request("POST", PAYMENTS_PATH, key, body)
            resp = await self._send("create_payment", "POST", PAYMENTS_PATH, signed=signed)
        resource = self._parse(resp)
        link = None
        if resource.resource_token:
            link = build_hosted_authorization_link(
                self.hosted_page_url, resource.id, resource.resource_token, self.return_uri
            )
        intent = to_intent(resource, hosted_authorization_link=link)
        if intent.amount_in_minor is None:
            intent.amount_in_minor = req.amount_in_minor
        if intent.currency is None:
            intent.currency = req.currency.upper()
        intent.reference = req.reference
        logger.info("gateway_payment_created payment_id=%s status=%s", intent.payment_id, intent.status.value)
        return intent

    async def get_payment(self, payment_id: str) -> PaymentIntent:
        """Fetch the gateway's current view of one payment (unsigned GET)."""

        with tracer.start_as_current_span("gateway.get_payment"):
            resp = await self._send("get_payment", "GET", f"{PAYMENTS_PATH}/{payment_id}")
        resource = self._parse(resp)
        return to_intent(resource)

    async def check_signature(self) -> bool:
        """Send a signed request to the gateway's signature test endpoint; True on 204."""

        body = encode_body({"test": "signature validation"})
        signed = self.signer.sign_request("POST", TEST_SIGNATURE_PATH, str(uuid4()), body)
        try:
            resp = await self._send("check_signature", "POST", TEST_SIGNATURE_PATH, signed=signed)
        except GatewayRejected as exc:
            logger.warning("signature_check_rejected status_code=%s title=%s", exc.status_code, exc.title)
            return False
        return resp.status_code == 204


def _problem_details(resp: httpx.Response) -> tuple[str, str | None]:
    """Extract RFC 7807 `title`/`detail` from an error body when present."""

    try:
        body = resp.json()
    except ValueError:
        return resp.reason_phrase or "error", None
    if not isinstance(body, dict):
        return resp.reason_phrase or "error", None
    return str(body.get("title") or resp.reason_phrase or "error"), body.get("detail")
