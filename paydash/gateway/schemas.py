"""Gateway resource shapes and the locally mirrored payment intent."""

from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from pydantic import BaseModel, Field

from paydash.common.state_machine import PaymentStatus


class CreatePaymentRequest(BaseModel):
    """What a caller asks the gateway client to create."""

    amount_in_minor: int = Field(gt=0)
    currency: str = Field(min_length=3, max_length=3)
    reference: str = Field(min_length=1, max_length=18)
    payer_name: str = "Test User"
    payer_email: str = "test@example.com"


class GatewayPayment(BaseModel):
    """Payment resource as returned by `POST /v3/payments` and `GET /v3/payments/{id}`."""

    id: str = Field(min_length=1)
    status: str
    amount_in_minor: int | None = None
    currency: str | None = None
    created_at: str | None = None
    resource_token: str | None = None
    failure_reason: str | None = None
    failure_stage: str | None = None
    model_config = {"extra": "allow"}


class PaymentIntent(BaseModel):
    """Local mirror of a gateway payment resource."""

    payment_id: str
    amount_in_minor: int | None = None
    currency: str | None = None
    reference: str | None = None
    status: PaymentStatus
    hosted_authorization_link: str | None = None
    failure_reason: str | None = None
    failure_stage: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    gateway_data: dict[str, Any] = Field(default_factory=dict)


def build_hosted_authorization_link(base_url: str, payment_id: str, resource_token: str, return_uri: str) -> str:
    """Hosted payment page URL; parameters go in the fragment, not the query."""

    return (
        f"{base_url}#payment_id={quote(payment_id, safe='')}"
        f"&resource_token={quote(resource_token, safe='')}"
        f"&return_uri={quote(return_uri, safe='')}"
    )
