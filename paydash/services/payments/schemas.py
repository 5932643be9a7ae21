"""API request/response schemas for payment endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from paydash.common.state_machine import PaymentStatus
from paydash.gateway.schemas import PaymentIntent


class PaymentCreateRequest(BaseModel):
    """Payment creation payload accepted from the dashboard."""

    amount_in_minor: int = Field(gt=0)
    currency: str = Field(min_length=3, max_length=3)
    reference: str = Field(min_length=1, max_length=18)


class PaymentResponse(BaseModel):
    """Payment snapshot returned to clients, with the reconciliation advisory."""

    payment_id: str
    amount_in_minor: int | None
    currency: str | None
    reference: str | None
    status: PaymentStatus
    hosted_authorization_link: str | None
    failure_reason: str | None
    failure_stage: str | None
    created_at: datetime
    updated_at: datetime
    status_message: str | None = None
    can_retry: bool = False

    @classmethod
    def from_intent(
        cls, intent: PaymentIntent, status_message: str | None = None, can_retry: bool = False
    ) -> "PaymentResponse":
        return cls(
            **intent.model_dump(exclude={"gateway_data"}),
            status_message=status_message,
            can_retry=can_retry,
        )


class PaymentStatsDay(BaseModel):
    """Per-day totals (minor units) of authorized/executed payments."""

    date: str
    totals: dict[str, int]
    count: int


class SignatureCheckResponse(BaseModel):
    valid: bool
    message: str
