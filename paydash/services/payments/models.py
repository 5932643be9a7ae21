"""Payment record store.

One composite-key table `(owner_id, payment_id)` with secondary indexes on
`(owner_id, status)` and `(owner_id, created_at)`.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from paydash.common.db import Base


class PaymentRecord(Base):
    """Persisted snapshot of one owner's payment intent."""

    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_owner_status", "owner_id", "status"),
        Index("ix_payments_owner_created_at", "owner_id", "created_at"),
    )

    owner_id: Mapped[str] = mapped_column(String, primary_key=True)
    payment_id: Mapped[str] = mapped_column(String, primary_key=True)
    amount_in_minor: Mapped[int] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(String(3))
    reference: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String)
    hosted_authorization_link: Mapped[str | None] = mapped_column(String, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    failure_stage: Mapped[str | None] = mapped_column(String, nullable=True)
    gateway_data: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
