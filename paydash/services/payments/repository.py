"""Session-level helpers over `PaymentRecord`.

Helpers never commit; the caller owns the transaction.
"""

from datetime import datetime, timezone

from sqlalchemy import String, cast, delete, func, or_, select

from paydash.common.state_machine import PRE_AUTHORIZATION_STATUSES, PaymentStatus
from paydash.gateway.schemas import PaymentIntent
from paydash.services.payments.models import PaymentRecord


def as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on round-trip.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_intent(record: PaymentRecord) -> PaymentIntent:
    return PaymentIntent(
        payment_id=record.payment_id,
        amount_in_minor=record.amount_in_minor,
        currency=record.currency,
        reference=record.reference,
        status=PaymentStatus(record.status),
        hosted_authorization_link=record.hosted_authorization_link,
        failure_reason=record.failure_reason,
        failure_stage=record.failure_stage,
        created_at=as_utc(record.created_at),
        updated_at=as_utc(record.updated_at),
        gateway_data=record.gateway_data or {},
    )


def insert_payment(db, owner_id: str, intent: PaymentIntent) -> PaymentRecord:
    record = PaymentRecord(
        owner_id=owner_id,
        payment_id=intent.payment_id,
        amount_in_minor=intent.amount_in_minor,
        currency=intent.currency,
        reference=intent.reference,
        status=intent.status.value,
        hosted_authorization_link=intent.hosted_authorization_link,
        failure_reason=intent.failure_reason,
        failure_stage=intent.failure_stage,
        gateway_data=intent.gateway_data,
        created_at=intent.created_at,
        updated_at=intent.updated_at,
    )
    db.add(record)
    return record


def get_payment(db, owner_id: str, payment_id: str) -> PaymentRecord | None:
    return db.get(PaymentRecord, (owner_id, payment_id))


def list_payments(db, owner_id: str, status: PaymentStatus | None = None) -> list[PaymentRecord]:
    stmt = select(PaymentRecord).where(PaymentRecord.owner_id == owner_id)
    if status is not None:
        stmt = stmt.where(PaymentRecord.status == status.value)
    return list(db.execute(stmt.order_by(PaymentRecord.created_at.desc())).scalars())


def list_created_since(db, owner_id: str, since: datetime) -> list[PaymentRecord]:
    stmt = (
        select(PaymentRecord)
        .where(PaymentRecord.owner_id == owner_id, PaymentRecord.created_at >= since)
        .order_by(PaymentRecord.created_at)
    )
    return list(db.execute(stmt).scalars())


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_payments(db, owner_id: str, term: str) -> list[PaymentRecord]:
    """Case-insensitive substring match on reference, payment id or amount."""

    pattern = f"%{escape_like(term.lower())}%"
    stmt = (
        select(PaymentRecord)
        .where(
            PaymentRecord.owner_id == owner_id,
            or_(
                func.lower(PaymentRecord.reference).like(pattern, escape="\\"),
                func.lower(PaymentRecord.payment_id).like(pattern, escape="\\"),
                cast(PaymentRecord.amount_in_minor, String).like(pattern, escape="\\"),
            ),
        )
        .order_by(PaymentRecord.created_at.desc())
    )
    return list(db.execute(stmt).scalars())


def apply_gateway_state(record: PaymentRecord, intent: PaymentIntent) -> bool:
    """Copy the gateway's view onto the record; return True if anything changed.

    `updated_at` moves only on a status or gateway-metadata change. The hosted
    link is dropped once the payment leaves the pre-authorization phase.
    """

    changed = False
    if record.status != intent.status.value:
        record.status = intent.status.value
        changed = True
    for field in ("failure_reason", "failure_stage"):
        value = getattr(intent, field)
        if getattr(record, field) != value:
            setattr(record, field, value)
            changed = True
    merged = {**(record.gateway_data or {}), **intent.gateway_data}
    if merged != (record.gateway_data or {}):
        record.gateway_data = merged
        changed = True
    if intent.status not in PRE_AUTHORIZATION_STATUSES and record.hosted_authorization_link is not None:
        record.hosted_authorization_link = None
        changed = True
    if changed:
        record.updated_at = datetime.now(timezone.utc)
    return changed


def delete_payment(db, owner_id: str, payment_id: str) -> None:
    db.execute(
        delete(PaymentRecord).where(PaymentRecord.owner_id == owner_id, PaymentRecord.payment_id == payment_id)
    )


def delete_all_payments(db) -> int:
    result = db.execute(delete(PaymentRecord))
    return result.rowcount
