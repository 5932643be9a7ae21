"""Payment service: persistence around creation and reconciliation."""

import asyncio
from datetime import date, datetime, timezone

import pytest

from paydash.common.state_machine import PaymentStatus
from paydash.services.payments import repository
from paydash.services.payments.reconciliation import STILL_PROCESSING_MESSAGE
from paydash.services.payments.schemas import PaymentCreateRequest
from paydash.services.payments.service import (
    PaymentNotDeletable,
    PaymentNotFound,
    UnsupportedCurrency,
    build_payment_service,
)


OWNER = "auth0|owner-1"


@pytest.fixture
def service(db_session_factory, signer, fake_gateway):
    return build_payment_service(db_session_factory, signer=signer, transport=fake_gateway.transport())


def create(service, amount=5000, currency="GBP", reference="INV-1001", owner=OWNER):
    req = PaymentCreateRequest(amount_in_minor=amount, currency=currency, reference=reference)
    return asyncio.run(service.create_payment(owner, req))


def test_create_then_reconcile_end_to_end(service, fake_gateway):
    intent = create(service)
    assert intent.status is PaymentStatus.AWAITING_AUTHORIZATION
    assert intent.hosted_authorization_link

    fake_gateway.statuses[intent.payment_id] = [{"status": "executed"}]
    result = asyncio.run(service.reconcile_status(OWNER, intent.payment_id))

    assert result.intent.status is PaymentStatus.EXECUTED
    assert result.attempts == 1
    assert result.changed
    assert result.can_retry is False
    assert fake_gateway.get_calls == 1
    # Link stops working once the payment is past authorization.
    assert result.intent.hosted_authorization_link is None
    assert service.get_payment(OWNER, intent.payment_id).status is PaymentStatus.EXECUTED


def test_reconcile_exhaustion_keeps_record_and_sets_advisory(service, fake_gateway):
    intent = create(service)
    stored_before = service.get_payment(OWNER, intent.payment_id)

    result = asyncio.run(service.reconcile_status(OWNER, intent.payment_id))

    assert result.intent.status is PaymentStatus.AWAITING_AUTHORIZATION
    assert result.attempts == 4
    assert result.can_retry is True
    assert result.status_message == STILL_PROCESSING_MESSAGE
    assert result.intent.hosted_authorization_link == stored_before.hosted_authorization_link
    assert result.intent.updated_at == stored_before.updated_at


def test_reconcile_failure_records_reason(service, fake_gateway):
    intent = create(service)
    fake_gateway.statuses[intent.payment_id] = [
        {"status": "failed", "failure_reason": "user_canceled_at_provider", "failure_stage": "authorizing"}
    ]

    result = asyncio.run(service.reconcile_status(OWNER, intent.payment_id))

    assert result.intent.status is PaymentStatus.FAILED
    assert result.intent.failure_reason == "user_canceled_at_provider"
    assert result.intent.failure_stage == "authorizing"


def test_reconcile_cancelled_returns_stored_state(service, fake_gateway):
    intent = create(service)

    async def scenario():
        cancel = asyncio.Event()
        cancel.set()
        return await service.reconcile_status(OWNER, intent.payment_id, cancel=cancel)

    result = asyncio.run(scenario())

    assert result.attempts == 0
    assert result.can_retry is True
    assert result.intent.status is PaymentStatus.AWAITING_AUTHORIZATION
    assert fake_gateway.get_calls == 0


def test_reconcile_unknown_payment(service):
    with pytest.raises(PaymentNotFound):
        asyncio.run(service.reconcile_status(OWNER, "pay-missing"))


def test_records_are_scoped_to_owner(service):
    intent = create(service)

    with pytest.raises(PaymentNotFound):
        service.get_payment("auth0|someone-else", intent.payment_id)
    assert service.list_payments("auth0|someone-else") == []


def test_unsupported_currency_is_rejected_before_gateway_call(service, fake_gateway):
    with pytest.raises(UnsupportedCurrency):
        create(service, currency="USD")

    assert fake_gateway.create_calls == 0


def test_list_filters_by_status(service, fake_gateway):
    first = create(service, reference="A-1")
    create(service, reference="A-2")
    fake_gateway.statuses[first.payment_id] = [{"status": "authorized"}]
    asyncio.run(service.reconcile_status(OWNER, first.payment_id))

    authorized = service.list_payments(OWNER, PaymentStatus.AUTHORIZED)

    assert [p.payment_id for p in authorized] == [first.payment_id]
    assert len(service.list_payments(OWNER)) == 2


def test_search_matches_reference_amount_and_id(service):
    create(service, amount=1234, reference="RENT-MARCH")
    create(service, amount=999, reference="GYM")

    assert [p.reference for p in service.search_payments(OWNER, "rent")] == ["RENT-MARCH"]
    assert [p.reference for p in service.search_payments(OWNER, "123")] == ["RENT-MARCH"]
    assert len(service.search_payments(OWNER, "pay-")) == 2


def test_search_treats_wildcards_literally(service):
    create(service, reference="INV-1001")
    create(service, reference="INV_2024")
    create(service, reference="10%OFF")

    assert [p.reference for p in service.search_payments(OWNER, "_")] == ["INV_2024"]
    assert [p.reference for p in service.search_payments(OWNER, "%")] == ["10%OFF"]
    assert service.search_payments(OWNER, "\\") == []


def test_delete_is_gated_on_status(service, fake_gateway):
    unpaid = create(service, reference="UNPAID")
    paid = create(service, reference="PAID")
    fake_gateway.statuses[paid.payment_id] = [{"status": "executed"}]
    asyncio.run(service.reconcile_status(OWNER, paid.payment_id))

    service.delete_payment(OWNER, unpaid.payment_id)
    with pytest.raises(PaymentNotDeletable):
        service.delete_payment(OWNER, paid.payment_id)

    assert [p.payment_id for p in service.list_payments(OWNER)] == [paid.payment_id]


def test_stats_zero_fill_and_count_only_authorized_or_executed(service, fake_gateway, db_session_factory):
    counted = create(service, amount=5000, currency="GBP")
    create(service, amount=700, currency="EUR")
    fake_gateway.statuses[counted.payment_id] = [{"status": "executed"}]
    asyncio.run(service.reconcile_status(OWNER, counted.payment_id))
    with db_session_factory() as db:
        for record in repository.list_payments(db, OWNER):
            record.created_at = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
        db.commit()

    stats = service.payment_stats(OWNER, 3, today=date(2026, 10, 18))

    assert [d.date for d in stats] == ["2026-10-16", "2026-10-17", "2026-10-18"]
    assert stats[0].totals == {"GBP": 0, "EUR": 0}
    assert stats[1].totals == {"GBP": 5000, "EUR": 0}
    assert stats[1].count == 1
    assert stats[2].count == 0
