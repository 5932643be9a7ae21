"""Payment use cases behind the HTTP routes.

Creation goes straight to the gateway and persists the returned snapshot.
Status only ever changes through `reconcile_status`.
"""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

import httpx

from paydash.common.config import CommonSettings, settings
from paydash.common.logging import logger, payment_id_ctx
from paydash.common.metrics import payments_created_total
from paydash.common.state_machine import DELETABLE_STATUSES, PaymentStatus, is_expected_transition
from paydash.gateway.client import GatewayClient
from paydash.gateway.schemas import CreatePaymentRequest, PaymentIntent
from paydash.gateway.signer import RequestSigner
from paydash.gateway.token_lease import TokenLeaseManager
from paydash.services.payments import repository
from paydash.services.payments.reconciliation import (
    STILL_PROCESSING_MESSAGE,
    PollScheduler,
    ReconciliationEngine,
)
from paydash.services.payments.schemas import PaymentCreateRequest, PaymentStatsDay


COUNTED_IN_STATS = frozenset({PaymentStatus.AUTHORIZED, PaymentStatus.EXECUTED})


class PaymentNotFound(LookupError):
    pass


class PaymentNotDeletable(ValueError):
    pass


class UnsupportedCurrency(ValueError):
    pass


@dataclass
class ReconciledPayment:
    """Persisted intent after reconciliation plus the advisory for the caller."""

    intent: PaymentIntent
    attempts: int
    changed: bool
    status_message: str | None = None
    can_retry: bool = False


class PaymentService:
    """Owns persistence around gateway calls for one owner's payments."""

    def __init__(
        self,
        session_factory,
        gateway: GatewayClient,
        engine: ReconciliationEngine,
        supported_currencies: list[str] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.engine = engine
        self.supported_currencies = [c.upper() for c in (supported_currencies or settings.supported_currencies)]

    async def create_payment(self, owner_id: str, req: PaymentCreateRequest) -> PaymentIntent:
        currency = req.currency.upper()
        if currency not in self.supported_currencies:
            raise UnsupportedCurrency(f"currency {currency} is not supported")

        intent = await self.gateway.create_payment(
            CreatePaymentRequest(amount_in_minor=req.amount_in_minor, currency=currency, reference=req.reference)
        )
        payment_id_ctx.set(intent.payment_id)
        with self.session_factory() as db:
            repository.insert_payment(db, owner_id, intent)
            db.commit()
        payments_created_total.labels(service=settings.service_name, currency=currency).inc()
        logger.info("payment_created amount_in_minor=%s currency=%s", intent.amount_in_minor, currency)
        return intent

    async def reconcile_status(
        self, owner_id: str, payment_id: str, cancel: asyncio.Event | None = None
    ) -> ReconciledPayment:
        """Poll the gateway from the stored status and persist any change."""

        payment_id_ctx.set(payment_id)
        with self.session_factory() as db:
            record = repository.get_payment(db, owner_id, payment_id)
            if record is None:
                raise PaymentNotFound(payment_id)
            last_known = PaymentStatus(record.status)

        outcome = await self.engine.reconcile(payment_id, last_known, cancel=cancel)

        with self.session_factory() as db:
            record = repository.get_payment(db, owner_id, payment_id)
            if record is None:
                raise PaymentNotFound(payment_id)
            if outcome.intent is not None:
                if outcome.changed and not is_expected_transition(last_known, outcome.intent.status):
                    logger.warning(
                        "unexpected_gateway_transition from=%s to=%s",
                        last_known.value,
                        outcome.intent.status.value,
                    )
                if repository.apply_gateway_state(record, outcome.intent):
                    db.commit()
            intent = repository.to_intent(record)

        if outcome.still_pending:
            return ReconciledPayment(
                intent=intent,
                attempts=outcome.attempts,
                changed=False,
                status_message=STILL_PROCESSING_MESSAGE,
                can_retry=True,
            )
        return ReconciledPayment(intent=intent, attempts=outcome.attempts, changed=True)

    def get_payment(self, owner_id: str, payment_id: str) -> PaymentIntent:
        with self.session_factory() as db:
            record = repository.get_payment(db, owner_id, payment_id)
            if record is None:
                raise PaymentNotFound(payment_id)
            return repository.to_intent(record)

    def list_payments(self, owner_id: str, status: PaymentStatus | None = None) -> list[PaymentIntent]:
        with self.session_factory() as db:
            return [repository.to_intent(r) for r in repository.list_payments(db, owner_id, status)]

    def search_payments(self, owner_id: str, term: str) -> list[PaymentIntent]:
        with self.session_factory() as db:
            return [repository.to_intent(r) for r in repository.search_payments(db, owner_id, term)]

    def payment_stats(self, owner_id: str, days: int, today: date | None = None) -> list[PaymentStatsDay]:
        """Zero-filled per-day totals for the last `days` days, oldest first."""

        today = today or datetime.now(timezone.utc).date()
        start = today - timedelta(days=days - 1)
        since = datetime(start.year, start.month, start.day, tzinfo=timezone.utc)
        buckets = {
            (start + timedelta(days=i)).isoformat(): PaymentStatsDay(
                date=(start + timedelta(days=i)).isoformat(),
                totals={c: 0 for c in self.supported_currencies},
                count=0,
            )
            for i in range(days)
        }
        with self.session_factory() as db:
            records = repository.list_created_since(db, owner_id, since)
        for record in records:
            bucket = buckets.get(repository.as_utc(record.created_at).date().isoformat())
            if bucket is None or PaymentStatus(record.status) not in COUNTED_IN_STATS:
                continue
            if record.currency in bucket.totals:
                bucket.totals[record.currency] += record.amount_in_minor
            bucket.count += 1
        return list(buckets.values())

    def delete_payment(self, owner_id: str, payment_id: str) -> None:
        with self.session_factory() as db:
            record = repository.get_payment(db, owner_id, payment_id)
            if record is None:
                raise PaymentNotFound(payment_id)
            if PaymentStatus(record.status) not in DELETABLE_STATUSES:
                raise PaymentNotDeletable(f"payment in status {record.status} cannot be deleted")
            repository.delete_payment(db, owner_id, payment_id)
            db.commit()
        logger.info("payment_deleted payment_id=%s", payment_id)

    async def check_signature(self) -> bool:
        return await self.gateway.check_signature()


def build_payment_service(
    session_factory,
    config: CommonSettings = settings,
    signer: RequestSigner | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    scheduler: PollScheduler | None = None,
) -> PaymentService:
    """Wire signer, token leases, gateway client and engine from settings.

    Loading the signing key here raises `SignatureFailure` when it is missing,
    which stops the service before it accepts traffic.
    """

    signer = signer or RequestSigner.from_pem_file(config.signing_key_id, config.signing_private_key_path)
    token_leases = TokenLeaseManager(
        config.gateway_auth_url,
        config.gateway_client_id,
        config.gateway_client_secret,
        scope=config.gateway_scope,
        safety_margin_seconds=config.token_safety_margin_seconds,
        timeout_seconds=config.gateway_timeout_seconds,
        transport=transport,
    )
    gateway = GatewayClient(
        config.gateway_api_url,
        signer,
        token_leases,
        hosted_page_url=config.hosted_page_url,
        return_uri=config.hosted_page_return_uri,
        timeout_seconds=config.gateway_timeout_seconds,
        connect_retries=config.gateway_connect_retries,
        transport=transport,
    )
    engine = ReconciliationEngine(
        gateway.get_payment,
        max_attempts=config.reconcile_max_attempts,
        delay_seconds=config.reconcile_delay_seconds,
        scheduler=scheduler,
    )
    return PaymentService(session_factory, gateway, engine, supported_currencies=config.supported_currencies)
