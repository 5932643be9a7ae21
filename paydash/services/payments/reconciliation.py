"""Bounded polling of the gateway after the user returns from hosted authorization.

The gateway converges some time after the redirect (typically well under a few
seconds) and offers no push signal here, so the engine polls a fixed number of
times with a fixed spacing and stops as soon as the status moves away from the
last locally known one. Running out of attempts is an advisory, not an error.
A gateway error during polling ends the loop and propagates.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from paydash.common.config import settings
from paydash.common.logging import logger
from paydash.common.metrics import reconcile_attempts, reconcile_outcomes_total
from paydash.common.state_machine import PaymentStatus
from paydash.gateway.schemas import PaymentIntent


STILL_PROCESSING_MESSAGE = "Payment status is still processing. It may take a few moments to update."


class PollPhase(str, Enum):
    FETCH = "fetch"
    WAIT = "wait"
    CHANGED = "changed"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


FINAL_PHASES = frozenset({PollPhase.CHANGED, PollPhase.EXHAUSTED, PollPhase.CANCELLED})


@dataclass
class ReconciliationOutcome:
    """Last fetched state plus how the polling ended."""

    intent: PaymentIntent | None
    attempts: int
    phase: PollPhase

    @property
    def changed(self) -> bool:
        return self.phase is PollPhase.CHANGED

    @property
    def still_pending(self) -> bool:
        """Advisory flag: nothing changed yet, caller may retry later."""

        return self.phase in (PollPhase.EXHAUSTED, PollPhase.CANCELLED)


class PollScheduler:
    """Timer used between attempts. `wait` returns False if cancelled mid-wait."""

    async def wait(self, delay_seconds: float, cancel: asyncio.Event | None = None) -> bool:
        if cancel is None:
            await asyncio.sleep(delay_seconds)
            return True
        try:
            await asyncio.wait_for(cancel.wait(), timeout=delay_seconds)
        except asyncio.TimeoutError:
            return True
        return False


class ReconciliationEngine:
    """Polls `fetch(payment_id)` until the status diverges or the budget runs out."""

    def __init__(
        self,
        fetch: Callable[[str], Awaitable[PaymentIntent]],
        max_attempts: int = 4,
        delay_seconds: float = 0.8,
        scheduler: PollScheduler | None = None,
        service_name: str | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")
        self.fetch = fetch
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self.scheduler = scheduler or PollScheduler()
        self.service_name = service_name or settings.service_name

    async def reconcile(
        self,
        payment_id: str,
        last_known_status: PaymentStatus,
        cancel: asyncio.Event | None = None,
    ) -> ReconciliationOutcome:
        phase = PollPhase.FETCH
        attempts = 0
        latest: PaymentIntent | None = None

        while phase not in FINAL_PHASES:
            if phase is PollPhase.FETCH:
                if cancel is not None and cancel.is_set():
                    phase = PollPhase.CANCELLED
                    continue
                attempts += 1
                latest = await self.fetch(payment_id)
                logger.info(
                    "reconcile_poll payment_id=%s attempt=%s/%s gateway_status=%s failure_reason=%s",
                    payment_id,
                    attempts,
                    self.max_attempts,
                    latest.status.value,
                    latest.failure_reason,
                )
                if latest.status != last_known_status:
                    phase = PollPhase.CHANGED
                elif attempts >= self.max_attempts:
                    phase = PollPhase.EXHAUSTED
                else:
                    phase = PollPhase.WAIT
            else:
                resumed = await self.scheduler.wait(self.delay_seconds, cancel)
                phase = PollPhase.FETCH if resumed else PollPhase.CANCELLED

        reconcile_attempts.labels(service=self.service_name).observe(attempts)
        reconcile_outcomes_total.labels(service=self.service_name, outcome=phase.value).inc()
        if phase is PollPhase.CHANGED:
            logger.info(
                "reconcile_changed payment_id=%s from=%s to=%s attempts=%s",
                payment_id,
                last_known_status.value,
                latest.status.value,
                attempts,
            )
        else:
            logger.info(
                "reconcile_unchanged payment_id=%s status=%s attempts=%s outcome=%s",
                payment_id,
                last_known_status.value,
                attempts,
                phase.value,
            )
        return ReconciliationOutcome(intent=latest, attempts=attempts, phase=phase)
