"""Client-credentials bearer token cache with single-flight renewal."""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable

import httpx

from paydash.common.config import settings
from paydash.common.logging import logger
from paydash.common.metrics import token_exchanges_total
from paydash.gateway.errors import AuthExchangeFailed


TOKEN_PATH = "/connect/token"


@dataclass(frozen=True)
class TokenLease:
    """One bearer token and the instant after which it must not be presented."""

    token: str
    expires_at: float

    def is_valid(self, now: float, safety_margin: float) -> bool:
        return now < self.expires_at - safety_margin


class TokenLeaseManager:
    """Hands out a valid bearer token, exchanging credentials only when needed.

    Concurrent callers that find no valid lease share one in-flight exchange
    and all observe its result (token or `AuthExchangeFailed`). Failures are
    not retried here.
    """

    def __init__(
        self,
        auth_url: str,
        client_id: str,
        client_secret: str,
        scope: str = "payments",
        safety_margin_seconds: float = 60,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
        service_name: str | None = None,
    ) -> None:
        self.auth_url = auth_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.safety_margin_seconds = safety_margin_seconds
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self.clock = clock
        self.service_name = service_name or settings.service_name
        self._lease: TokenLease | None = None
        self._lease_margin = safety_margin_seconds
        self._inflight: asyncio.Future | None = None

    @property
    def lease(self) -> TokenLease | None:
        return self._lease

    def invalidate(self) -> None:
        """Drop the cached lease so the next `acquire` exchanges again."""

        self._lease = None

    async def acquire(self) -> str:
        lease = self._lease
        if lease is not None and lease.is_valid(self.clock(), self._lease_margin):
            return lease.token
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._exchange())
            self._inflight.add_done_callback(self._exchange_done)
        # Shielded so one cancelled caller does not cancel the exchange for the rest.
        lease = await asyncio.shield(self._inflight)
        return lease.token

    def _exchange_done(self, future: asyncio.Future) -> None:
        self._inflight = None
        if not future.cancelled():
            # Mark the exception retrieved; waiting callers re-raise it themselves.
            future.exception()

    async def _exchange(self) -> TokenLease:
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": self.scope,
        }
        requested_at = self.clock()
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                resp = await client.post(f"{self.auth_url}{TOKEN_PATH}", data=form)
        except httpx.HTTPError as exc:
            token_exchanges_total.labels(service=self.service_name, outcome="network_error").inc()
            logger.error("token_exchange_failed reason=network error=%s", exc)
            raise AuthExchangeFailed(f"token endpoint unreachable: {exc}") from exc

        if resp.status_code >= 400:
            token_exchanges_total.labels(service=self.service_name, outcome="rejected").inc()
            logger.error("token_exchange_failed reason=rejected status_code=%s", resp.status_code)
            raise AuthExchangeFailed("token endpoint rejected client credentials", status_code=resp.status_code)

        try:
            body = resp.json()
            token = body["access_token"]
            expires_in = float(body["expires_in"])
        except (ValueError, KeyError, TypeError) as exc:
            token_exchanges_total.labels(service=self.service_name, outcome="malformed").inc()
            logger.error("token_exchange_failed reason=malformed_response error=%s", exc)
            raise AuthExchangeFailed("token endpoint returned an unusable response") from exc
        if not isinstance(token, str) or not token:
            token_exchanges_total.labels(service=self.service_name, outcome="malformed").inc()
            raise AuthExchangeFailed("token endpoint returned an empty access token")

        margin = self.safety_margin_seconds
        if expires_in <= margin:
            # Renew at half-life instead of treating the new token as already expired.
            margin = expires_in / 2
            logger.warning(
                "token_lifetime_below_safety_margin expires_in=%s safety_margin=%s",
                expires_in,
                self.safety_margin_seconds,
            )
        lease = TokenLease(token=token, expires_at=requested_at + expires_in)
        self._lease = lease
        self._lease_margin = margin
        token_exchanges_total.labels(service=self.service_name, outcome="ok").inc()
        logger.info("token_exchange_ok expires_in=%s", int(expires_in))
        return lease
