"""Error taxonomy surfaced by the gateway integration layer."""


class GatewayError(Exception):
    """Base class for every failure raised while talking to the gateway."""


class AuthExchangeFailed(GatewayError):
    """Client-credentials exchange failed (network or credential rejection).

    Never retried by the token lease manager; the caller owns retry policy.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SignatureFailure(GatewayError):
    """Signing key missing, unreadable or unusable. A configuration defect."""


class GatewayRejected(GatewayError):
    """Gateway answered 4xx: the request must not be retried unmodified."""

    def __init__(self, status_code: int, title: str, detail: str | None = None) -> None:
        super().__init__(f"gateway rejected request status={status_code} title={title}")
        self.status_code = status_code
        self.title = title
        self.detail = detail


class GatewayUnavailable(GatewayError):
    """Gateway answered 5xx or could not be reached. Retryable by caller policy.

    `idempotency_key` is set for failed creations so a retry of the same
    logical creation can reuse it.
    """

    def __init__(self, message: str, status_code: int | None = None, idempotency_key: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.idempotency_key = idempotency_key


class GatewayResponseInvalid(GatewayError):
    """2xx response whose body does not describe a payment resource."""
