"""Payment status enumeration and the transitions the gateway is expected to report.

The gateway is authoritative: its status strings pass through verbatim and an
unexpected transition is reported, never rejected.
"""

from enum import Enum


class PaymentStatus(str, Enum):
    """Closed set of payment states; values are the gateway's wire strings."""

    AWAITING_AUTHORIZATION = "authorization_required"
    AUTHORIZING = "authorizing"
    AUTHORIZED = "authorized"
    EXECUTED = "executed"
    SETTLED = "settled"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.AWAITING_AUTHORIZATION: {
        PaymentStatus.AUTHORIZING,
        PaymentStatus.AUTHORIZED,
        PaymentStatus.EXECUTED,
        PaymentStatus.SETTLED,
        PaymentStatus.FAILED,
    },
    PaymentStatus.AUTHORIZING: {
        PaymentStatus.AUTHORIZED,
        PaymentStatus.EXECUTED,
        PaymentStatus.SETTLED,
        PaymentStatus.FAILED,
    },
    PaymentStatus.AUTHORIZED: {PaymentStatus.EXECUTED, PaymentStatus.SETTLED, PaymentStatus.FAILED},
    PaymentStatus.EXECUTED: {PaymentStatus.SETTLED, PaymentStatus.FAILED},
    PaymentStatus.SETTLED: set(),
    PaymentStatus.FAILED: set(),
}

# Hosted authorization link only works while the payment sits in these states.
PRE_AUTHORIZATION_STATUSES = frozenset({PaymentStatus.AWAITING_AUTHORIZATION, PaymentStatus.AUTHORIZING})

DELETABLE_STATUSES = frozenset(
    {PaymentStatus.AWAITING_AUTHORIZATION, PaymentStatus.AUTHORIZING, PaymentStatus.FAILED}
)


def map_gateway_status(raw: str) -> PaymentStatus:
    """Map a gateway status string to the local enum without reinterpretation.

    `failed` stays `FAILED` whatever the failure reason; raises `ValueError`
    for values outside the enumeration.
    """

    return PaymentStatus(raw)


def is_expected_transition(current: PaymentStatus, new: PaymentStatus) -> bool:
    """True when `current -> new` is a forward move the gateway should report."""

    return new in ALLOWED_TRANSITIONS.get(current, set())
