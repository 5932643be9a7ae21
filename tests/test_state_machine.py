"""Unit tests for the payment status enumeration and mapping."""

import pytest

from paydash.common.state_machine import (
    DELETABLE_STATUSES,
    PaymentStatus,
    is_expected_transition,
    map_gateway_status,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("authorization_required", PaymentStatus.AWAITING_AUTHORIZATION),
        ("authorizing", PaymentStatus.AUTHORIZING),
        ("authorized", PaymentStatus.AUTHORIZED),
        ("executed", PaymentStatus.EXECUTED),
        ("settled", PaymentStatus.SETTLED),
        ("failed", PaymentStatus.FAILED),
    ],
)
def test_gateway_status_maps_verbatim(raw, expected):
    assert map_gateway_status(raw) is expected


def test_unknown_gateway_status_is_rejected():
    """No local-only states such as `cancelled` exist."""

    with pytest.raises(ValueError):
        map_gateway_status("cancelled")


def test_failed_is_reachable_from_every_pre_terminal_state():
    for status in (
        PaymentStatus.AWAITING_AUTHORIZATION,
        PaymentStatus.AUTHORIZING,
        PaymentStatus.AUTHORIZED,
        PaymentStatus.EXECUTED,
    ):
        assert is_expected_transition(status, PaymentStatus.FAILED)


def test_terminal_states_have_no_exit():
    assert not is_expected_transition(PaymentStatus.SETTLED, PaymentStatus.FAILED)
    assert not is_expected_transition(PaymentStatus.FAILED, PaymentStatus.AUTHORIZED)


def test_only_unpaid_statuses_are_deletable():
    assert DELETABLE_STATUSES == {
        PaymentStatus.AWAITING_AUTHORIZATION,
        PaymentStatus.AUTHORIZING,
        PaymentStatus.FAILED,
    }
