import pytest

from app.domain.enums import (
    CHECKOUT_TRANSITIONS,
    RECONCILED_STATES,
    CheckoutState,
    PaymentSessionStatus,
)


class TestPaymentSessionStatus:
    def test_forward_moves(self) -> None:
        assert PaymentSessionStatus.CREATED.can_advance_to(PaymentSessionStatus.PENDING)
        assert PaymentSessionStatus.PENDING.can_advance_to(PaymentSessionStatus.PAID)
        assert PaymentSessionStatus.CREATED.can_advance_to(PaymentSessionStatus.EXPIRED)

    @pytest.mark.parametrize("final", ["paid", "unpaid", "expired"])
    def test_final_never_moves(self, final: str) -> None:
        status = PaymentSessionStatus(final)
        assert status.is_final
        for target in PaymentSessionStatus:
            assert status.can_advance_to(target) == (target == status)

    def test_no_regression(self) -> None:
        assert not PaymentSessionStatus.PENDING.can_advance_to(PaymentSessionStatus.CREATED)


class TestCheckoutTransitions:
    def test_every_state_has_entry(self) -> None:
        assert set(CHECKOUT_TRANSITIONS) == set(CheckoutState)

    def test_reconciled_are_terminal(self) -> None:
        for state in RECONCILED_STATES:
            assert state.is_reconciled
            assert CHECKOUT_TRANSITIONS[state] == set()

    def test_only_redirected_reaches_reconciled(self) -> None:
        for state, targets in CHECKOUT_TRANSITIONS.items():
            if targets & RECONCILED_STATES:
                assert state == CheckoutState.REDIRECTED
