from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
import redis

from app.data.models import CheckoutAttemptModel
from app.domain.enums import CheckoutState, PaymentMethod, PaymentSessionStatus
from app.domain.errors import (
    BackendRejectedError,
    ConcurrentUpdateError,
    GatewayError,
    InvalidQuantityError,
    InvalidTransitionError,
    PaymentNotConfirmedError,
    QuantityExceedsStockError,
    ReconciliationError,
    ReconciliationLockError,
    UnsupportedPaymentMethodError,
)
from app.domain.schemas import GatewaySessionDetails
from app.services.checkout_service import (
    CheckoutAttempt,
    CheckoutCoordinator,
    compute_total,
    to_minor_units,
)

PAYMENT_ID = "3f2b8c1e-9d4a-4e6b-8a7c-1b2d3e4f5a6b"
BASE_URL = "http://shop.test"


@pytest.fixture
def coordinator(db_session, backend, gateway, lock_service) -> CheckoutCoordinator:
    return CheckoutCoordinator(
        db=db_session,
        backend=backend,
        gateway=gateway,
        lock_service=lock_service,
        public_base_url=BASE_URL,
        verify_on_return=False,
    )


def redirected(coordinator: CheckoutCoordinator, listing, return_url: str = "/orders/42") -> CheckoutAttemptModel:
    attempt = coordinator.begin(listing)
    attempt.select_method(PaymentMethod.THAWANI)
    attempt.confirm_quantity(3)
    return coordinator.request_session(attempt, return_url=return_url)


class TestTotals:
    def test_compute_total(self) -> None:
        assert compute_total(3, "10.50") == "31.50"

    def test_minor_units(self) -> None:
        assert to_minor_units("10.50") == 1050
        assert to_minor_units(Decimal("0.005")) == 1


class TestCheckoutAttempt:
    def test_happy_path_states(self, listing) -> None:
        attempt = CheckoutAttempt(listing=listing)
        attempt.select_method("thawani")
        assert attempt.state == CheckoutState.METHOD_SELECTED

        assert attempt.confirm_quantity(3) == "31.50"
        assert attempt.state == CheckoutState.QUANTITY_CONFIRMED

    @pytest.mark.parametrize("method", ["stripe", "paypal", "cash"])
    def test_unsupported_methods(self, listing, method: str) -> None:
        attempt = CheckoutAttempt(listing=listing)
        with pytest.raises(UnsupportedPaymentMethodError):
            attempt.select_method(method)
        assert attempt.state == CheckoutState.IDLE

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", True])
    def test_invalid_quantity(self, listing, quantity) -> None:
        attempt = CheckoutAttempt(listing=listing)
        attempt.select_method("thawani")
        with pytest.raises(InvalidQuantityError):
            attempt.confirm_quantity(quantity)

    def test_quantity_above_stock(self, listing) -> None:
        attempt = CheckoutAttempt(listing=listing)
        attempt.select_method("thawani")
        with pytest.raises(QuantityExceedsStockError):
            attempt.confirm_quantity(6)
        assert attempt.state == CheckoutState.METHOD_SELECTED

    def test_quantity_requires_method(self, listing) -> None:
        with pytest.raises(InvalidTransitionError):
            CheckoutAttempt(listing=listing).confirm_quantity(1)


class TestRequestSession:
    def test_creates_order_payment_and_session(self, coordinator, listing, backend, gateway) -> None:
        row = redirected(coordinator, listing)

        assert row.state == CheckoutState.REDIRECTED.value
        assert row.session_status == PaymentSessionStatus.PENDING.value
        assert row.order_id == "ord-1"
        assert row.payment_id == PAYMENT_ID
        assert row.session_id == "sess-1"
        assert row.checkout_url == "https://gateway.test/pay/sess-1?key=pk_test"

        order = backend.create_order.call_args.args[0].to_wire()
        assert order["orderStatus"] == "pending"
        assert order["items"] == [{"listingId": "lst-1", "quantity": 3, "unitPrice": "10.50"}]

        payment = backend.create_payment.call_args.args[0]
        assert payment.amount == "31.50"
        assert payment.method == "card"

        session = gateway.create_session.call_args.args[0]
        assert session.client_reference_id == "ord-1"
        assert session.products[0].quantity == 3
        assert session.products[0].unit_amount == 1050
        assert session.metadata == {"payment_id": PAYMENT_ID, "order_id": "ord-1"}
        assert session.success_url.startswith(f"{BASE_URL}/payments/success?payment_id={PAYMENT_ID}")
        assert session.cancel_url.startswith(f"{BASE_URL}/payments/cancel?payment_id={PAYMENT_ID}")

    def test_order_rejected_returns_to_method_selected(self, coordinator, listing, backend, gateway) -> None:
        backend.create_order.side_effect = BackendRejectedError("Listing is no longer available", 400)
        attempt = coordinator.begin(listing)
        attempt.select_method("thawani")
        attempt.confirm_quantity(2)

        with pytest.raises(BackendRejectedError):
            coordinator.request_session(attempt)

        assert attempt.state == CheckoutState.METHOD_SELECTED
        assert attempt.errors == ["Listing is no longer available"]
        backend.create_payment.assert_not_called()
        gateway.create_session.assert_not_called()

    def test_gateway_failure_is_recorded(self, coordinator, listing, gateway, db_session) -> None:
        gateway.create_session.side_effect = GatewayError("Payment gateway unavailable")
        attempt = coordinator.begin(listing)
        attempt.select_method("thawani")
        attempt.confirm_quantity(1)

        with pytest.raises(GatewayError):
            coordinator.request_session(attempt)

        assert attempt.state == CheckoutState.METHOD_SELECTED
        row = db_session.query(CheckoutAttemptModel).one()
        assert row.state == CheckoutState.METHOD_SELECTED.value
        assert row.error == "Payment gateway unavailable"
        assert row.session_id is None

    def test_unsafe_return_url_replaced(self, coordinator, listing) -> None:
        row = redirected(coordinator, listing, return_url="https://evil.test/steal")
        assert row.return_url == "/"

    def test_get_session(self, coordinator, listing) -> None:
        row = redirected(coordinator, listing)
        state, session = coordinator.get_session(row.id)
        assert state == CheckoutState.REDIRECTED
        assert session.client_reference_id == "ord-1"
        assert session.status == PaymentSessionStatus.PENDING
        assert coordinator.get_session(row.id + 100) is None


class TestReconcileSuccess:
    def test_redirects_with_marker(self, coordinator, listing, backend) -> None:
        redirected(coordinator, listing)

        assert coordinator.reconcile_success(PAYMENT_ID, "/orders/42") == "/orders/42?purchaseSuccess=1"
        backend.update_order_status.assert_called_once_with("ord-1", "paid")

    def test_existing_query_string(self, coordinator, listing) -> None:
        redirected(coordinator, listing)
        target = coordinator.reconcile_success(PAYMENT_ID, "/orders/42?tab=items")
        assert target == "/orders/42?tab=items&purchaseSuccess=1"

    def test_idempotent(self, coordinator, listing, backend, db_session) -> None:
        redirected(coordinator, listing)

        first = coordinator.reconcile_success(PAYMENT_ID, "/orders/42")
        second = coordinator.reconcile_success(PAYMENT_ID, "/orders/42")

        assert first == second
        backend.update_order_status.assert_called_once()
        row = db_session.query(CheckoutAttemptModel).one()
        assert row.state == CheckoutState.RECONCILED_SUCCESS.value
        assert row.session_status == PaymentSessionStatus.PAID.value

    def test_lock_busy_skips_transition(self, coordinator, listing, backend, lock_service) -> None:
        redirected(coordinator, listing)
        lock_service.acquire_payment_lock.return_value = None

        assert coordinator.reconcile_success(PAYMENT_ID, "/orders/42") == "/orders/42?purchaseSuccess=1"
        backend.update_order_status.assert_not_called()
        lock_service.release_payment_lock.assert_not_called()

    @pytest.mark.parametrize("payment_id", [None, "", "abc", "12345"])
    def test_malformed_payment_id(self, coordinator, payment_id) -> None:
        with pytest.raises(ReconciliationError):
            coordinator.reconcile_success(payment_id, "/orders/42")

    def test_unknown_payment_trusts_redirect(self, coordinator, backend) -> None:
        assert coordinator.reconcile_success(PAYMENT_ID, "/orders/42") == "/orders/42?purchaseSuccess=1"
        backend.update_order_status.assert_not_called()

    def test_unsafe_return_url_goes_to_root(self, coordinator, listing) -> None:
        redirected(coordinator, listing)
        assert coordinator.reconcile_success(PAYMENT_ID, "//evil.test") == "/?purchaseSuccess=1"

    def test_backend_failure_still_succeeds(self, coordinator, listing, backend, db_session) -> None:
        redirected(coordinator, listing)
        backend.update_order_status.side_effect = BackendRejectedError("Order not found", 404)

        assert coordinator.reconcile_success(PAYMENT_ID, "/orders/42") == "/orders/42?purchaseSuccess=1"
        row = db_session.query(CheckoutAttemptModel).one()
        assert row.state == CheckoutState.RECONCILED_SUCCESS.value
        assert row.error == "Order not found"
        assert row.order_sync_pending

    def test_verify_mode_requires_paid(self, db_session, listing, backend, gateway, lock_service) -> None:
        coordinator = CheckoutCoordinator(
            db=db_session,
            backend=backend,
            gateway=gateway,
            lock_service=lock_service,
            public_base_url=BASE_URL,
            verify_on_return=True,
        )
        redirected(coordinator, listing)
        gateway.retrieve_session.return_value = GatewaySessionDetails(session_id="sess-1", status="unpaid")

        with pytest.raises(PaymentNotConfirmedError):
            coordinator.reconcile_success(PAYMENT_ID, "/orders/42")
        backend.update_order_status.assert_not_called()
        lock_service.release_payment_lock.assert_called_once_with(PAYMENT_ID, "token-1")

    def test_verify_mode_paid(self, db_session, listing, backend, gateway, lock_service) -> None:
        coordinator = CheckoutCoordinator(
            db=db_session,
            backend=backend,
            gateway=gateway,
            lock_service=lock_service,
            public_base_url=BASE_URL,
            verify_on_return=True,
        )
        redirected(coordinator, listing)
        gateway.retrieve_session.return_value = GatewaySessionDetails(session_id="sess-1", status="paid")

        assert coordinator.reconcile_success(PAYMENT_ID, "/orders/42") == "/orders/42?purchaseSuccess=1"
        gateway.retrieve_session.assert_called_once_with("sess-1")


class TestReconcileCancel:
    def test_cancel_marks_attempt(self, coordinator, listing, backend, db_session) -> None:
        redirected(coordinator, listing)

        target = coordinator.reconcile_cancel(PAYMENT_ID, "/orders/42?tab=items")

        assert target == "/orders/42?tab=items&purchaseCancelled=1"
        backend.update_order_status.assert_not_called()
        row = db_session.query(CheckoutAttemptModel).one()
        assert row.state == CheckoutState.RECONCILED_CANCELLED.value
        assert row.session_status == PaymentSessionStatus.UNPAID.value

    def test_success_after_cancel_is_rejected(self, coordinator, listing) -> None:
        redirected(coordinator, listing)
        coordinator.reconcile_cancel(PAYMENT_ID, "/orders/42")

        with pytest.raises(ReconciliationError):
            coordinator.reconcile_success(PAYMENT_ID, "/orders/42")


class TestExpireStale:
    def test_expires_redirected_attempts(self, coordinator, listing, db_session) -> None:
        redirected(coordinator, listing)

        later = datetime.now(timezone.utc) + timedelta(hours=2)
        assert coordinator.expire_stale(now=later, ttl_seconds=3600) == 1

        row = db_session.query(CheckoutAttemptModel).one()
        assert row.state == CheckoutState.RECONCILED_EXPIRED.value
        assert row.session_status == PaymentSessionStatus.EXPIRED.value

    def test_fresh_attempts_untouched(self, coordinator, listing, db_session) -> None:
        redirected(coordinator, listing)

        assert coordinator.expire_stale(ttl_seconds=3600) == 0
        assert db_session.query(CheckoutAttemptModel).one().state == CheckoutState.REDIRECTED.value


class TestOrderPaidRetry:
    def test_next_arrival_retries_failed_order_update(self, coordinator, listing, backend, db_session) -> None:
        redirected(coordinator, listing)
        backend.update_order_status.side_effect = BackendRejectedError("Service unavailable", 503)
        coordinator.reconcile_success(PAYMENT_ID, "/orders/42")

        backend.update_order_status.side_effect = None
        assert coordinator.reconcile_success(PAYMENT_ID, "/orders/42") == "/orders/42?purchaseSuccess=1"

        assert backend.update_order_status.call_count == 2
        row = db_session.query(CheckoutAttemptModel).one()
        assert not row.order_sync_pending
        assert row.error is None

    def test_no_retry_once_order_is_paid(self, coordinator, listing, backend) -> None:
        redirected(coordinator, listing)

        for _ in range(3):
            coordinator.reconcile_success(PAYMENT_ID, "/orders/42")

        backend.update_order_status.assert_called_once_with("ord-1", "paid")


class TestLockFailures:
    def test_redis_outage_is_a_reconciliation_error(self, coordinator, listing, lock_service, backend) -> None:
        redirected(coordinator, listing)
        lock_service.acquire_payment_lock.side_effect = redis.ConnectionError("down")

        with pytest.raises(ReconciliationLockError) as exc:
            coordinator.reconcile_success(PAYMENT_ID, "/orders/42")

        assert exc.value.http_status == 503
        backend.update_order_status.assert_not_called()

    def test_cancel_with_redis_outage(self, coordinator, lock_service) -> None:
        lock_service.acquire_payment_lock.side_effect = redis.ConnectionError("down")

        with pytest.raises(ReconciliationLockError):
            coordinator.reconcile_cancel(PAYMENT_ID, "/orders/42")

    def test_release_failure_does_not_hide_success(self, coordinator, listing, lock_service, backend) -> None:
        redirected(coordinator, listing)
        lock_service.release_payment_lock.side_effect = redis.ConnectionError("down")

        assert coordinator.reconcile_success(PAYMENT_ID, "/orders/42") == "/orders/42?purchaseSuccess=1"
        backend.update_order_status.assert_called_once()

    def test_cancel_version_conflict(self, coordinator, listing, lock_service) -> None:
        redirected(coordinator, listing)

        with patch.object(coordinator.repo, "update_attempt_version", return_value=0):
            with pytest.raises(ConcurrentUpdateError):
                coordinator.reconcile_cancel(PAYMENT_ID, "/orders/42")

        lock_service.release_payment_lock.assert_called_once_with(PAYMENT_ID, "token-1")
