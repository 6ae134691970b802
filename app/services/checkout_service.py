# app/services/checkout_service.py
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List

import redis
from sqlalchemy.orm import Session

from app.data.models.checkout_attempt import CheckoutAttemptModel
from app.domain.enums import (
    CHECKOUT_TRANSITIONS,
    OPERATIVE_PAYMENT_METHODS,
    PAYMENT_METHOD_API_VALUES,
    CheckoutState,
    OrderStatus,
    PaymentMethod,
    PaymentSessionStatus,
)
from app.domain.errors import (
    ConcurrentUpdateError,
    InvalidPaymentSessionTransitionError,
    InvalidQuantityError,
    InvalidTransitionError,
    PaymentNotConfirmedError,
    QuantityExceedsStockError,
    ReconciliationError,
    ReconciliationLockError,
    UnsupportedPaymentMethodError,
    WorkflowError,
)
from app.domain.schemas import (
    GatewayProduct,
    GatewaySessionRequest,
    Listing,
    OrderCreate,
    OrderItem,
    PaymentCreate,
    PaymentSession,
)
from app.repos.checkout_repo import CheckoutRepo
from app.services.backend_client import BackendClient
from app.services.bid_validator import is_valid_uuid
from app.services.gateway_client import GatewayClient
from app.services.lock_service import LockService
from app.utils.logging import get_logger
from app.utils.settings import (
    CHECKOUT_SESSION_TTL_SECONDS,
    CURRENCY_MINOR_UNITS,
    VERIFY_PAYMENT_ON_RETURN,
)
from app.utils.urls import ROOT_URL, append_query_param, is_safe_return_url, return_endpoint_url

logger = get_logger(__name__)

SUCCESS_ENDPOINT = "/payments/success"
CANCEL_ENDPOINT = "/payments/cancel"
SUCCESS_MARKER = "purchaseSuccess"
CANCEL_MARKER = "purchaseCancelled"
DEFAULT_PRODUCT_NAME = "Order Payment"

_CENTS = Decimal("0.01")


def check_transition(current: CheckoutState, target: CheckoutState) -> None:
    if target not in CHECKOUT_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)


def compute_total(quantity: int, unit_price: Decimal | str) -> str:
    """quantity x cena jednostkowa, tylko do wyswietlenia (backend liczy sam)."""
    total = Decimal(str(unit_price)) * quantity
    return str(total.quantize(_CENTS, rounding=ROUND_HALF_UP))


def to_minor_units(amount: Decimal | str, minor_units: int = CURRENCY_MINOR_UNITS) -> int:
    value = Decimal(str(amount)) * minor_units
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _optional_uuid(value: str | None) -> str | None:
    return value.strip() if is_valid_uuid(value) else None


@dataclass
class CheckoutAttempt:
    """
    Stan jednej proby zakupu przed przekierowaniem do bramki.
    Idle -> MethodSelected -> QuantityConfirmed -> SessionRequested -> Redirected
    """

    listing: Listing
    state: CheckoutState = CheckoutState.IDLE
    method: PaymentMethod | None = None
    quantity: int | None = None
    total_amount: str | None = None
    errors: List[str] = field(default_factory=list)

    def transition(self, target: CheckoutState) -> None:
        check_transition(self.state, target)
        self.state = target

    def select_method(self, method: PaymentMethod | str) -> None:
        try:
            chosen = PaymentMethod(method)
        except ValueError:
            raise UnsupportedPaymentMethodError(str(method))

        if chosen not in OPERATIVE_PAYMENT_METHODS:
            raise UnsupportedPaymentMethodError(chosen.value)

        self.transition(CheckoutState.METHOD_SELECTED)
        self.method = chosen

    def confirm_quantity(self, quantity: object) -> str:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantityError(quantity)

        if quantity > self.listing.stock_amount:
            raise QuantityExceedsStockError(quantity, self.listing.stock_amount)

        self.transition(CheckoutState.QUANTITY_CONFIRMED)
        self.quantity = quantity
        self.total_amount = compute_total(quantity, self.listing.starting_price)
        return self.total_amount

    def abort(self, error: str) -> None:
        """Blad zamowienia/sesji: powrot do wyboru metody."""
        self.transition(CheckoutState.METHOD_SELECTED)
        self.errors.append(error)


class CheckoutCoordinator:
    """
    Koordynator platnosci:
    1. tworzy zamowienie i rekord platnosci w backendzie
    2. tworzy sesje checkout w bramce (client reference = id zamowienia)
    3. rekoncyliuje powrot z bramki (success / cancel) po payment_id z url
    """

    def __init__(
        self,
        db: Session,
        backend: BackendClient,
        gateway: GatewayClient,
        lock_service: LockService,
        public_base_url: str | None = None,
        verify_on_return: bool | None = None,
    ):
        self.repo = CheckoutRepo(db)
        self.backend = backend
        self.gateway = gateway
        self.lock_service = lock_service
        self.public_base_url = public_base_url
        self.verify_on_return = VERIFY_PAYMENT_ON_RETURN if verify_on_return is None else verify_on_return

    def begin(self, listing: Listing) -> CheckoutAttempt:
        return CheckoutAttempt(listing=listing)

    # =====================================================
    # SESSION REQUEST
    # =====================================================
    def request_session(
        self,
        attempt: CheckoutAttempt,
        return_url: str = ROOT_URL,
        buyer_company_id: str | None = None,
        created_by_user_id: str | None = None,
    ) -> CheckoutAttemptModel:
        listing = attempt.listing
        attempt.transition(CheckoutState.SESSION_REQUESTED)
        return_url = return_url if is_safe_return_url(return_url, self.public_base_url) else ROOT_URL
        unit_price = str(listing.starting_price.quantize(_CENTS))

        order_request = OrderCreate(
            order_status=OrderStatus.PENDING,
            items=[OrderItem(listing_id=listing.id, quantity=attempt.quantity, unit_price=unit_price)],
            buyer_company_id=_optional_uuid(buyer_company_id),
            seller_company_id=_optional_uuid(listing.seller_company_id),
            created_by_user_id=_optional_uuid(created_by_user_id),
        )

        try:
            order = self.backend.create_order(order_request)
        except WorkflowError as e:
            attempt.abort(e.message)
            raise

        logger.info(f"Order {order.id} created for listing {listing.id}")

        row = self.repo.create_attempt(
            CheckoutAttemptModel(
                listing_id=listing.id,
                quantity=attempt.quantity,
                unit_price=Decimal(unit_price),
                total_amount=Decimal(attempt.total_amount),
                method=attempt.method.value,
                order_id=order.id,
                return_url=return_url,
                state=CheckoutState.SESSION_REQUESTED.value,
                version=1,
            )
        )

        payment_id = None
        try:
            payment = self.backend.create_payment(
                PaymentCreate(
                    order_id=order.id,
                    amount=attempt.total_amount,
                    method=PAYMENT_METHOD_API_VALUES[attempt.method],
                )
            )
            payment_id = payment.id

            session_id = self.gateway.create_session(
                GatewaySessionRequest(
                    client_reference_id=order.id,
                    products=[
                        GatewayProduct(
                            name=listing.title or DEFAULT_PRODUCT_NAME,
                            quantity=attempt.quantity,
                            unit_amount=to_minor_units(unit_price),
                        )
                    ],
                    metadata={"payment_id": payment.id, "order_id": order.id},
                    success_url=return_endpoint_url(SUCCESS_ENDPOINT, payment.id, return_url, self.public_base_url),
                    cancel_url=return_endpoint_url(CANCEL_ENDPOINT, payment.id, return_url, self.public_base_url),
                )
            )
        except WorkflowError as e:
            logger.error(f"Checkout for order {order.id} aborted: {e.message}")
            self._advance(
                row,
                CheckoutState.METHOD_SELECTED,
                {"payment_id": payment_id, "error": e.message},
            )
            attempt.abort(e.message)
            raise

        checkout_url = self.gateway.checkout_url(session_id)

        # sesja utworzona (created), przekazanie do bramki -> pending
        self._advance(
            row,
            CheckoutState.REDIRECTED,
            {
                "payment_id": payment_id,
                "session_id": session_id,
                "checkout_url": checkout_url,
                "session_status": PaymentSessionStatus.PENDING.value,
            },
        )
        attempt.transition(CheckoutState.REDIRECTED)

        logger.info(f"Checkout session {session_id} ready for payment {payment_id}")
        return row

    # =====================================================
    # RECONCILIATION
    # =====================================================
    def reconcile_success(self, payment_id: str | None, return_url: str | None) -> str:
        """Zwraca adres przekierowania z purchaseSuccess=1. Idempotentne po payment_id."""
        payment_id = self._require_payment_id(payment_id)
        target = self._safe_target(return_url)

        token = self._acquire_lock(payment_id)
        if token is None:
            # rownolegly powrot z tym samym payment_id, on robi przejscie stanu
            logger.info(f"Payment {payment_id} is already being reconciled")
            return target if self.verify_on_return else append_query_param(target, SUCCESS_MARKER, "1")

        try:
            self._settle_success(payment_id)
        finally:
            self._release_lock(payment_id, token)

        return append_query_param(target, SUCCESS_MARKER, "1")

    def reconcile_cancel(self, payment_id: str | None, return_url: str | None) -> str:
        payment_id = self._require_payment_id(payment_id)
        target = self._safe_target(return_url)

        token = self._acquire_lock(payment_id)
        if token is not None:
            try:
                row = self.repo.get_by_payment_id(payment_id)
                if row is None:
                    logger.warning(f"Cancel return for unknown payment {payment_id}")
                elif CheckoutState(row.state) == CheckoutState.REDIRECTED:
                    self._advance(
                        row,
                        CheckoutState.RECONCILED_CANCELLED,
                        {"session_status": PaymentSessionStatus.UNPAID.value},
                    )
                    logger.info(f"Payment {payment_id} cancelled by user")
                else:
                    logger.info(f"Payment {payment_id} already in state {row.state}, cancel ignored")
            finally:
                self._release_lock(payment_id, token)

        return append_query_param(target, CANCEL_MARKER, "1")

    def _settle_success(self, payment_id: str) -> None:
        row = self.repo.get_by_payment_id(payment_id)

        if row is None:
            if self.verify_on_return:
                raise ReconciliationError(f"unknown payment {payment_id}")
            logger.warning(f"Success return for unknown payment {payment_id}, trusting redirect")
            return

        state = CheckoutState(row.state)
        if state == CheckoutState.RECONCILED_SUCCESS:
            if row.order_sync_pending:
                logger.info(f"Retrying paid status of order {row.order_id} for payment {payment_id}")
                self._mark_order_paid(row)
            else:
                logger.info(f"Payment {payment_id} already reconciled, skipping")
            return

        if state != CheckoutState.REDIRECTED:
            raise ReconciliationError(f"attempt for payment {payment_id} is {state.value}")

        if self.verify_on_return:
            details = self.gateway.retrieve_session(row.session_id)
            if details.status != PaymentSessionStatus.PAID:
                raise PaymentNotConfirmedError(payment_id, details.status.value)

        # flaga ustawiana razem z przejsciem, czyszczona dopiero po udanym PATCH
        changed = self._advance(
            row,
            CheckoutState.RECONCILED_SUCCESS,
            {"session_status": PaymentSessionStatus.PAID.value, "order_sync_pending": True},
            conflict_ok=True,
        )
        if not changed:
            logger.info(f"Payment {payment_id} reconciled concurrently, skipping")
            return

        self._mark_order_paid(row)

    def _mark_order_paid(self, row: CheckoutAttemptModel) -> bool:
        try:
            self.backend.update_order_status(row.order_id, OrderStatus.PAID.value)
        except WorkflowError as e:
            logger.error(f"Order {row.order_id} paid locally but backend update failed: {e.message}")
            self._annotate(row, {"error": e.message})
            return False

        logger.info(f"Order {row.order_id} marked as paid")
        self._annotate(row, {"order_sync_pending": False, "error": None})
        return True

    # =====================================================
    # QUERY
    # =====================================================
    def get_session(self, attempt_id: int) -> tuple[CheckoutState, PaymentSession | None] | None:
        row = self.repo.get_attempt(attempt_id)
        if row is None:
            return None

        state = CheckoutState(row.state)
        if not row.session_id:
            return state, None

        return state, PaymentSession(
            session_id=row.session_id,
            client_reference_id=row.order_id,
            status=PaymentSessionStatus(row.session_status or PaymentSessionStatus.CREATED.value),
            checkout_url=row.checkout_url,
            return_url=return_endpoint_url(SUCCESS_ENDPOINT, row.payment_id, row.return_url, self.public_base_url),
            cancel_url=return_endpoint_url(CANCEL_ENDPOINT, row.payment_id, row.return_url, self.public_base_url),
        )

    # =====================================================
    # EXPIRY
    # =====================================================
    def expire_stale(self, now: datetime | None = None, ttl_seconds: int = CHECKOUT_SESSION_TTL_SECONDS) -> int:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(seconds=ttl_seconds)
        stale = self.repo.get_stale_attempts(
            cutoff,
            [CheckoutState.REDIRECTED.value, CheckoutState.SESSION_REQUESTED.value],
        )

        expired = 0
        for row in stale:
            if CheckoutState(row.state) == CheckoutState.REDIRECTED:
                changed = self._advance(
                    row,
                    CheckoutState.RECONCILED_EXPIRED,
                    {"session_status": PaymentSessionStatus.EXPIRED.value},
                    conflict_ok=True,
                )
            else:
                changed = self._advance(
                    row,
                    CheckoutState.METHOD_SELECTED,
                    {"error": "Checkout session was never created"},
                    conflict_ok=True,
                )
            expired += int(changed)

        logger.info(f"Expired {expired} stale checkout attempts")
        return expired

    # =====================================================
    # HELPERS
    # =====================================================
    def _advance(self, row: CheckoutAttemptModel, target: CheckoutState, data: dict, conflict_ok: bool = False) -> bool:
        check_transition(CheckoutState(row.state), target)

        if data.get("session_status") and row.session_status:
            current = PaymentSessionStatus(row.session_status)
            wanted = PaymentSessionStatus(data["session_status"])
            if not current.can_advance_to(wanted):
                raise InvalidPaymentSessionTransitionError(current.value, wanted.value)

        rowcount = self.repo.update_attempt_version(
            attempt_id=row.id,
            old_version=row.version,
            new_data={"state": target.value, **data},
        )

        # optimistic locking, ktos zmienil wiersz w miedzyczasie
        if rowcount == 0:
            self.repo.rollback()
            if conflict_ok:
                return False
            raise ConcurrentUpdateError(row.id)

        self.repo.commit()
        self.repo.refresh(row)
        return True

    def _annotate(self, row: CheckoutAttemptModel, data: dict) -> None:
        """Zapis pol pomocniczych bez zmiany stanu."""
        if self.repo.update_attempt_version(row.id, row.version, data) == 0:
            self.repo.rollback()
            logger.warning(f"Checkout attempt {row.id} changed concurrently, {sorted(data)} not saved")
            return
        self.repo.commit()
        self.repo.refresh(row)

    def _acquire_lock(self, payment_id: str) -> str | None:
        try:
            return self.lock_service.acquire_payment_lock(payment_id)
        except redis.RedisError as e:
            logger.error(f"Reconciliation lock for payment {payment_id} unavailable: {e}")
            raise ReconciliationLockError(payment_id) from e

    def _release_lock(self, payment_id: str, token: str) -> None:
        try:
            self.lock_service.release_payment_lock(payment_id, token)
        except redis.RedisError as e:
            # lock i tak wygasa po TTL
            logger.warning(f"Failed to release reconciliation lock for payment {payment_id}: {e}")

    def _require_payment_id(self, payment_id: str | None) -> str:
        if not is_valid_uuid(payment_id):
            logger.warning(f"Payment return with missing or malformed payment id: {payment_id!r}")
            raise ReconciliationError("missing or malformed payment id")
        return payment_id.strip()

    def _safe_target(self, return_url: str | None) -> str:
        if is_safe_return_url(return_url, self.public_base_url):
            return return_url
        return ROOT_URL
