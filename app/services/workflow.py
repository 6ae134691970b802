# app/services/workflow.py
import asyncio
from dataclasses import dataclass
from typing import Any

from app.domain.enums import CheckoutState, ErrorKind
from app.domain.errors import WorkflowError
from app.domain.schemas import (
    BidPlacedOut,
    ChatStateChange,
    CheckoutIn,
    CheckoutOut,
    NotificationClickIn,
    PushPayload,
)
from app.services.backend_client import BackendClient
from app.services.bid_validator import BidValidator, highest_bid
from app.services.checkout_service import CheckoutAttempt, CheckoutCoordinator
from app.services.delivery_gate import GateRegistry
from app.utils.logging import get_logger
from app.utils.urls import ROOT_URL

logger = get_logger(__name__)

# komunikaty dla uzytkownika po kodzie bledu, backend/bramka zwracaja swoje
USER_MESSAGES = {
    1001: "Please enter a valid bid amount (up to 2 decimal places).",
    1002: "Your bid must be higher than the current highest bid.",
    1003: "This listing is not open for bidding.",
    2001: "This payment method is not available yet.",
    2002: "Please enter a valid quantity.",
    2003: "The requested quantity exceeds the available stock.",
    2004: "This checkout can no longer be changed. Please start again.",
}


@dataclass
class WorkflowResult:
    ok: bool
    data: Any = None
    error: str | None = None
    error_code: int | None = None
    error_kind: ErrorKind | None = None
    http_status: int = 200
    refresh_required: bool = False

    @classmethod
    def success(cls, data: Any = None, http_status: int = 200) -> "WorkflowResult":
        return cls(ok=True, data=data, http_status=http_status)

    @classmethod
    def failure(cls, error: WorkflowError, data: Any = None) -> "WorkflowResult":
        return cls(
            ok=False,
            data=data,
            error=USER_MESSAGES.get(error.code, error.message),
            error_code=error.code,
            error_kind=error.kind,
            http_status=error.http_status,
            refresh_required=error.kind in (ErrorKind.BACKEND_REJECTED, ErrorKind.GATEWAY_FAILURE),
        )

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "error": self.error,
            "errorCode": self.error_code,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "refreshRequired": self.refresh_required,
            "data": self.data,
        }


class WorkflowOrchestrator:
    """
    Warstwa sklejajaca: bidding, checkout, powroty z bramki i dostarczanie powiadomien.
    Bledy nie wychodza jako wyjatki, tylko jako WorkflowResult.
    """

    def __init__(
        self,
        backend: BackendClient | None,
        coordinator: CheckoutCoordinator | None = None,
        gates: GateRegistry | None = None,
        bid_validator: BidValidator | None = None,
    ):
        self.backend = backend
        self.coordinator = coordinator
        self.gates = gates
        self.bid_validator = bid_validator or BidValidator(backend)

    # =====================================================
    # BIDDING
    # =====================================================
    def place_bid(self, listing_id: str, amount: str, bidder_company_id: str | None = None) -> WorkflowResult:
        try:
            listing = self.backend.get_listing(listing_id)
            bids = self.backend.get_listing_bids(listing_id)
            bid = self.bid_validator.place(amount, listing, highest_bid(bids), bidder_company_id)
        except WorkflowError as e:
            logger.info(f"Bid on listing {listing_id} rejected: {e.message}")
            return WorkflowResult.failure(e)

        logger.info(f"Bid {bid.id} accepted on listing {listing_id}")

        # po akceptacji odswiezamy stan oferty, lokalnie nic nie zmieniamy
        try:
            listing = self.backend.get_listing(listing_id)
            bids = self.backend.get_listing_bids(listing_id)
        except WorkflowError as e:
            logger.warning(f"Refresh after bid {bid.id} failed: {e.message}")
            bids = [bid, *bids]

        return WorkflowResult.success(BidPlacedOut(bid=bid, listing=listing, bids=bids), http_status=201)

    # =====================================================
    # CHECKOUT
    # =====================================================
    def start_checkout(self, payload: CheckoutIn) -> WorkflowResult:
        attempt: CheckoutAttempt | None = None
        try:
            listing = self.backend.get_listing(payload.listing_id)
            attempt = self.coordinator.begin(listing)
            attempt.select_method(payload.method)
            attempt.confirm_quantity(payload.quantity)
            row = self.coordinator.request_session(
                attempt,
                return_url=payload.return_url,
                buyer_company_id=payload.buyer_company_id,
                created_by_user_id=payload.created_by_user_id,
            )
        except WorkflowError as e:
            logger.info(f"Checkout for listing {payload.listing_id} failed: {e.message}")
            state = attempt.state if attempt else CheckoutState.IDLE
            return WorkflowResult.failure(e, data={"state": state.value})

        return WorkflowResult.success(
            CheckoutOut(
                attempt_id=row.id,
                state=CheckoutState(row.state),
                order_id=row.order_id,
                payment_id=row.payment_id,
                session_id=row.session_id,
                checkout_url=row.checkout_url,
                total_amount=attempt.total_amount,
            ),
            http_status=201,
        )

    def payment_succeeded(self, payment_id: str | None, return_url: str | None) -> str:
        try:
            return self.coordinator.reconcile_success(payment_id, return_url)
        except WorkflowError as e:
            logger.warning(f"Success return not reconciled, sending user to root: {e.message}")
            return ROOT_URL

    def payment_cancelled(self, payment_id: str | None, return_url: str | None) -> str:
        try:
            return self.coordinator.reconcile_cancel(payment_id, return_url)
        except WorkflowError as e:
            logger.warning(f"Cancel return not reconciled, sending user to root: {e.message}")
            return ROOT_URL

    # =====================================================
    # NOTIFICATIONS
    # =====================================================
    def chat_state_changed(self, user_id: str, change: ChatStateChange) -> None:
        self.gates.get(user_id).post_chat_state(change)

    def push_received(self, user_id: str, payload: PushPayload) -> None:
        self.gates.get(user_id).post_push(payload)

    def page_closed(self, user_id: str, page_id: str) -> None:
        self.gates.get(user_id).page_closed(page_id)

    async def notification_clicked(self, user_id: str, click: NotificationClickIn) -> str:
        return await self.gates.get(user_id).click(click.data, click.tag)

    async def visible_notifications(self, user_id: str) -> list:
        gate = self.gates.get(user_id)
        return await asyncio.to_thread(gate.notifier.visible, user_id)

    def list_notifications(self) -> WorkflowResult:
        try:
            return WorkflowResult.success(self.backend.list_notifications())
        except WorkflowError as e:
            return WorkflowResult.failure(e)

    def mark_notification_read(self, notification_id: str) -> WorkflowResult:
        try:
            self.backend.mark_notification_read(notification_id)
        except WorkflowError as e:
            return WorkflowResult.failure(e)
        return WorkflowResult.success({"id": notification_id, "read": True})

    def mark_all_notifications_read(self) -> WorkflowResult:
        try:
            self.backend.mark_all_notifications_read()
        except WorkflowError as e:
            return WorkflowResult.failure(e)
        return WorkflowResult.success({"read": True})
