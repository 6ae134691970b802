# app/services/backend_client.py
from typing import Any, Callable, List

import requests
from requests import RequestException

from app.domain.errors import BackendRejectedError
from app.domain.schemas import (
    Bid,
    BidCreate,
    Listing,
    Notification,
    Order,
    OrderCreate,
    Payment,
    PaymentCreate,
)
from app.utils.logging import get_logger
from app.utils.retry import http_retry
from app.utils.settings import BACKEND_API_URL, HTTP_TIMEOUT_SECONDS

logger = get_logger(__name__)


def error_message(resp: requests.Response | None, default: str) -> str:
    """Wyciaga komunikat bledu z odpowiedzi backendu ({"message": ...})."""
    if resp is None:
        return default
    try:
        body = resp.json()
    except ValueError:
        return default
    message = body.get("message") if isinstance(body, dict) else None
    if isinstance(message, list):
        message = "; ".join(str(m) for m in message)
    return message or default


class BackendClient:
    """
    Klient REST backendu marketplace.
    GET z retry (idempotentne), POST/PATCH dokladnie jedna proba.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        token: str | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or BACKEND_API_URL).rstrip("/")
        self.timeout = timeout or HTTP_TIMEOUT_SECONDS
        self.token = token
        self.http = session or requests.Session()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _send(self, method: str, path: str, payload: dict | None = None) -> Any:
        url = f"{self.base_url}{path}"
        logger.info(f"BackendClient {method} {url}")

        resp = self.http.request(
            method,
            url,
            json=payload,
            headers=self._headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json() if resp.content else None

    @http_retry()
    def _get(self, path: str) -> Any:
        return self._send("GET", path)

    def _call(self, default_error: str, fn: Callable[..., Any], *args) -> Any:
        try:
            return fn(*args)
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            message = error_message(e.response, default_error)
            logger.warning(f"Backend rejected request ({status}): {message}")
            raise BackendRejectedError(message, status) from e
        except RequestException as e:
            logger.error(f"Backend unreachable: {e}")
            raise BackendRejectedError(f"{default_error}: {e}") from e

    # listings / bids
    def get_listing(self, listing_id: str) -> Listing:
        data = self._call("Failed to fetch listing details", self._get, f"/listings/{listing_id}")
        return Listing.model_validate(data)

    def get_listing_bids(self, listing_id: str) -> List[Bid]:
        data = self._call("Failed to fetch bids", self._get, f"/bids/listing/{listing_id}")
        return [Bid.model_validate(b) for b in data or []]

    def create_bid(self, bid: BidCreate) -> Bid:
        data = self._call("Failed to create bid", self._send, "POST", "/bids", bid.to_wire())
        return Bid.model_validate(data)

    # orders / payments
    def create_order(self, order: OrderCreate) -> Order:
        data = self._call("Failed to create order", self._send, "POST", "/orders", order.to_wire())
        return Order.model_validate(data)

    def update_order_status(self, order_id: str, status: str) -> Order:
        data = self._call(
            "Failed to update order status",
            self._send,
            "PATCH",
            f"/orders/{order_id}/status/{status}",
        )
        return Order.model_validate(data)

    def create_payment(self, payment: PaymentCreate) -> Payment:
        data = self._call("Failed to create payment record", self._send, "POST", "/payments", payment.to_wire())
        return Payment.model_validate(data)

    # notifications
    def list_notifications(self) -> List[Notification]:
        data = self._call("Failed to fetch notifications", self._get, "/notifications")
        return [Notification.model_validate(n) for n in data or []]

    def mark_notification_read(self, notification_id: str) -> None:
        self._call(
            "Failed to mark notification as read",
            self._send,
            "PATCH",
            f"/notifications/{notification_id}/read",
        )

    def mark_all_notifications_read(self) -> None:
        self._call("Failed to mark all notifications as read", self._send, "PATCH", "/notifications/read-all")
