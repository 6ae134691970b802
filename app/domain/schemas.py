# app/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.domain.enums import (
    CheckoutState,
    ListingStatus,
    OrderStatus,
    PaymentMethod,
    PaymentSessionStatus,
)


class BackendModel(BaseModel):
    """Bazowy schema dla payloadow backendu (camelCase na wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# =====================================================
# BACKEND RECORDS
# =====================================================
class Listing(BackendModel):
    """Schema dla oferty (listing) z backendu."""

    id: str
    title: str | None = None
    starting_price: Decimal
    stock_amount: int = 0
    unit_of_measure: str = ""
    is_biddable: bool = False
    status: ListingStatus
    expires_at: datetime | None = None
    seller_company_id: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _lower_status(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class Bid(BackendModel):
    id: str
    listing_id: str
    amount: Decimal
    bidder_company_id: str | None = None
    bidder_user_id: str | None = None
    created_at: datetime | None = None


class BidCreate(BackendModel):
    """Schema dla tworzenia oferty kupna (bid)."""

    listing_id: str
    amount: str
    bidder_company_id: str | None = None


class OrderItem(BackendModel):
    listing_id: str
    quantity: int = Field(..., gt=0)
    unit_price: str


class OrderCreate(BackendModel):
    """Schema dla tworzenia zamowienia w backendzie."""

    order_status: OrderStatus = OrderStatus.PENDING
    items: List[OrderItem]
    buyer_company_id: str | None = None
    seller_company_id: str | None = None
    created_by_user_id: str | None = None


class Order(BackendModel):
    id: str
    order_status: OrderStatus = Field(
        default=OrderStatus.PENDING,
        validation_alias=AliasChoices("orderStatus", "status", "order_status"),
    )
    items: List[OrderItem] = []
    buyer_company_id: str | None = None
    seller_company_id: str | None = None
    total_amount: Decimal | None = None
    created_at: datetime | None = None


class PaymentCreate(BackendModel):
    order_id: str
    amount: str
    method: str
    transaction_id: str | None = None


class Payment(BackendModel):
    id: str
    order_id: str | None = None
    amount: str
    method: str
    status: str | None = None
    transaction_id: str | None = None


class Notification(BackendModel):
    """Schema dla powiadomienia (response)."""

    id: str
    title: str
    body: str = Field(default="", validation_alias=AliasChoices("body", "message"))
    chat_id: str | None = None
    read: bool = False
    created_at: datetime | None = None


# =====================================================
# PAYMENT GATEWAY
# =====================================================
class GatewayProduct(BaseModel):
    name: str
    quantity: int
    unit_amount: int


class GatewaySessionRequest(BaseModel):
    client_reference_id: str
    products: List[GatewayProduct]
    metadata: Dict[str, str] = {}
    success_url: str
    cancel_url: str
    customer_id: str | None = None


class GatewaySessionDetails(BaseModel):
    session_id: str
    client_reference_id: str | None = None
    status: PaymentSessionStatus
    total_amount: int = 0
    currency: str = ""
    metadata: Dict[str, Any] = {}


class PaymentSession(BaseModel):
    """Sesja platnosci, status monotoniczny: created -> pending -> {paid|unpaid|expired}."""

    session_id: str
    client_reference_id: str
    status: PaymentSessionStatus = PaymentSessionStatus.CREATED
    checkout_url: str
    return_url: str
    cancel_url: str


# =====================================================
# PUSH DELIVERY
# =====================================================
class PushNotificationContent(BaseModel):
    title: str | None = None
    body: str | None = None
    icon: str | None = None


class PushData(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    chat_id: str | None = Field(default=None, alias="chatId")
    content: str | None = None


class PushPayload(BaseModel):
    """Payload push: { notification: {title, body, icon}, data: {chatId, content, ...} }"""

    notification: PushNotificationContent | None = None
    data: PushData = PushData()

    @property
    def chat_id(self) -> str | None:
        return self.data.chat_id


class ChatStateChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["CHAT_STATE_CHANGE"] = "CHAT_STATE_CHANGE"
    chat_id: str | None = Field(default=None, alias="chatId")


class SystemNotification(BaseModel):
    title: str
    body: str
    icon: str
    badge: str
    tag: str | None = None
    data: Dict[str, Any] = {}


# =====================================================
# API (presentation layer)
# =====================================================
class BidIn(BaseModel):
    """Schema dla skladania oferty przez uzytkownika."""

    amount: str = Field(..., description="Kwota oferty, max 2 miejsca po przecinku")
    bidder_company_id: str | None = None


class BidPlacedOut(BaseModel):
    bid: Bid
    listing: Listing
    bids: List[Bid]


class CheckoutIn(BaseModel):
    """Schema dla rozpoczecia platnosci (buy now)."""

    listing_id: str
    quantity: int = Field(..., description="Ilosc (musi być > 0 i <= stan)")
    method: PaymentMethod = PaymentMethod.THAWANI
    return_url: str = "/"
    buyer_company_id: str | None = None
    created_by_user_id: str | None = None


class CheckoutOut(BaseModel):
    attempt_id: int
    state: CheckoutState
    order_id: str
    payment_id: str
    session_id: str
    checkout_url: str
    total_amount: str

    model_config = ConfigDict(from_attributes=True)


class NotificationClickIn(BaseModel):
    tag: str | None = None
    data: PushData | None = None


class NotificationClickOut(BaseModel):
    navigate_to: str
