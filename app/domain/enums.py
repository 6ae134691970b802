# app/domain/enums.py
from enum import Enum


class ListingStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    EXPIRED = "expired"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    FAILED = "failed"


class PaymentSessionStatus(str, Enum):
    CREATED = "created"
    PENDING = "pending"
    PAID = "paid"
    UNPAID = "unpaid"
    EXPIRED = "expired"

    @property
    def rank(self) -> int:
        #created -> pending -> {paid|unpaid|expired}, bez cofania
        return {"created": 0, "pending": 1}.get(self.value, 2)

    @property
    def is_final(self) -> bool:
        return self.rank == 2

    def can_advance_to(self, target: "PaymentSessionStatus") -> bool:
        return target == self or (not self.is_final and target.rank > self.rank)


class PaymentMethod(str, Enum):
    THAWANI = "thawani"
    STRIPE = "stripe"
    PAYPAL = "paypal"


# jedyna obslugiwana metoda, reszta zadeklarowana ale odrzucana
OPERATIVE_PAYMENT_METHODS = frozenset({PaymentMethod.THAWANI})

# wartosc "method" wysylana do backendu przy tworzeniu platnosci
PAYMENT_METHOD_API_VALUES = {
    PaymentMethod.THAWANI: "card",
    PaymentMethod.STRIPE: "card",
    PaymentMethod.PAYPAL: "card",
}


class CheckoutState(str, Enum):
    IDLE = "IDLE"
    METHOD_SELECTED = "METHOD_SELECTED"
    QUANTITY_CONFIRMED = "QUANTITY_CONFIRMED"
    SESSION_REQUESTED = "SESSION_REQUESTED"
    REDIRECTED = "REDIRECTED"
    RECONCILED_SUCCESS = "RECONCILED_SUCCESS"
    RECONCILED_CANCELLED = "RECONCILED_CANCELLED"
    RECONCILED_EXPIRED = "RECONCILED_EXPIRED"

    @property
    def is_reconciled(self) -> bool:
        return self in RECONCILED_STATES


RECONCILED_STATES = frozenset({
    CheckoutState.RECONCILED_SUCCESS,
    CheckoutState.RECONCILED_CANCELLED,
    CheckoutState.RECONCILED_EXPIRED,
})

CHECKOUT_TRANSITIONS = {
    CheckoutState.IDLE: {CheckoutState.METHOD_SELECTED},
    CheckoutState.METHOD_SELECTED: {
        CheckoutState.METHOD_SELECTED,
        CheckoutState.QUANTITY_CONFIRMED,
    },
    CheckoutState.QUANTITY_CONFIRMED: {
        CheckoutState.METHOD_SELECTED,
        CheckoutState.QUANTITY_CONFIRMED,
        CheckoutState.SESSION_REQUESTED,
    },
    CheckoutState.SESSION_REQUESTED: {
        CheckoutState.METHOD_SELECTED,
        CheckoutState.REDIRECTED,
    },
    CheckoutState.REDIRECTED: set(RECONCILED_STATES),
    CheckoutState.RECONCILED_SUCCESS: set(),
    CheckoutState.RECONCILED_CANCELLED: set(),
    CheckoutState.RECONCILED_EXPIRED: set(),
}


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    BACKEND_REJECTED = "backend_rejected"
    GATEWAY_FAILURE = "gateway_failure"
    RECONCILIATION = "reconciliation"


class PageMessageType(str, Enum):
    FCM_MESSAGE = "FCM_MESSAGE"
    CHAT_STATE_CHANGE = "CHAT_STATE_CHANGE"
