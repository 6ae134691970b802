"""Workflow error codes and exceptions.

Error code ranges:
  1xxx: Bid validation
  2xxx: Checkout validation / state machine
  3xxx: Backend rejection
  4xxx: Payment gateway
  5xxx: Reconciliation
"""

from app.domain.enums import ErrorKind


class WorkflowError(Exception):
    """Base workflow error."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, code: int, message: str, http_status: int = 400) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Bid validation ---

class InvalidBidAmountError(WorkflowError):
    def __init__(self, raw: str) -> None:
        super().__init__(
            1001,
            f"Bid amount must be a positive number with at most 2 decimals, got {raw!r}",
            422,
        )


class BidTooLowError(WorkflowError):
    def __init__(self, amount: str, minimum: str) -> None:
        super().__init__(1002, f"Bid {amount} must be higher than {minimum}", 422)
        self.minimum = minimum


class ListingNotBiddableError(WorkflowError):
    def __init__(self, listing_id: str, reason: str) -> None:
        super().__init__(1003, f"Listing {listing_id} does not accept bids: {reason}", 422)


# --- 2xxx: Checkout ---

class UnsupportedPaymentMethodError(WorkflowError):
    def __init__(self, method: str) -> None:
        super().__init__(2001, f"Payment method {method} is not yet implemented", 422)


class InvalidQuantityError(WorkflowError):
    def __init__(self, quantity: object) -> None:
        super().__init__(2002, f"Quantity must be a positive integer, got {quantity!r}", 422)


class QuantityExceedsStockError(WorkflowError):
    def __init__(self, quantity: int, stock: int) -> None:
        super().__init__(
            2003,
            f"Requested quantity {quantity} exceeds available stock {stock}",
            422,
        )


class InvalidTransitionError(WorkflowError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(2004, f"Checkout cannot move from {current} to {target}", 409)


class InvalidPaymentSessionTransitionError(WorkflowError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(2005, f"Payment session cannot move from {current} to {target}", 409)


# --- 3xxx: Backend ---

class BackendRejectedError(WorkflowError):
    kind = ErrorKind.BACKEND_REJECTED

    def __init__(self, message: str, upstream_status: int | None = None) -> None:
        super().__init__(3001, message, 409 if upstream_status and upstream_status < 500 else 502)
        self.upstream_status = upstream_status


# --- 4xxx: Gateway ---

class GatewayError(WorkflowError):
    kind = ErrorKind.GATEWAY_FAILURE

    def __init__(self, message: str, upstream_status: int | None = None) -> None:
        super().__init__(4001, message, 502)
        self.upstream_status = upstream_status


# --- 5xxx: Reconciliation ---

class ReconciliationError(WorkflowError):
    kind = ErrorKind.RECONCILIATION

    def __init__(self, detail: str) -> None:
        super().__init__(5001, f"Payment return could not be reconciled: {detail}", 400)


class PaymentNotConfirmedError(WorkflowError):
    kind = ErrorKind.RECONCILIATION

    def __init__(self, payment_id: str, status: str) -> None:
        super().__init__(5002, f"Payment {payment_id} is not confirmed by the gateway (status {status})", 402)


class ReconciliationLockError(WorkflowError):
    kind = ErrorKind.RECONCILIATION

    def __init__(self, payment_id: str) -> None:
        super().__init__(5003, f"Reconciliation lock for payment {payment_id} is unavailable", 503)


class ConcurrentUpdateError(WorkflowError):
    kind = ErrorKind.RECONCILIATION

    def __init__(self, attempt_id: int) -> None:
        super().__init__(5004, f"Checkout attempt {attempt_id} was modified by another operation", 409)
