from enum import Enum


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Status code each client-facing error maps onto
HTTP_STATUS = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.PAYMENT_FAILED: 402,
    ErrorCode.ORDER_NOT_FOUND: 404,
    ErrorCode.INTERNAL_ERROR: 500,
}

INTERNAL_ERROR_MESSAGE = "An unexpected error occurred"


class CheckoutServiceError(Exception):
    """Base class for unexpected failures; always reported as INTERNAL_ERROR."""


class StoreUnavailable(CheckoutServiceError):
    """The order store could not be reached. Never retried by the store itself."""


class StoreInconsistency(CheckoutServiceError):
    """A record that must exist is gone, e.g. deleted between create and update."""

    def __init__(self, cart_id: str, message: str | None = None):
        self.cart_id = cart_id
        super().__init__(message or f"Order for cart {cart_id} vanished after creation")


class UnclassifiedGatewayError(CheckoutServiceError):
    """The payment gateway failed in a way that is neither a capture nor a decline."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Payment gateway error while capturing order {order_id}")


class PricingError(CheckoutServiceError):
    """The cart could not be priced, e.g. amounts too large for decimal arithmetic."""

    def __init__(self, cart_id: str):
        self.cart_id = cart_id
        super().__init__(f"Could not price cart {cart_id}")
