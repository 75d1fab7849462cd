from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Union
import logging

from pricing_service import logic as pricing
from pricing_service import config as pricing_config

from .errors import ErrorCode, PricingError, StoreInconsistency, UnclassifiedGatewayError
from .models import CheckoutRequest, Order, OrderStatus
from .payment import PaymentGateway
from .store import OrderStore, UpdateOutcome

logger = logging.getLogger(__name__)

PAYMENT_FAILED_MESSAGE = "Payment capture failed"


class CheckoutState(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    CREATED = "CREATED"
    CAPTURED = "CAPTURED"
    FAILED = "FAILED"


_STATE_BY_STATUS = {
    OrderStatus.CREATED: CheckoutState.CREATED,
    OrderStatus.PAYMENT_CAPTURED: CheckoutState.CAPTURED,
    OrderStatus.PAYMENT_FAILED: CheckoutState.FAILED,
}


def checkout_state(order: Order | None) -> CheckoutState:
    if order is None:
        return CheckoutState.NOT_STARTED
    return _STATE_BY_STATUS[order.status]


@dataclass(frozen=True)
class CheckoutSuccess:
    order: Order
    # True when the order already existed and no work was done
    replayed: bool

    @property
    def http_status(self) -> int:
        return 200 if self.replayed else 201


@dataclass(frozen=True)
class CheckoutFailure:
    code: ErrorCode
    message: str
    order_id: str | None = None


CheckoutResult = Union[CheckoutSuccess, CheckoutFailure]


class CheckoutOrchestrator:
    """Runs one checkout per call. Holds no per-request state of its own.

    The store's create_if_absent is the only coordination between concurrent
    requests for one cart: whoever creates the order owns the payment capture.
    """

    def __init__(
        self,
        store: OrderStore,
        gateway: PaymentGateway,
        tax_rate: Decimal = pricing_config.TAX_RATE,
    ):
        self.store = store
        self.gateway = gateway
        self.tax_rate = tax_rate

    async def checkout(self, request: CheckoutRequest) -> CheckoutResult:
        cart_id = request.cart_id

        # 1. Idempotency check. Whatever state a prior attempt reached is final for this cart.
        existing = await self.store.get(cart_id)
        if existing is not None:
            logger.info(
                f"Returning existing order (idempotent): cart={cart_id}, order={existing.order_id}, "
                f"state={checkout_state(existing).value}"
            )
            return CheckoutSuccess(order=existing, replayed=True)

        # 2. Pricing, recomputed from price x quantity only
        try:
            pricing_result = pricing.calculate_pricing(request.items, self.tax_rate)
        except ArithmeticError as e:
            logger.exception(f"Error calculating price for cart {cart_id}: {e}")
            raise PricingError(cart_id) from e

        # 3. Atomic creation; losing the race means someone else owns the capture
        created = await self.store.create_if_absent(cart_id, pricing_result, request.payment_token)
        order = created.order
        if not created.created:
            logger.info(f"Returning existing order (race condition resolved): cart={cart_id}, order={order.order_id}")
            return CheckoutSuccess(order=order, replayed=True)

        # 4. Payment capture, at most once per order
        try:
            capture = await self.gateway.capture(order.order_id, order.total, request.payment_token)
        except Exception as e:
            logger.exception(f"Unexpected payment gateway error for order {order.order_id}: {e}")
            await self._mark_failed_after_gateway_error(cart_id, order.order_id)
            raise UnclassifiedGatewayError(order.order_id) from e

        if not capture.success:
            await self._update_status(cart_id, OrderStatus.PAYMENT_FAILED)
            logger.warning(f"Payment failed for order {order.order_id}, cart {cart_id}: {capture.failure_reason}")
            return CheckoutFailure(
                code=ErrorCode.PAYMENT_FAILED,
                message=PAYMENT_FAILED_MESSAGE,
                order_id=order.order_id,
            )

        await self._update_status(cart_id, OrderStatus.PAYMENT_CAPTURED, capture.transaction_id)
        completed = order.model_copy(
            update={"status": OrderStatus.PAYMENT_CAPTURED, "transaction_id": capture.transaction_id}
        )
        logger.info(f"Checkout completed successfully: order={order.order_id}, cart={cart_id}, total={order.total}")
        return CheckoutSuccess(order=completed, replayed=False)

    async def _update_status(
        self,
        cart_id: str,
        status: OrderStatus,
        transaction_id: str | None = None,
    ) -> None:
        outcome = await self.store.update_status(cart_id, status, transaction_id)
        if outcome is UpdateOutcome.NOT_FOUND:
            raise StoreInconsistency(cart_id)

    async def _mark_failed_after_gateway_error(self, cart_id: str, order_id: str) -> None:
        # Leave an auditable terminal state rather than an order stuck at CREATED.
        # The gateway error is what gets reported, so a failure here is only logged.
        try:
            await self._update_status(cart_id, OrderStatus.PAYMENT_FAILED)
        except Exception as e:
            logger.error(f"Could not mark order {order_id} as PAYMENT_FAILED after gateway error: {e}")
