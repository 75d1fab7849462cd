from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict
import logging

from pricing_service.schemas import PricingResult

from . import config
from .models import Order, OrderRecord, OrderStatus, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreateResult:
    """Outcome of create_if_absent. created is False when the cart already had an order."""

    order: Order
    created: bool


class UpdateOutcome(str, Enum):
    UPDATED = "UPDATED"
    NOT_FOUND = "NOT_FOUND"


class OrderStore(ABC):
    """Durable orders keyed by cart id.

    Implementations raise StoreUnavailable when the backend cannot be reached
    and never retry on their own.
    """

    def __init__(self, ttl_seconds: int = config.ORDER_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds

    @abstractmethod
    async def get(self, cart_id: str) -> Order | None:
        """Return the order for cart_id, or None. No side effects."""
        ...

    @abstractmethod
    async def create_if_absent(
        self,
        cart_id: str,
        pricing: PricingResult,
        payment_token: str,
    ) -> CreateResult:
        """Atomically persist a CREATED order unless one exists for cart_id.

        An existing order is returned untouched with created=False.
        """
        ...

    @abstractmethod
    async def update_status(
        self,
        cart_id: str,
        status: OrderStatus,
        transaction_id: str | None = None,
    ) -> UpdateOutcome:
        """Overwrite status (and transaction_id when given) on an existing order."""
        ...

    async def close(self) -> None:
        """Release backend resources."""

    def _new_record(self, cart_id: str, pricing: PricingResult, payment_token: str) -> OrderRecord:
        return OrderRecord.new(cart_id, pricing, payment_token, self.ttl_seconds)


class InMemoryOrderStore(OrderStore):
    """Process-local store for development and tests.

    No operation awaits between reading and writing the dict, so each one is
    atomic with respect to other coroutines on the same event loop.
    """

    def __init__(self, ttl_seconds: int = config.ORDER_TTL_SECONDS):
        super().__init__(ttl_seconds)
        self._records: Dict[str, OrderRecord] = {}

    def _live_record(self, cart_id: str) -> OrderRecord | None:
        record = self._records.get(cart_id)
        if record is not None and record.expires_at <= utcnow():
            # Passive expiry, same as a TTL in Redis
            logger.debug(f"Order for cart {cart_id} expired, dropping it")
            del self._records[cart_id]
            return None
        return record

    async def get(self, cart_id: str) -> Order | None:
        record = self._live_record(cart_id)
        return record.to_order() if record else None

    async def create_if_absent(self, cart_id: str, pricing: PricingResult, payment_token: str) -> CreateResult:
        existing = self._live_record(cart_id)
        if existing is not None:
            logger.info(f"Duplicate cartId {cart_id} detected, returning existing order {existing.order_id}")
            return CreateResult(order=existing.to_order(), created=False)

        record = self._new_record(cart_id, pricing, payment_token)
        self._records[cart_id] = record
        logger.info(f"Order {record.order_id} created for cart {cart_id}")
        return CreateResult(order=record.to_order(), created=True)

    async def update_status(
        self,
        cart_id: str,
        status: OrderStatus,
        transaction_id: str | None = None,
    ) -> UpdateOutcome:
        record = self._live_record(cart_id)
        if record is None:
            return UpdateOutcome.NOT_FOUND

        changes = {"status": status}
        if transaction_id:
            changes["transaction_id"] = transaction_id
        self._records[cart_id] = record.model_copy(update=changes)
        logger.info(f"Order status updated for cart {cart_id}: {status.value}")
        return UpdateOutcome.UPDATED

    def raw_record(self, cart_id: str) -> OrderRecord | None:
        """Persisted record including internal fields. For inspection only."""
        return self._records.get(cart_id)
