import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError
from contextlib import contextmanager
import logging

from pricing_service.schemas import PricingResult

from . import config
from .errors import StoreInconsistency, StoreUnavailable
from .models import Order, OrderRecord, OrderStatus
from .store import CreateResult, OrderStore, UpdateOutcome

logger = logging.getLogger(__name__)

# Each order is a hash: 'record' holds the JSON written at creation and is never
# rewritten; 'status' and 'transactionId' are the only fields that change.
CREATE_ORDER_LUA = """
if redis.call('EXISTS', KEYS[1]) == 1 then
  return 0
end
redis.call('HSET', KEYS[1], 'record', ARGV[1], 'status', ARGV[2])
redis.call('EXPIRE', KEYS[1], ARGV[3])
return 1
"""

# HSET on an existing hash leaves its TTL in place
UPDATE_STATUS_LUA = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return 0
end
redis.call('HSET', KEYS[1], 'status', ARGV[1])
if ARGV[2] ~= '' then
  redis.call('HSET', KEYS[1], 'transactionId', ARGV[2])
end
return 1
"""


def create_redis_client() -> redis.Redis:
    """Builds a client with its own connection pool from config."""
    logger.info(f"Creating Redis connection pool for {config.REDIS_HOST}:{config.REDIS_PORT}")
    pool = redis.ConnectionPool(
        host=config.REDIS_HOST,
        port=config.REDIS_PORT,
        db=config.REDIS_DB,
        decode_responses=True # Decode responses to strings
    )
    return redis.Redis(connection_pool=pool)


@contextmanager
def _unavailable_on_errors(operation: str, cart_id: str):
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        logger.error(f"Redis unavailable during {operation} for cart {cart_id}: {e}")
        raise StoreUnavailable(f"Order store unavailable during {operation}") from e


class RedisOrderStore(OrderStore):
    """Orders as hashes under '<prefix><cartId>', expired by Redis TTL."""

    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int = config.ORDER_TTL_SECONDS,
        key_prefix: str = config.ORDER_KEY_PREFIX,
    ):
        super().__init__(ttl_seconds)
        self.redis = client
        self.key_prefix = key_prefix
        self._create_order_script = client.register_script(CREATE_ORDER_LUA)
        self._update_status_script = client.register_script(UPDATE_STATUS_LUA)

    def _key(self, cart_id: str) -> str:
        return f"{self.key_prefix}{cart_id}"

    async def _get_record(self, cart_id: str) -> OrderRecord | None:
        with _unavailable_on_errors("get", cart_id):
            fields = await self.redis.hgetall(self._key(cart_id))
        if not fields:
            return None
        record = OrderRecord.model_validate_json(fields["record"])
        return record.model_copy(
            update={
                "status": OrderStatus(fields["status"]),
                "transaction_id": fields.get("transactionId"),
            }
        )

    async def get(self, cart_id: str) -> Order | None:
        record = await self._get_record(cart_id)
        return record.to_order() if record else None

    async def create_if_absent(self, cart_id: str, pricing: PricingResult, payment_token: str) -> CreateResult:
        record = self._new_record(cart_id, pricing, payment_token)
        value = record.model_dump_json(by_alias=True)

        # The EXISTS check and the write run as one script: only one caller per key ever sees 1
        with _unavailable_on_errors("create", cart_id):
            stored = await self._create_order_script(
                keys=[self._key(cart_id)],
                args=[value, record.status.value, self.ttl_seconds],
            )

        if stored:
            logger.info(f"Order {record.order_id} created for cart {cart_id}")
            return CreateResult(order=record.to_order(), created=True)

        logger.info(f"Duplicate cartId {cart_id} detected, returning existing order")
        existing = await self._get_record(cart_id)
        if existing is None:
            raise StoreInconsistency(
                cart_id,
                f"Order for cart {cart_id} disappeared after conditional check",
            )
        return CreateResult(order=existing.to_order(), created=False)

    async def update_status(
        self,
        cart_id: str,
        status: OrderStatus,
        transaction_id: str | None = None,
    ) -> UpdateOutcome:
        with _unavailable_on_errors("update_status", cart_id):
            updated = await self._update_status_script(
                keys=[self._key(cart_id)],
                args=[status.value, transaction_id or ""],
            )
        if not updated:
            logger.error(f"Status update to {status.value} found no order for cart {cart_id}")
            return UpdateOutcome.NOT_FOUND
        logger.info(f"Order status updated for cart {cart_id}: {status.value}")
        return UpdateOutcome.UPDATED

    async def close(self) -> None:
        await self.redis.aclose()
