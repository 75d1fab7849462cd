from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.future import select

from pricing_service.schemas import PricingResult

from . import config
from .database import create_session_factory
from .db_models import OrderRow
from .errors import StoreInconsistency, StoreUnavailable
from .models import Order, OrderRecord, OrderStatus, utcnow
from .store import CreateResult, OrderStore, UpdateOutcome

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SqlOrderStore(OrderStore):
    """Orders in a relational table whose primary key is the cart id.

    create_if_absent relies on the primary key constraint: of two concurrent
    INSERTs for one cart, the database lets exactly one commit.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        ttl_seconds: int = config.ORDER_TTL_SECONDS,
    ):
        super().__init__(ttl_seconds)
        self.engine = engine
        self.session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def _session(self, operation: str, cart_id: str):
        try:
            async with self.session_factory() as session:
                yield session
        except (OperationalError, InterfaceError, OSError) as e:
            logger.error(f"Database unavailable during {operation} for cart {cart_id}: {e}")
            raise StoreUnavailable(f"Order store unavailable during {operation}") from e

    @staticmethod
    def _to_row(record: OrderRecord) -> OrderRow:
        return OrderRow(
            cart_id=record.cart_id,
            order_id=record.order_id,
            status=record.status.value,
            items=[item.model_dump(mode="json", by_alias=True) for item in record.items],
            subtotal=record.subtotal,
            tax=record.tax,
            total=record.total,
            payment_token=record.payment_token,
            transaction_id=record.transaction_id,
            created_at=record.created_at,
            expires_at=record.expires_at,
        )

    @staticmethod
    def _to_record(row: OrderRow) -> OrderRecord:
        return OrderRecord(
            order_id=row.order_id,
            cart_id=row.cart_id,
            status=OrderStatus(row.status),
            items=row.items,
            subtotal=row.subtotal,
            tax=row.tax,
            total=row.total,
            payment_token=row.payment_token,
            transaction_id=row.transaction_id,
            created_at=_as_utc(row.created_at),
            expires_at=_as_utc(row.expires_at),
        )

    async def _get_record(self, cart_id: str) -> OrderRecord | None:
        async with self._session("get", cart_id) as session:
            result = await session.execute(select(OrderRow).where(OrderRow.cart_id == cart_id))
            row = result.scalars().first()
        if row is None:
            return None
        record = self._to_record(row)
        if record.expires_at <= utcnow():
            return None
        return record

    async def get(self, cart_id: str) -> Order | None:
        record = await self._get_record(cart_id)
        return record.to_order() if record else None

    async def create_if_absent(self, cart_id: str, pricing: PricingResult, payment_token: str) -> CreateResult:
        record = self._new_record(cart_id, pricing, payment_token)

        try:
            async with self._session("create", cart_id) as session:
                async with session.begin():
                    # An expired order no longer holds the key
                    await session.execute(
                        delete(OrderRow).where(
                            OrderRow.cart_id == cart_id,
                            OrderRow.expires_at <= record.created_at,
                        )
                    )
                    session.add(self._to_row(record))
        except IntegrityError:
            logger.info(f"Duplicate cartId {cart_id} detected, returning existing order")
            existing = await self._get_record(cart_id)
            if existing is None:
                raise StoreInconsistency(
                    cart_id,
                    f"Order for cart {cart_id} disappeared after conditional check",
                )
            return CreateResult(order=existing.to_order(), created=False)

        logger.info(f"Order {record.order_id} created for cart {cart_id}")
        return CreateResult(order=record.to_order(), created=True)

    async def update_status(
        self,
        cart_id: str,
        status: OrderStatus,
        transaction_id: str | None = None,
    ) -> UpdateOutcome:
        values = {"status": status.value}
        if transaction_id:
            values["transaction_id"] = transaction_id

        async with self._session("update_status", cart_id) as session:
            async with session.begin():
                result = await session.execute(
                    update(OrderRow)
                    .where(OrderRow.cart_id == cart_id, OrderRow.expires_at > utcnow())
                    .values(**values)
                )
                updated = result.rowcount

        if updated == 0:
            logger.error(f"Status update to {status.value} found no order for cart {cart_id}")
            return UpdateOutcome.NOT_FOUND
        logger.info(f"Order status updated for cart {cart_id}: {status.value}")
        return UpdateOutcome.UPDATED

    async def purge_expired(self) -> int:
        """Deletes orders past their retention window. Returns how many went."""
        async with self._session("purge_expired", "*") as session:
            async with session.begin():
                result = await session.execute(delete(OrderRow).where(OrderRow.expires_at <= utcnow()))
                purged = result.rowcount
        if purged:
            logger.info(f"Purged {purged} expired order(s)")
        return purged

    async def close(self) -> None:
        await self.engine.dispose()
