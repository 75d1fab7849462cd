"""
Shared fixtures for the checkout test suite.

Provides:
- fake_redis: fakeredis client with Lua support, so the store's scripts really run
- store: one fixture per OrderStore backend (memory, redis, sql) for contract tests
- gateway: MockPaymentGateway without simulated latency
- make_request / sample_items: request builders
"""
import asyncio

import fakeredis
import pytest
import pytest_asyncio

from checkout_service.crud import RedisOrderStore
from checkout_service.database import create_engine, create_tables
from checkout_service.models import CheckoutRequest
from checkout_service.payment import CaptureResult, MockPaymentGateway, PaymentGateway
from checkout_service.sql_crud import SqlOrderStore
from checkout_service.store import InMemoryOrderStore
from pricing_service.logic import calculate_pricing
from pricing_service.schemas import CartItem


SAMPLE_ITEMS = [
    {"productId": "p1", "name": "Widget", "unitPrice": 29.99, "quantity": 2},
    {"productId": "p2", "name": "Cable", "unitPrice": 9.99, "quantity": 1},
]


class ExplodingGateway(PaymentGateway):
    """Gateway that fails with something that is neither a capture nor a decline."""

    def __init__(self):
        self.calls = 0

    async def capture(self, order_id, amount, payment_token) -> CaptureResult:
        self.calls += 1
        raise RuntimeError("gateway timed out mid-request")


class SlowReadStore(InMemoryOrderStore):
    """Yields after every read so concurrent checkouts all miss the idempotency check."""

    async def get(self, cart_id):
        order = await super().get(cart_id)
        await asyncio.sleep(0)
        return order


@pytest.fixture
def sample_items():
    return [dict(item) for item in SAMPLE_ITEMS]


@pytest.fixture
def make_request():
    def _make(cart_id="cart-123", items=None, payment_token="tok_valid"):
        return CheckoutRequest.model_validate(
            {"cartId": cart_id, "items": items or SAMPLE_ITEMS, "paymentToken": payment_token}
        )
    return _make


@pytest.fixture
def pricing():
    return calculate_pricing([CartItem.model_validate(item) for item in SAMPLE_ITEMS])


@pytest.fixture
def gateway():
    return MockPaymentGateway(latency_seconds=0)


def fake_redis_client(connected=True) -> fakeredis.FakeAsyncRedis:
    # A server per client; fakeredis otherwise shares state between clients
    server = fakeredis.FakeServer()
    server.connected = connected
    return fakeredis.FakeAsyncRedis(server=server, decode_responses=True)


@pytest_asyncio.fixture
async def fake_redis():
    client = fake_redis_client()
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await create_tables(engine)
    store = SqlOrderStore(engine)
    yield store
    await store.close()


@pytest_asyncio.fixture(params=["memory", "redis", "sql"])
async def store(request, fake_redis, tmp_path):
    """Every backend, so the contract tests run against each one."""
    if request.param == "memory":
        yield InMemoryOrderStore()
    elif request.param == "redis":
        yield RedisOrderStore(fake_redis)
    else:
        engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
        await create_tables(engine)
        sql = SqlOrderStore(engine)
        yield sql
        await sql.close()


