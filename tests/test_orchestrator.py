"""Tests for the checkout workflow: idempotency, races and payment outcomes."""
import asyncio
from decimal import Decimal

import pytest

from checkout_service.errors import (
    ErrorCode,
    PricingError,
    StoreInconsistency,
    StoreUnavailable,
    UnclassifiedGatewayError,
)
from checkout_service.models import OrderStatus
from checkout_service.orchestrator import (
    CheckoutFailure,
    CheckoutOrchestrator,
    CheckoutState,
    CheckoutSuccess,
    checkout_state,
)
from checkout_service.store import CreateResult, InMemoryOrderStore, UpdateOutcome

from conftest import ExplodingGateway, SlowReadStore


@pytest.fixture
def memory_store():
    return InMemoryOrderStore()


@pytest.fixture
def orchestrator(memory_store, gateway):
    return CheckoutOrchestrator(memory_store, gateway)


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_new_cart_is_priced_created_and_captured(self, orchestrator, memory_store, gateway, make_request):
        result = await orchestrator.checkout(make_request())

        assert isinstance(result, CheckoutSuccess)
        assert result.replayed is False
        assert result.http_status == 201
        order = result.order
        assert order.status == OrderStatus.PAYMENT_CAPTURED
        assert order.transaction_id.startswith("txn-")
        assert order.total == Decimal("76.97")

        assert len(gateway.calls) == 1
        assert gateway.calls[0]["order_id"] == order.order_id
        assert gateway.calls[0]["amount"] == Decimal("76.97")

        stored = await memory_store.get("cart-123")
        assert stored == order

    @pytest.mark.asyncio
    async def test_client_prices_do_not_leak_into_totals(self, orchestrator, make_request):
        request = make_request(items=[{"productId": "p1", "name": "Widget", "price": 1.11, "quantity": 3, "lineTotal": 0.01}])
        result = await orchestrator.checkout(request)

        assert result.order.items[0].line_total == Decimal("3.33")
        assert result.order.total == Decimal("3.66")


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_repeated_submissions_return_the_same_order(self, orchestrator, gateway, make_request):
        first = await orchestrator.checkout(make_request())
        replays = [await orchestrator.checkout(make_request()) for _ in range(4)]

        assert all(replay.replayed and replay.http_status == 200 for replay in replays)
        assert all(replay.order == first.order for replay in replays)
        assert len(gateway.calls) == 1

    @pytest.mark.asyncio
    async def test_replay_ignores_new_items_and_token(self, orchestrator, gateway, make_request):
        first = await orchestrator.checkout(make_request())
        replay = await orchestrator.checkout(
            make_request(items=[{"productId": "p9", "name": "Other", "price": 500, "quantity": 9}], payment_token="tok_other")
        )

        assert replay.order == first.order
        assert len(gateway.calls) == 1

    @pytest.mark.asyncio
    async def test_failed_cart_is_never_retried(self, orchestrator, memory_store, gateway, make_request):
        failed = await orchestrator.checkout(make_request(payment_token="tok_fail"))
        again = await orchestrator.checkout(make_request(payment_token="tok_valid"))

        assert isinstance(failed, CheckoutFailure)
        assert isinstance(again, CheckoutSuccess)
        assert again.replayed is True
        assert again.order.status == OrderStatus.PAYMENT_FAILED
        assert len(gateway.calls) == 1

    @pytest.mark.asyncio
    async def test_different_carts_are_independent(self, orchestrator, gateway, make_request):
        first = await orchestrator.checkout(make_request(cart_id="cart-a"))
        second = await orchestrator.checkout(make_request(cart_id="cart-b"))

        assert first.order.order_id != second.order.order_id
        assert len(gateway.calls) == 2


class TestRaces:
    @pytest.mark.asyncio
    async def test_concurrent_duplicates_charge_once(self, gateway, make_request):
        store = SlowReadStore()
        orchestrator = CheckoutOrchestrator(store, gateway)

        results = await asyncio.gather(*(orchestrator.checkout(make_request()) for _ in range(2)))

        assert len(gateway.calls) == 1
        assert results[0].order.order_id == results[1].order.order_id
        assert sorted(result.replayed for result in results) == [False, True]

    @pytest.mark.asyncio
    async def test_lost_race_skips_payment(self, gateway, make_request, pricing):
        winner_store = InMemoryOrderStore()
        existing = (await winner_store.create_if_absent("cart-123", pricing, "tok_valid")).order

        class LosingStore(InMemoryOrderStore):
            async def get(self, cart_id):
                return None

            async def create_if_absent(self, cart_id, pricing, payment_token):
                return CreateResult(order=existing, created=False)

        orchestrator = CheckoutOrchestrator(LosingStore(), gateway)
        result = await orchestrator.checkout(make_request())

        assert result == CheckoutSuccess(order=existing, replayed=True)
        assert gateway.calls == []


class TestPaymentFailures:
    @pytest.mark.asyncio
    async def test_decline_marks_order_failed_and_keeps_totals(self, orchestrator, memory_store, make_request):
        result = await orchestrator.checkout(make_request(payment_token="tok_declined"))

        assert isinstance(result, CheckoutFailure)
        assert result.code is ErrorCode.PAYMENT_FAILED
        assert result.message == "Payment capture failed"

        stored = await memory_store.get("cart-123")
        assert result.order_id == stored.order_id
        assert stored.status == OrderStatus.PAYMENT_FAILED
        assert stored.transaction_id is None
        assert (stored.subtotal, stored.tax, stored.total) == (Decimal("69.97"), Decimal("7.00"), Decimal("76.97"))

    @pytest.mark.asyncio
    async def test_unclassified_gateway_error_fails_order_and_propagates(self, memory_store, make_request):
        gateway = ExplodingGateway()
        orchestrator = CheckoutOrchestrator(memory_store, gateway)

        with pytest.raises(UnclassifiedGatewayError) as excinfo:
            await orchestrator.checkout(make_request())

        stored = await memory_store.get("cart-123")
        assert excinfo.value.order_id == stored.order_id
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert stored.status == OrderStatus.PAYMENT_FAILED
        assert gateway.calls == 1

    @pytest.mark.asyncio
    async def test_gateway_error_is_still_reported_when_status_update_fails(self, make_request):
        class BrokenUpdateStore(InMemoryOrderStore):
            async def update_status(self, cart_id, status, transaction_id=None):
                raise StoreUnavailable("down")

        orchestrator = CheckoutOrchestrator(BrokenUpdateStore(), ExplodingGateway())

        with pytest.raises(UnclassifiedGatewayError):
            await orchestrator.checkout(make_request())


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_vanished_order_is_an_inconsistency(self, gateway, make_request):
        class VanishingStore(InMemoryOrderStore):
            async def update_status(self, cart_id, status, transaction_id=None):
                return UpdateOutcome.NOT_FOUND

        orchestrator = CheckoutOrchestrator(VanishingStore(), gateway)

        with pytest.raises(StoreInconsistency):
            await orchestrator.checkout(make_request())
        assert len(gateway.calls) == 1

    @pytest.mark.asyncio
    async def test_store_unavailable_propagates_before_payment(self, gateway, make_request):
        class DownStore(InMemoryOrderStore):
            async def get(self, cart_id):
                raise StoreUnavailable("down")

        orchestrator = CheckoutOrchestrator(DownStore(), gateway)

        with pytest.raises(StoreUnavailable):
            await orchestrator.checkout(make_request())
        assert gateway.calls == []


class TestPricingFailures:
    @pytest.mark.asyncio
    async def test_unpriceable_cart_is_rejected_before_anything_is_stored(self, orchestrator, memory_store, gateway, make_request):
        items = [{"productId": "p1", "name": "Widget", "unitPrice": 29.99, "quantity": 10**28}]

        with pytest.raises(PricingError) as excinfo:
            await orchestrator.checkout(make_request(items=items))

        assert isinstance(excinfo.value.__cause__, ArithmeticError)
        assert await memory_store.get("cart-123") is None
        assert gateway.calls == []


@pytest.mark.asyncio
async def test_checkout_state_follows_order_status(orchestrator, memory_store, make_request):
    assert checkout_state(await memory_store.get("cart-123")) is CheckoutState.NOT_STARTED
    await orchestrator.checkout(make_request())
    assert checkout_state(await memory_store.get("cart-123")) is CheckoutState.CAPTURED
