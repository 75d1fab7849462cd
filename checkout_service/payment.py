from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List
import asyncio
import logging
import uuid

import httpx

from . import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureResult:
    """Result of a capture attempt."""

    success: bool
    transaction_id: str | None = None
    failure_reason: str | None = None


def mask_token(payment_token: str) -> str:
    # Never log a full token
    return f"{payment_token[:4]}****" if len(payment_token) > 8 else "****"


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    async def capture(self, order_id: str, amount: Decimal, payment_token: str) -> CaptureResult:
        """Capture amount for order_id with the given payment token."""
        ...

    async def close(self) -> None:
        """Release any network resources."""


class MockPaymentGateway(PaymentGateway):
    """Simulated gateway: declines a fixed set of tokens, captures everything else.

    Useful for local runs and tests; every call is recorded in `calls`.
    """

    def __init__(
        self,
        failure_tokens: Iterable[str] = config.PAYMENT_FAILURE_TOKENS,
        latency_seconds: float = config.PAYMENT_SIMULATED_LATENCY_SECONDS,
    ):
        self.failure_tokens = frozenset(failure_tokens)
        self.latency_seconds = latency_seconds
        self.calls: List[dict] = []

    async def capture(self, order_id: str, amount: Decimal, payment_token: str) -> CaptureResult:
        self.calls.append({"order_id": order_id, "amount": amount, "payment_token": payment_token})
        logger.info(f"Attempting payment capture for order {order_id}: amount={amount}, token={mask_token(payment_token)}")

        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds) # Simulate network latency

        if payment_token in self.failure_tokens:
            logger.warning(f"Payment capture failed for order {order_id}: token_declined")
            return CaptureResult(success=False, failure_reason="token_declined")

        transaction_id = f"txn-{uuid.uuid4()}"
        logger.info(f"Payment captured successfully for order {order_id}: {transaction_id}")
        return CaptureResult(success=True, transaction_id=transaction_id)


class HttpPaymentGateway(PaymentGateway):
    """Talks to a payment service over HTTP.

    POST /captures {orderId, amount, paymentToken}
      2xx -> {"transactionId": ..., "status": "captured"}
      402 -> declined
    Any other status or transport error is raised to the caller.
    """

    def __init__(
        self,
        base_url: str = config.PAYMENT_GATEWAY_URL,
        timeout: float = config.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ):
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def capture(self, order_id: str, amount: Decimal, payment_token: str) -> CaptureResult:
        logger.info(f"Requesting capture for order {order_id} via payment service: amount={amount}, token={mask_token(payment_token)}")
        response = await self.client.post(
            "/captures",
            json={"orderId": order_id, "amount": float(amount), "paymentToken": payment_token},
            headers={"Idempotency-Key": order_id},
        )

        if response.status_code == httpx.codes.PAYMENT_REQUIRED:
            reason = response.json().get("reason", "declined") if response.content else "declined"
            logger.warning(f"Payment service declined order {order_id}: {reason}")
            return CaptureResult(success=False, failure_reason=reason)

        # Check for HTTP errors (4xx, 5xx); these are not declines
        response.raise_for_status()
        data = response.json()
        if data.get("status") != "captured" or not data.get("transactionId"):
            raise ValueError(f"Unexpected capture response for order {order_id}: status={data.get('status')!r}")

        logger.info(f"Payment captured successfully for order {order_id}: {data['transactionId']}")
        return CaptureResult(success=True, transaction_id=data["transactionId"])

    async def close(self) -> None:
        await self.client.aclose()
