from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List
import uuid

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from pricing_service.schemas import CartItem, Money, PricedItem, PricingResult


class OrderStatus(str, Enum):
    CREATED = "CREATED"
    PAYMENT_CAPTURED = "PAYMENT_CAPTURED"
    PAYMENT_FAILED = "PAYMENT_FAILED"


def new_order_id() -> str:
    return f"ord-{uuid.uuid4()}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(BaseModel):
    """The order as it is returned to clients. Carries no payment token."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    order_id: str = Field(..., validation_alias=AliasChoices("orderId", "order_id"), serialization_alias="orderId")
    cart_id: str = Field(..., validation_alias=AliasChoices("cartId", "cart_id"), serialization_alias="cartId")
    status: OrderStatus
    items: List[PricedItem]
    subtotal: Money
    tax: Money
    total: Money
    transaction_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("transactionId", "transaction_id"),
        serialization_alias="transactionId",
    )
    created_at: datetime = Field(..., validation_alias=AliasChoices("createdAt", "created_at"), serialization_alias="createdAt")
    expires_at: datetime = Field(..., validation_alias=AliasChoices("expiresAt", "expires_at"), serialization_alias="expiresAt")

    def to_public(self) -> Dict[str, Any]:
        """JSON-ready body; transactionId is left out until there is one."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OrderRecord(Order):
    """The persisted shape: the public order plus internal-only fields."""

    payment_token: str = Field(
        ...,
        validation_alias=AliasChoices("paymentToken", "payment_token"),
        serialization_alias="paymentToken",
    )

    @classmethod
    def new(cls, cart_id: str, pricing: PricingResult, payment_token: str, ttl_seconds: int) -> "OrderRecord":
        created_at = utcnow()
        return cls(
            order_id=new_order_id(),
            cart_id=cart_id,
            status=OrderStatus.CREATED,
            items=pricing.items,
            subtotal=pricing.subtotal,
            tax=pricing.tax,
            total=pricing.total,
            payment_token=payment_token,
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=ttl_seconds),
        )

    def to_order(self) -> Order:
        return Order.model_validate(self.model_dump(exclude={"payment_token"}))


# --- Inbound request ---

class CheckoutRequest(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    cart_id: str = Field(..., validation_alias=AliasChoices("cartId", "cart_id"))
    items: List[CartItem]
    payment_token: str = Field(..., validation_alias=AliasChoices("paymentToken", "payment_token"))

    @field_validator("cart_id", "payment_token", mode="before")
    @classmethod
    def _non_empty_string(cls, value, info):
        if not isinstance(value, str) or not value:
            label = "cartId" if info.field_name == "cart_id" else "paymentToken"
            raise ValueError(f"{label} must be a non-empty string")
        return value

    @field_validator("items", mode="before")
    @classmethod
    def _non_empty_cart(cls, value):
        if not isinstance(value, list):
            raise ValueError("items must be an array")
        if not value:
            raise ValueError("Cart must contain at least one item")
        return value


_REQUIRED_MESSAGES = {
    "cartId": "cartId is required",
    "paymentToken": "paymentToken is required",
    "items": "items is required",
}


def describe_validation_error(exc: ValidationError) -> str:
    """Turns the first pydantic error into a single client-facing sentence."""
    first = exc.errors(include_url=False)[0]
    loc = [part for part in first["loc"] if part != "body"]
    message = first["msg"]
    if first["type"] == "value_error":
        message = str(first["ctx"]["error"])

    if not loc:
        return "Request body is required" if first["type"] in ("model_type", "dict_type") else message

    field = str(loc[-1])
    if loc[0] == "items" and len(loc) >= 2 and isinstance(loc[1], int):
        if first["type"] == "missing":
            return f"Item at index {loc[1]}: {field} is required"
        if first["type"] in ("model_type", "dict_type"):
            return f"Item at index {loc[1]}: item must be an object"
        return f"Item at index {loc[1]}: {message}"

    if first["type"] == "missing":
        return _REQUIRED_MESSAGES.get(field, f"{field} is required")
    return message


# --- Outbound envelopes ---

class ErrorDetail(BaseModel):
    code: str
    message: str
    order_id: str | None = Field(default=None, serialization_alias="orderId")


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail

    def to_body(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
