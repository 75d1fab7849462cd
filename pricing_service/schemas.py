from decimal import Decimal
import math
from typing import Annotated, List

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    field_serializer,
    field_validator,
)


def _to_decimal(value):
    # Floats go through str so 1.11 stays 1.11 instead of its binary expansion
    if isinstance(value, float):
        return Decimal(str(value))
    return value


# Amounts are exact decimals in Python and plain JSON numbers on the wire
Money = Annotated[Decimal, BeforeValidator(_to_decimal), PlainSerializer(float, return_type=float, when_used="json")]


# Input item structure - untrusted, straight from the client
class CartItem(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    product_id: str = Field(
        ...,
        validation_alias=AliasChoices("productId", "product_id"),
        serialization_alias="productId",
    )
    name: str
    unit_price: Decimal = Field(
        ...,
        validation_alias=AliasChoices("unitPrice", "price", "unit_price"),
        serialization_alias="unitPrice",
    )
    quantity: int

    @field_validator("product_id", "name", mode="before")
    @classmethod
    def _non_empty_string(cls, value, info):
        if not isinstance(value, str) or not value:
            label = "productId" if info.field_name == "product_id" else info.field_name
            raise ValueError(f"{label} must be a non-empty string")
        return value

    @field_validator("unit_price", mode="before")
    @classmethod
    def _price_is_positive_number(cls, value):
        # bool is an int subclass; JSON true must not become a price of 1
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            raise ValueError("Item price must be a number")
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("Item price must be a finite number")
        price = _to_decimal(value) if isinstance(value, float) else Decimal(value)
        if not price.is_finite():
            raise ValueError("Item price must be a finite number")
        if price <= 0:
            raise ValueError("Item price must be greater than 0")
        return price

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity_is_whole(cls, value):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("Item quantity must be a whole number")
        if value < 1:
            raise ValueError("Item quantity must be at least 1")
        return value

    @field_serializer("unit_price", when_used="json")
    def _serialize_price(self, value: Decimal) -> float:
        return float(value)


class PricedItem(CartItem):
    line_total: Money = Field(
        ...,
        validation_alias=AliasChoices("lineTotal", "line_total"),
        serialization_alias="lineTotal",
    )


class PricingResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: List[PricedItem]
    subtotal: Money
    tax: Money
    total: Money


# Request body for the quote endpoint
class PriceCalculationRequest(BaseModel):
    # Any client-supplied totals are accepted and then ignored
    model_config = ConfigDict(extra="ignore")

    items: List[CartItem] = Field(..., min_length=1) # Must have at least one item
