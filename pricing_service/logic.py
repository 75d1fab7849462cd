from decimal import Decimal, ROUND_HALF_UP
from typing import Sequence
import logging

from . import schemas, config # Use relative import within the package

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def round2(value: Decimal) -> Decimal:
    """Round half away from zero to whole cents (1.005 -> 1.01, 3.333 -> 3.33)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def price_line(item: schemas.CartItem) -> schemas.PricedItem:
    return schemas.PricedItem(
        product_id=item.product_id,
        name=item.name,
        unit_price=item.unit_price,
        quantity=item.quantity,
        line_total=round2(item.unit_price * item.quantity),
    )


def calculate_pricing(
    items: Sequence[schemas.CartItem],
    tax_rate: Decimal = config.TAX_RATE,
) -> schemas.PricingResult:
    """
    Recalculates pricing wholly on the server from price x quantity.

    Every stage is rounded on its own before it feeds the next one:
      1. lineTotal = round2(unitPrice * quantity)
      2. subtotal  = round2(sum of lineTotals)
      3. tax       = round2(subtotal * tax_rate)
      4. total     = round2(subtotal + tax)

    The caller rejects empty carts before getting here.
    """
    priced_items = [price_line(item) for item in items]

    subtotal = round2(sum((item.line_total for item in priced_items), Decimal("0")))
    tax = round2(subtotal * tax_rate)
    total = round2(subtotal + tax)

    logger.debug(f"Priced {len(priced_items)} line(s): subtotal={subtotal}, tax={tax}, total={total}")

    return schemas.PricingResult(
        items=priced_items,
        subtotal=subtotal,
        tax=tax,
        total=total,
    )


