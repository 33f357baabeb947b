"""
Totals recompute for a cart.

Pure functions only: callers pass the items they just read from the database
and the discount rule of the coupon currently applied (or None). Nothing here
touches a session, so the same code backs cart mutations, checkout and the
coupon preview.
"""
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from shopcart.models.coupon import Discount, PercentageDiscount

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def subtotal_of(items: Iterable) -> Decimal:
    """Σ price × quantity over objects exposing .price and .quantity."""
    return money(sum((Decimal(str(i.price)) * i.quantity for i in items), ZERO))


def discount_for(subtotal: Decimal, discount: Optional[Discount]) -> Decimal:
    """
    Discount owed on subtotal, capped by the rule's max_amount and by the
    subtotal itself. Rounded down to the cent.
    """
    if discount is None or subtotal <= ZERO:
        return ZERO

    if isinstance(discount, PercentageDiscount):
        amount = subtotal * discount.value / Decimal(100)
    else:
        amount = discount.value

    if discount.max_amount is not None and amount > discount.max_amount:
        amount = discount.max_amount
    amount = min(max(amount, ZERO), subtotal)
    return amount.quantize(CENT, rounding=ROUND_DOWN)


def recompute(items: Iterable, discount: Optional[Discount] = None) -> Totals:
    subtotal = subtotal_of(items)
    discount_amount = discount_for(subtotal, discount)
    total = max(ZERO, subtotal - discount_amount)
    return Totals(subtotal=subtotal, discount_amount=discount_amount, total=money(total))


def to_cents(amount) -> int:
    """Minor units for the payment provider."""
    return int((money(amount) * 100).to_integral_value())
