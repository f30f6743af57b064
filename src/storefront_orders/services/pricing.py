"""Order totals calculation.

All amounts are ``Decimal`` values quantized to cents with half-up rounding,
so nothing observable drifts the way binary floats would.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
DEFAULT_TAX_RATE = Decimal("0.10")
DEFAULT_SHIPPING_FLAT = Decimal("10.00")
DEFAULT_FREE_SHIPPING_THRESHOLD = Decimal("100.00")


@dataclass(frozen=True, slots=True)
class Totals:
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    discount: Decimal
    total: Decimal


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.1 as 0.1 instead of its binary expansion.
    return Decimal(str(value))


def money(value: Number) -> Decimal:
    """Round *value* to cents, half-up."""

    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price: Number, quantity: int) -> Decimal:
    return money(to_decimal(unit_price) * quantity)


def calculate(
    subtotal: Number,
    discount: Number = 0,
    tax_rate: Number = DEFAULT_TAX_RATE,
    shipping_flat: Number = DEFAULT_SHIPPING_FLAT,
    free_shipping_threshold: Number = DEFAULT_FREE_SHIPPING_THRESHOLD,
) -> Totals:
    """Turn a subtotal and discount into the persisted money fields.

    Free shipping is decided on the pre-discount subtotal. The discount is
    not clamped here; callers validate it.
    """

    subtotal = money(subtotal)
    discount = money(discount)
    discounted = subtotal - discount

    tax = money(discounted * to_decimal(tax_rate))
    if subtotal >= to_decimal(free_shipping_threshold):
        shipping_cost = money(0)
    else:
        shipping_cost = money(shipping_flat)
    total = money(discounted + tax + shipping_cost)

    return Totals(
        subtotal=subtotal,
        tax=tax,
        shipping_cost=shipping_cost,
        discount=discount,
        total=total,
    )
