"""Cart totals calculation"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

from ..models.cart import CartItem, CartTotals

CENTS = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def _as_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 9.99 as 9.99 rather than its binary float expansion
    return Decimal(str(value))


def to_minor_units(amount: Number) -> int:
    """Convert a currency amount to integer cents, rounding half away from zero"""
    return int((_as_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(cents: int) -> Decimal:
    """Convert integer cents back to a two-place decimal amount"""
    return (Decimal(cents) / 100).quantize(CENTS)


def calculate_totals(
    items: Iterable[CartItem],
    tax_rate: Number,
    flat_shipping: Number,
) -> CartTotals:
    """
    Compute subtotal, tax, shipping and total for cart items.

    Subtotal and tax are each rounded to cents before they are summed, and
    shipping only applies to a non-empty cart. The result depends on the
    inputs alone.
    """
    items = list(items)
    if not items:
        return CartTotals()

    subtotal_cents = to_minor_units(
        sum((_as_decimal(item.price) * item.quantity for item in items), Decimal("0"))
    )
    tax_cents = to_minor_units(from_minor_units(subtotal_cents) * _as_decimal(tax_rate))
    shipping_cents = to_minor_units(flat_shipping)
    total_cents = subtotal_cents + tax_cents + shipping_cents

    return CartTotals(
        subtotal=from_minor_units(subtotal_cents),
        tax=from_minor_units(tax_cents),
        shipping=from_minor_units(shipping_cents),
        total=from_minor_units(total_cents),
    )
