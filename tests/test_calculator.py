"""Tests for cart totals calculation."""

from decimal import Decimal

from checkout_service.models.cart import CartItem
from checkout_service.services.calculator import (
    calculate_totals,
    from_minor_units,
    to_minor_units,
)


def _item(product_id, price, quantity):
    return CartItem(product_id=product_id, title=product_id, price=Decimal(price), quantity=quantity)


class TestCalculateTotals:
    def test_reference_cart(self, items):
        totals = calculate_totals(items, Decimal("0.08"), Decimal("9.99"))

        assert totals.subtotal == Decimal("25.00")
        assert totals.tax == Decimal("2.00")
        assert totals.shipping == Decimal("9.99")
        assert totals.total == Decimal("36.99")

    def test_empty_cart_is_all_zero(self):
        totals = calculate_totals([], Decimal("0.08"), Decimal("9.99"))

        assert totals.subtotal == Decimal("0")
        assert totals.tax == Decimal("0")
        assert totals.shipping == Decimal("0")
        assert totals.total == Decimal("0")

    def test_tax_rounds_to_cents(self):
        totals = calculate_totals([_item("a", "19.99", 3)], Decimal("0.08"), Decimal("9.99"))

        assert totals.subtotal == Decimal("59.97")
        assert totals.tax == Decimal("4.80")
        assert totals.total == Decimal("74.76")

    def test_half_cent_rounds_away_from_zero(self):
        totals = calculate_totals([_item("a", "1.00", 1)], Decimal("0.125"), Decimal("0"))

        assert totals.tax == Decimal("0.13")
        assert totals.total == Decimal("1.13")

    def test_total_is_sum_of_rounded_parts(self):
        cart = [_item("a", "0.10", 3), _item("b", "0.20", 7)]
        totals = calculate_totals(cart, 0.0725, 4.5)

        assert totals.total == totals.subtotal + totals.tax + totals.shipping

    def test_float_inputs_do_not_leak_binary_error(self):
        totals = calculate_totals([_item("a", "0.10", 3)], 0.08, 9.99)

        assert totals.subtotal == Decimal("0.30")
        assert totals.shipping == Decimal("9.99")

    def test_same_input_same_output(self, items):
        first = calculate_totals(items, Decimal("0.08"), Decimal("9.99"))
        second = calculate_totals(items, Decimal("0.08"), Decimal("9.99"))

        assert first.model_dump_json() == second.model_dump_json()


class TestMinorUnits:
    def test_to_minor_units(self):
        assert to_minor_units(Decimal("36.99")) == 3699
        assert to_minor_units("0.005") == 1
        assert to_minor_units(9.99) == 999

    def test_from_minor_units(self):
        assert from_minor_units(3699) == Decimal("36.99")
        assert str(from_minor_units(500)) == "5.00"
