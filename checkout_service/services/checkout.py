"""
Checkout State Machine

Owns one checkout: the current step, cart, shipping address, payment method
and the error/processing flags. Steps run strictly in order
cart -> shipping -> payment -> confirmation, and every mutator returns a
copy of the new state.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Union

from ..models.cart import CartItem, CartTotals
from ..models.checkout import (
    CHECKOUT_STEPS,
    CheckoutState,
    CheckoutStep,
    PaymentMethod,
    ShippingAddress,
    ValidationResult,
)
from ..models.order import Order
from .calculator import calculate_totals
from .validators import (
    validate_cart_items,
    validate_payment_method,
    validate_shipping_address,
)

logger = logging.getLogger(__name__)


class CheckoutStateMachine:
    """State for a single checkout session"""

    def __init__(
        self,
        tax_rate: Union[Decimal, float, str],
        flat_shipping: Union[Decimal, float, str],
        supported_countries: Iterable[str],
        hosted_payments: bool = False,
        today: Optional[date] = None,
    ):
        """
        Args:
            tax_rate: Fraction of the subtotal charged as tax
            flat_shipping: Shipping charged on any non-empty cart
            supported_countries: Country codes accepted for shipping
            hosted_payments: The payment gateway collects card details itself
            today: Fixed date for card expiry checks, defaults to the real date
        """
        self.tax_rate = Decimal(str(tax_rate))
        self.flat_shipping = Decimal(str(flat_shipping))
        self.supported_countries = list(supported_countries)
        self.hosted_payments = hosted_payments
        self._today = today
        self._state = CheckoutState()

    def initialize_checkout(self, items: Iterable[CartItem]) -> CheckoutState:
        """Start over at the cart step with the given items"""
        self._state = CheckoutState(
            cart_items=[item.model_copy() for item in items],
        )
        return self.get_state()

    def get_state(self) -> CheckoutState:
        return self._state.model_copy(deep=True)

    def restore_state(self, snapshot: CheckoutState) -> CheckoutState:
        """Put back a snapshot taken with get_state()"""
        self._state = snapshot.model_copy(deep=True)
        return self.get_state()

    # ==================== Cart ====================

    def _find_item(self, product_id: str) -> Optional[CartItem]:
        return next(
            (item for item in self._state.cart_items if item.product_id == product_id),
            None,
        )

    def update_cart_item(self, product_id: str, quantity: int) -> CheckoutState:
        """Set an item's quantity; zero or less removes it, unknown IDs are ignored"""
        item = self._find_item(product_id)
        if item:
            if quantity <= 0:
                self._state.cart_items = [
                    i for i in self._state.cart_items if i.product_id != product_id
                ]
            else:
                item.quantity = quantity
        return self.get_state()

    def remove_cart_item(self, product_id: str) -> CheckoutState:
        self._state.cart_items = [
            item for item in self._state.cart_items if item.product_id != product_id
        ]
        return self.get_state()

    def clear_cart(self) -> CheckoutState:
        self._state.cart_items = []
        return self.get_state()

    def get_cart_item_count(self) -> int:
        return sum(item.quantity for item in self._state.cart_items)

    def is_cart_empty(self) -> bool:
        return not self._state.cart_items

    def get_cart_items(self) -> list[CartItem]:
        return [item.model_copy() for item in self._state.cart_items]

    # ==================== Shipping & payment ====================

    def set_shipping_address(self, address: ShippingAddress) -> CheckoutState:
        self._state.shipping_address = address.model_copy()
        return self.get_state()

    def set_payment_method(self, method: PaymentMethod) -> CheckoutState:
        self._state.payment_method = method.model_copy()
        return self.get_state()

    # ==================== Steps ====================

    def proceed_to_next_step(self) -> CheckoutState:
        """Advance one step if the current step validates"""
        index = CHECKOUT_STEPS.index(self._state.current_step)
        if index >= len(CHECKOUT_STEPS) - 1:
            return self.get_state()

        validation = self.validate_current_step()
        if not validation.is_valid:
            self._state.error = validation.first_error
            logger.debug(
                f"Checkout blocked at {self._state.current_step.value}: {validation.errors}"
            )
            return self.get_state()

        self._state.current_step = CHECKOUT_STEPS[index + 1]
        self._state.error = None
        return self.get_state()

    def go_to_previous_step(self) -> CheckoutState:
        index = CHECKOUT_STEPS.index(self._state.current_step)
        if index > 0:
            self._state.current_step = CHECKOUT_STEPS[index - 1]
            self._state.error = None
        return self.get_state()

    def validate_current_step(self) -> ValidationResult:
        """Run the validator for the current step without changing state"""
        step = self._state.current_step

        if step == CheckoutStep.CART:
            return validate_cart_items(self._state.cart_items)

        if step == CheckoutStep.SHIPPING:
            if not self._state.shipping_address:
                return ValidationResult.from_errors(
                    {"shipping": "Shipping address is required"}
                )
            return validate_shipping_address(
                self._state.shipping_address, self.supported_countries
            )

        if step == CheckoutStep.PAYMENT:
            # The hosted sheet validates the card; the gateway call is the gate
            if self.hosted_payments:
                return ValidationResult(is_valid=True)
            if not self._state.payment_method:
                return ValidationResult.from_errors(
                    {"payment": "Payment method is required"}
                )
            return validate_payment_method(self._state.payment_method, self._today)

        return ValidationResult(is_valid=True)

    # ==================== Totals ====================

    def calculate_totals(self) -> CartTotals:
        return calculate_totals(self._state.cart_items, self.tax_rate, self.flat_shipping)

    def get_subtotal(self) -> Decimal:
        return self.calculate_totals().subtotal

    def get_total(self) -> Decimal:
        return self.calculate_totals().total

    # ==================== Flags ====================

    def set_error(self, error: Optional[str]) -> CheckoutState:
        self._state.error = error
        return self.get_state()

    def set_processing(self, is_processing: bool) -> CheckoutState:
        self._state.is_processing = is_processing
        return self.get_state()

    def set_order(self, order: Optional[Order]) -> CheckoutState:
        """Attach the order materialized from this checkout"""
        self._state.order = order.model_copy(deep=True) if order else None
        return self.get_state()

    def mark_save_failed(self, message: str) -> CheckoutState:
        """Payment went through but the order could not be stored"""
        self._state.save_failed = True
        self._state.is_processing = False
        self._state.error = message
        return self.get_state()

    def reset_checkout(self) -> CheckoutState:
        self._state = CheckoutState()
        return self.get_state()
