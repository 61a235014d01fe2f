"""Checkout models"""

from enum import Enum
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

from .cart import CartItem

if TYPE_CHECKING:
    from .order import Order


class CheckoutStep(str, Enum):
    CART = "cart"
    SHIPPING = "shipping"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"


CHECKOUT_STEPS: list[CheckoutStep] = [
    CheckoutStep.CART,
    CheckoutStep.SHIPPING,
    CheckoutStep.PAYMENT,
    CheckoutStep.CONFIRMATION,
]


class ShippingAddress(BaseModel):
    """Shipping address for order"""
    street: str
    city: str
    state: str
    postal_code: str
    country: str
    is_default: bool = False


class PaymentMethod(BaseModel):
    """Card details entered for direct payments"""
    card_number: str
    expiration_date: str  # MM/YY
    cvv: str
    cardholder_name: str
    is_default: bool = False

    @classmethod
    def hosted_placeholder(cls) -> "PaymentMethod":
        """Local "last used" record after the hosted sheet took the card"""
        return cls(
            card_number="",
            expiration_date="",
            cvv="",
            cardholder_name="Hosted payment",
        )


class ValidationResult(BaseModel):
    """Field-level validation outcome"""
    is_valid: bool
    errors: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_errors(cls, errors: dict[str, str]) -> "ValidationResult":
        return cls(is_valid=not errors, errors=errors)

    @property
    def first_error(self) -> Optional[str]:
        return next(iter(self.errors.values()), None)


class CheckoutState(BaseModel):
    """Snapshot of a checkout in progress"""
    current_step: CheckoutStep = CheckoutStep.CART
    cart_items: list[CartItem] = Field(default_factory=list)
    shipping_address: Optional[ShippingAddress] = None
    payment_method: Optional[PaymentMethod] = None
    order: Optional["Order"] = None
    error: Optional[str] = None
    is_processing: bool = False
    save_failed: bool = False


class CreateCheckoutRequest(BaseModel):
    """Request to start a checkout for a user"""
    user_id: str
    items: list[CartItem] = Field(default_factory=list)
