# Checkout Service Models

from .cart import CartItem, CartTotals, UpdateCartItemRequest
from .checkout import (
    CHECKOUT_STEPS,
    CheckoutState,
    CheckoutStep,
    CreateCheckoutRequest,
    PaymentMethod,
    ShippingAddress,
    ValidationResult,
)
from .order import Order, OrderStatistics, OrderStatus, UpdateOrderStatusRequest
from .payment import (
    PaymentIntent,
    PaymentResult,
    PaymentSheetParams,
    PaymentSheetResult,
    PaymentSheetStatus,
)

CheckoutState.model_rebuild()

__all__ = [
    "CartItem",
    "CartTotals",
    "UpdateCartItemRequest",
    "CHECKOUT_STEPS",
    "CheckoutState",
    "CheckoutStep",
    "CreateCheckoutRequest",
    "PaymentMethod",
    "ShippingAddress",
    "ValidationResult",
    "Order",
    "OrderStatistics",
    "OrderStatus",
    "UpdateOrderStatusRequest",
    "PaymentIntent",
    "PaymentResult",
    "PaymentSheetParams",
    "PaymentSheetResult",
    "PaymentSheetStatus",
]
