"""Cart models for checkout"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class CartItem(BaseModel):
    """Item in a checkout cart, supplied by the cart service"""
    product_id: str
    title: str
    price: Decimal
    quantity: int
    image_url: str = ""
    category: Optional[str] = None


class CartTotals(BaseModel):
    """Monetary totals for a cart"""
    subtotal: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    shipping: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")


class UpdateCartItemRequest(BaseModel):
    """Request to update cart item quantity"""
    quantity: int
