"""Order models"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel

from .cart import CartItem
from .checkout import ShippingAddress


class OrderStatus(str, Enum):
    COMPLETED = "completed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


class Order(BaseModel):
    """Completed order"""
    order_id: str
    confirmation_number: str
    user_id: str
    items: list[CartItem]
    shipping_address: ShippingAddress
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    status: OrderStatus = OrderStatus.COMPLETED
    created_at: datetime
    estimated_delivery: datetime


class OrderStatistics(BaseModel):
    """Aggregate figures over a user's order history"""
    total_orders: int = 0
    total_spent: Decimal = Decimal("0.00")
    average_order_value: Decimal = Decimal("0.00")


class UpdateOrderStatusRequest(BaseModel):
    """Request to move an order to a new status"""
    status: OrderStatus
