"""Order storage for checkout"""

import asyncio
import logging
import secrets
import string
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional, Union

from pydantic import TypeAdapter, ValidationError

from ..errors import InvalidStatusTransitionError, OrderPersistenceError
from ..models.cart import CartItem
from ..models.checkout import ShippingAddress
from ..models.order import Order, OrderStatistics, OrderStatus
from ..services.calculator import CENTS, calculate_totals, from_minor_units, to_minor_units
from .storage import OrderStorage

logger = logging.getLogger(__name__)

ORDERS_STORAGE_KEY = "orders"

_CONFIRMATION_ALPHABET = string.ascii_uppercase + string.digits

# Statuses an order may move to from each status
ALLOWED_STATUS_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.COMPLETED: {OrderStatus.SHIPPED, OrderStatus.DELIVERED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
}

_orders_adapter = TypeAdapter(list[Order])


def generate_order_id() -> str:
    """New internal order ID"""
    return f"ORD-{uuid.uuid4().hex[:12].upper()}"


def generate_confirmation_number() -> str:
    """New customer-facing confirmation number, drawn independently of the order ID"""
    return "CONF-" + "".join(secrets.choice(_CONFIRMATION_ALPHABET) for _ in range(9))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderRepository:
    """Per-user order history kept in an OrderStorage backend"""

    def __init__(
        self,
        storage: OrderStorage,
        tax_rate: Union[Decimal, float, str],
        flat_shipping: Union[Decimal, float, str],
        delivery_lead_days: int = 5,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.storage = storage
        self.tax_rate = Decimal(str(tax_rate))
        self.flat_shipping = Decimal(str(flat_shipping))
        self.delivery_lead_days = delivery_lead_days
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, user_id: str) -> asyncio.Lock:
        """Serializes read-modify-write of one user's history"""
        return self._locks.setdefault(self.storage_key(user_id), asyncio.Lock())

    @staticmethod
    def storage_key(user_id: str) -> str:
        return f"{ORDERS_STORAGE_KEY}_{user_id}"

    async def _load(self, user_id: str) -> list[Order]:
        try:
            data = await self.storage.get(self.storage_key(user_id))
            if not data:
                return []
            return _orders_adapter.validate_json(data)
        except (OSError, ValidationError, ValueError) as e:
            logger.error(f"Error retrieving order history for {user_id}: {e}")
            raise OrderPersistenceError("retrieve order history", user_id, e) from e

    async def _store(self, user_id: str, orders: list[Order]) -> None:
        try:
            await self.storage.set(
                self.storage_key(user_id),
                _orders_adapter.dump_json(orders).decode("utf-8"),
            )
        except OSError as e:
            logger.error(f"Error saving orders for {user_id}: {e}")
            raise OrderPersistenceError("save orders", user_id, e) from e

    def create_order(
        self,
        items: list[CartItem],
        shipping_address: ShippingAddress,
        subtotal: Decimal,
        tax: Decimal,
        shipping: Decimal,
        user_id: str,
        order_id: Optional[str] = None,
    ) -> Order:
        """
        Build a new order from a checkout.

        Args:
            items: Cart items, copied into the order
            shipping_address: Address, copied into the order
            subtotal: Cart subtotal
            tax: Tax charged
            shipping: Shipping charged
            user_id: Owner of the order
            order_id: ID already used for the payment attempt, if any

        Returns:
            Order with status completed, not yet saved
        """
        now = self._clock()
        subtotal_cents = to_minor_units(subtotal)
        tax_cents = to_minor_units(tax)
        shipping_cents = to_minor_units(shipping)

        return Order(
            order_id=order_id or generate_order_id(),
            confirmation_number=generate_confirmation_number(),
            user_id=user_id,
            items=[item.model_copy() for item in items],
            shipping_address=shipping_address.model_copy(),
            subtotal=from_minor_units(subtotal_cents),
            tax=from_minor_units(tax_cents),
            shipping=from_minor_units(shipping_cents),
            total=from_minor_units(subtotal_cents + tax_cents + shipping_cents),
            status=OrderStatus.COMPLETED,
            created_at=now,
            estimated_delivery=now + timedelta(days=self.delivery_lead_days),
        )

    async def save_order(self, order: Order) -> None:
        """Store an order at the front of its user's history"""
        async with self._lock(order.user_id):
            orders = await self._load(order.user_id)
            await self._store(order.user_id, [order, *orders])
        logger.info(f"Order {order.order_id} saved for user {order.user_id}: ${order.total}")

    async def get_order_history(self, user_id: str) -> list[Order]:
        """All orders for a user, newest first"""
        return await self._load(user_id)

    async def get_order_by_id(self, user_id: str, order_id: str) -> Optional[Order]:
        orders = await self._load(user_id)
        return next((order for order in orders if order.order_id == order_id), None)

    async def get_orders_by_status(self, user_id: str, status: OrderStatus) -> list[Order]:
        orders = await self._load(user_id)
        return [order for order in orders if order.status == status]

    async def get_recent_orders(self, user_id: str, limit: int = 10) -> list[Order]:
        orders = await self._load(user_id)
        return orders[: max(limit, 0)]

    async def update_order_status(
        self,
        user_id: str,
        order_id: str,
        status: OrderStatus,
    ) -> Optional[Order]:
        """
        Move an order to a new status.

        Only forward moves are allowed; asking for the status the order
        already has leaves it unchanged.

        Raises:
            InvalidStatusTransitionError: The move would go backwards
        """
        async with self._lock(user_id):
            orders = await self._load(user_id)
            order = next((o for o in orders if o.order_id == order_id), None)
            if not order:
                return None

            if order.status == status:
                return order

            if status not in ALLOWED_STATUS_TRANSITIONS[order.status]:
                raise InvalidStatusTransitionError(order_id, order.status.value, status.value)

            order.status = status
            await self._store(user_id, orders)
        logger.info(f"Order {order_id} moved to {status.value}")
        return order

    async def create_reorder(self, user_id: str, order_id: str) -> Optional[Order]:
        """Place a new order with the items and address of an earlier one"""
        original = await self.get_order_by_id(user_id, order_id)
        if not original:
            return None

        totals = calculate_totals(original.items, self.tax_rate, self.flat_shipping)
        new_order = self.create_order(
            original.items,
            original.shipping_address,
            totals.subtotal,
            totals.tax,
            totals.shipping,
            user_id,
        )
        await self.save_order(new_order)
        logger.info(f"Reorder {new_order.order_id} created from {order_id}")
        return new_order

    async def delete_order(self, user_id: str, order_id: str) -> bool:
        async with self._lock(user_id):
            orders = await self._load(user_id)
            remaining = [order for order in orders if order.order_id != order_id]
            if len(remaining) == len(orders):
                return False

            await self._store(user_id, remaining)
            return True

    async def clear_order_history(self, user_id: str) -> None:
        async with self._lock(user_id):
            try:
                await self.storage.remove(self.storage_key(user_id))
            except OSError as e:
                logger.error(f"Error clearing order history for {user_id}: {e}")
                raise OrderPersistenceError("clear order history", user_id, e) from e

    async def get_order_statistics(self, user_id: str) -> OrderStatistics:
        orders = await self._load(user_id)
        total_orders = len(orders)
        total_spent = sum((order.total for order in orders), Decimal("0")).quantize(CENTS)
        average = (
            (total_spent / total_orders).quantize(CENTS, rounding=ROUND_HALF_UP)
            if total_orders
            else Decimal("0.00")
        )
        return OrderStatistics(
            total_orders=total_orders,
            total_spent=total_spent,
            average_order_value=average,
        )
