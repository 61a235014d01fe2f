# Database modules

from .orders import OrderRepository, generate_confirmation_number, generate_order_id
from .storage import InMemoryStorage, JsonFileStorage, OrderStorage

__all__ = [
    "OrderRepository",
    "generate_confirmation_number",
    "generate_order_id",
    "InMemoryStorage",
    "JsonFileStorage",
    "OrderStorage",
]
