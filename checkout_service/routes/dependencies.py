"""Shared service instances for the API routes"""

from functools import partial
from typing import Optional

from ..core.config import settings
from ..core.session import CheckoutSessionManager
from ..database.orders import OrderRepository
from ..database.storage import JsonFileStorage
from ..services.checkout import CheckoutStateMachine
from ..services.payment_gateway import PaymentGateway

# Initialized on first use (overridden in tests)
order_repository: Optional[OrderRepository] = None
payment_gateway: Optional[PaymentGateway] = None
session_manager: Optional[CheckoutSessionManager] = None


def get_order_repository() -> OrderRepository:
    """Get or create the order repository"""
    global order_repository
    if order_repository is None:
        order_repository = OrderRepository(
            storage=JsonFileStorage(settings.orders_storage_dir),
            tax_rate=settings.tax_rate,
            flat_shipping=settings.flat_shipping,
            delivery_lead_days=settings.delivery_lead_days,
        )
    return order_repository


def get_payment_gateway() -> PaymentGateway:
    """Get or create the payment gateway for the configured mode"""
    global payment_gateway
    if payment_gateway is None:
        payment_gateway = PaymentGateway.from_settings(settings)
    return payment_gateway


def new_checkout_machine(hosted_payments: bool = False) -> CheckoutStateMachine:
    return CheckoutStateMachine(
        tax_rate=settings.tax_rate,
        flat_shipping=settings.flat_shipping,
        supported_countries=settings.supported_countries,
        hosted_payments=hosted_payments,
    )


def get_session_manager() -> CheckoutSessionManager:
    """Get or create the checkout session manager"""
    global session_manager
    if session_manager is None:
        gateway = get_payment_gateway()
        session_manager = CheckoutSessionManager(
            machine_factory=partial(new_checkout_machine, gateway.is_hosted),
            gateway=gateway,
            repository=get_order_repository(),
        )
    return session_manager
