"""Pytest fixtures for checkout service tests."""

import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest

from checkout_service.database.orders import OrderRepository
from checkout_service.database.storage import InMemoryStorage
from checkout_service.errors import PaymentGatewayError
from checkout_service.models.cart import CartItem
from checkout_service.models.checkout import PaymentMethod, ShippingAddress
from checkout_service.models.payment import PaymentSheetParams, PaymentSheetResult
from checkout_service.services.checkout import CheckoutStateMachine
from checkout_service.services.payment_gateway import (
    DirectMode,
    HostedMode,
    HostedPaymentConfig,
    PaymentGateway,
)

TODAY = date(2026, 10, 19)
NOW = datetime(2026, 10, 19, 12, 30, 15, 123456, tzinfo=timezone.utc)
SUPPORTED_COUNTRIES = ["US", "CA", "GB"]


class FakeCardProcessor:
    """Card processor that fails with queued errors, then succeeds."""

    def __init__(self, errors: Optional[list[str]] = None, declines: bool = False):
        self.errors = list(errors or [])
        self.declines = declines
        self.calls: list[dict] = []
        self.gate: Optional[asyncio.Event] = None

    async def charge(self, method, amount_minor, currency, order_id):
        self.calls.append(
            {"amount_minor": amount_minor, "currency": currency, "order_id": order_id}
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.declines:
            raise PaymentGatewayError("Card declined by issuer", retryable=False)
        if self.errors:
            raise PaymentGatewayError(self.errors.pop(0))
        return f"ch_{len(self.calls)}"


class FakeHostedClient:
    """Stands in for the payment-sheet backend."""

    def __init__(self, fail_with: Optional[PaymentGatewayError] = None):
        self.fail_with = fail_with
        self.requests: list[dict] = []

    async def create_payment_sheet(self, order_id, amount, currency):
        self.requests.append({"order_id": order_id, "amount": amount, "currency": currency})
        if self.fail_with:
            raise self.fail_with
        return {
            "clientSecret": f"pi_{order_id}_secret",
            "customerId": "cus_123",
            "ephemeralKey": "ek_123",
            "paymentIntentId": f"pi_{order_id}",
        }

    async def close(self):
        pass


class FakePresenter:
    """Presentation layer that reports a fixed sheet result."""

    def __init__(self, result: PaymentSheetResult):
        self.result = result
        self.shown: list[PaymentSheetParams] = []

    async def present(self, params):
        self.shown.append(params)
        return self.result


class FailingStorage(InMemoryStorage):
    """In-memory storage whose writes can be switched off."""

    def __init__(self):
        super().__init__()
        self.fail_writes = True

    async def set(self, key, value):
        if self.fail_writes:
            raise OSError("disk full")
        await super().set(key, value)


async def _no_sleep(delay):
    return None


@pytest.fixture
def items():
    return [
        CartItem(product_id="prod-001", title="Headphones", price=Decimal("10.00"), quantity=2,
                 image_url="https://img.example.com/1.jpg", category="electronics"),
        CartItem(product_id="prod-002", title="Book", price=Decimal("5.00"), quantity=1,
                 image_url="https://img.example.com/2.jpg"),
    ]


@pytest.fixture
def address():
    return ShippingAddress(
        street="1 Market St",
        city="San Francisco",
        state="CA",
        postal_code="94105",
        country="US",
    )


@pytest.fixture
def card():
    return PaymentMethod(
        card_number="4242 4242 4242 4242",
        expiration_date="12/99",
        cvv="123",
        cardholder_name="Ada Lovelace",
    )


@pytest.fixture
def machine():
    return CheckoutStateMachine(
        tax_rate=Decimal("0.08"),
        flat_shipping=Decimal("9.99"),
        supported_countries=SUPPORTED_COUNTRIES,
        today=TODAY,
    )


@pytest.fixture
def hosted_machine():
    return CheckoutStateMachine(
        tax_rate=Decimal("0.08"),
        flat_shipping=Decimal("9.99"),
        supported_countries=SUPPORTED_COUNTRIES,
        hosted_payments=True,
        today=TODAY,
    )


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def repository(storage):
    return OrderRepository(
        storage=storage,
        tax_rate=Decimal("0.08"),
        flat_shipping=Decimal("9.99"),
        clock=lambda: NOW,
    )


@pytest.fixture
def card_processor():
    return FakeCardProcessor()


@pytest.fixture
def direct_gateway(card_processor):
    return PaymentGateway(
        DirectMode(),
        card_processor=card_processor,
        retry_base_delay=0,
        sleep=_no_sleep,
    )


@pytest.fixture
def hosted_client():
    return FakeHostedClient()


@pytest.fixture
def hosted_gateway(hosted_client):
    config = HostedPaymentConfig(
        payment_sheet_url="https://payments.example.com/payments/create-payment-sheet",
        merchant_display_name="Swipely",
        return_url="swipely://stripe-redirect",
    )
    return PaymentGateway(HostedMode(config), hosted_client=hosted_client)


def advance_to_payment(machine, items, address):
    """Walk a machine from cart to the payment step."""
    machine.initialize_checkout(items)
    machine.proceed_to_next_step()
    machine.set_shipping_address(address)
    state = machine.proceed_to_next_step()
    assert state.current_step.value == "payment"
    return state
