"""Tests for the checkout and order HTTP routes."""

import asyncio
from functools import partial

import pytest
from fastapi.testclient import TestClient

from checkout_service.core.session import CheckoutSessionManager
from checkout_service.database.orders import OrderRepository
from checkout_service.database.storage import InMemoryStorage
from checkout_service.main import app
from checkout_service.routes.dependencies import get_order_repository, get_session_manager
from checkout_service.services.checkout import CheckoutStateMachine

from conftest import NOW, SUPPORTED_COUNTRIES, TODAY

USER = "user-1"

ITEMS = [
    {"product_id": "prod-001", "title": "Headphones", "price": "10.00", "quantity": 2},
    {"product_id": "prod-002", "title": "Book", "price": "5.00", "quantity": 1},
]
ADDRESS = {
    "street": "1 Market St",
    "city": "San Francisco",
    "state": "CA",
    "postal_code": "94105",
    "country": "US",
}
CARD = {
    "card_number": "4242 4242 4242 4242",
    "expiration_date": "12/99",
    "cvv": "123",
    "cardholder_name": "Ada Lovelace",
}


class UnreadableStorage(InMemoryStorage):
    async def get(self, key):
        raise OSError("disk unavailable")


@pytest.fixture
def manager(direct_gateway, repository):
    factory = partial(CheckoutStateMachine, "0.08", "9.99", SUPPORTED_COUNTRIES, today=TODAY)
    return CheckoutSessionManager(factory, direct_gateway, repository)


@pytest.fixture
def client(manager, repository):
    app.dependency_overrides[get_session_manager] = lambda: manager
    app.dependency_overrides[get_order_repository] = lambda: repository
    yield TestClient(app)
    app.dependency_overrides.clear()


def _start(client) -> str:
    response = client.post("/api/checkout/sessions", json={"user_id": USER, "items": ITEMS})
    assert response.status_code == 200
    return response.json()["session_id"]


def _to_payment(client) -> str:
    session_id = _start(client)
    client.post(f"/api/checkout/sessions/{session_id}/next")
    client.put(f"/api/checkout/sessions/{session_id}/shipping-address", json=ADDRESS)
    response = client.post(f"/api/checkout/sessions/{session_id}/next")
    assert response.json()["state"]["current_step"] == "payment"
    return session_id


class TestService:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestCheckoutRoutes:
    def test_create_session(self, client):
        response = client.post("/api/checkout/sessions", json={"user_id": USER, "items": ITEMS})

        data = response.json()
        assert data["user_id"] == USER
        assert data["state"]["current_step"] == "cart"
        assert data["item_count"] == 3
        assert data["totals"] == {
            "subtotal": "25.00",
            "tax": "2.00",
            "shipping": "9.99",
            "total": "36.99",
        }

    def test_unknown_session(self, client):
        response = client.get("/api/checkout/sessions/missing")

        assert response.status_code == 404

    def test_update_and_remove_items(self, client):
        session_id = _start(client)

        updated = client.put(
            f"/api/checkout/sessions/{session_id}/items/prod-001", json={"quantity": 5}
        ).json()
        removed = client.delete(f"/api/checkout/sessions/{session_id}/items/prod-002").json()

        assert updated["item_count"] == 6
        assert removed["item_count"] == 5
        assert removed["totals"]["subtotal"] == "50.00"

    def test_blocked_step_reports_error(self, client):
        session_id = _start(client)
        client.post(f"/api/checkout/sessions/{session_id}/next")

        response = client.post(f"/api/checkout/sessions/{session_id}/next")

        state = response.json()["state"]
        assert state["current_step"] == "shipping"
        assert state["error"] == "Shipping address is required"

    def test_validation(self, client):
        session_id = _start(client)
        client.post(f"/api/checkout/sessions/{session_id}/next")
        client.put(
            f"/api/checkout/sessions/{session_id}/shipping-address",
            json={**ADDRESS, "postal_code": "ABC"},
        )

        response = client.get(f"/api/checkout/sessions/{session_id}/validation")

        assert response.json() == {
            "is_valid": False,
            "errors": {"postal_code": "Invalid postal code format"},
        }

    def test_previous_and_reset(self, client):
        session_id = _to_payment(client)

        previous = client.post(f"/api/checkout/sessions/{session_id}/previous").json()
        reset = client.post(f"/api/checkout/sessions/{session_id}/reset").json()

        assert previous["state"]["current_step"] == "shipping"
        assert reset["state"]["current_step"] == "cart"
        assert reset["item_count"] == 0

    def test_card_is_masked(self, client):
        session_id = _to_payment(client)

        response = client.put(f"/api/checkout/sessions/{session_id}/payment-method", json=CARD)

        method = response.json()["state"]["payment_method"]
        assert method["card_number"] == "**** 4242"
        assert method["cvv"] == ""

    def test_pay(self, client):
        session_id = _to_payment(client)

        response = client.post(f"/api/checkout/sessions/{session_id}/pay", json=CARD)

        data = response.json()
        assert data["status"] == "completed"
        assert data["order"]["total"] == "36.99"
        assert data["state"]["current_step"] == "cart"

        orders = client.get(f"/api/orders/{USER}").json()
        assert [o["order_id"] for o in orders] == [data["order"]["order_id"]]

    def test_pay_with_invalid_card(self, client):
        session_id = _to_payment(client)

        response = client.post(
            f"/api/checkout/sessions/{session_id}/pay", json={**CARD, "card_number": "1234"}
        )

        assert response.json()["status"] == "invalid"
        assert response.json()["message"] == "Invalid card number"

    def test_payment_sheet_needs_hosted_mode(self, client):
        session_id = _to_payment(client)

        response = client.post(f"/api/checkout/sessions/{session_id}/payment-sheet")

        assert response.status_code == 400

    def test_delete_session(self, client):
        session_id = _start(client)

        assert client.delete(f"/api/checkout/sessions/{session_id}").status_code == 200
        assert client.delete(f"/api/checkout/sessions/{session_id}").status_code == 404


class TestHostedCheckoutRoutes:
    @pytest.fixture
    def hosted_client_app(self, hosted_gateway, repository):
        factory = partial(
            CheckoutStateMachine, "0.08", "9.99", SUPPORTED_COUNTRIES,
            hosted_payments=True, today=TODAY,
        )
        manager = CheckoutSessionManager(factory, hosted_gateway, repository)
        app.dependency_overrides[get_session_manager] = lambda: manager
        app.dependency_overrides[get_order_repository] = lambda: repository
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_sheet_round_trip(self, hosted_client_app):
        session_id = _to_payment(hosted_client_app)

        params = hosted_client_app.post(f"/api/checkout/sessions/{session_id}/payment-sheet")
        result = hosted_client_app.post(
            f"/api/checkout/sessions/{session_id}/payment-sheet/result",
            json={"status": "success"},
        )

        assert params.status_code == 200
        assert params.json()["merchant_display_name"] == "Swipely"
        assert result.json()["status"] == "completed"

    def test_second_sheet_while_processing(self, hosted_client_app):
        session_id = _to_payment(hosted_client_app)
        hosted_client_app.post(f"/api/checkout/sessions/{session_id}/payment-sheet")

        response = hosted_client_app.post(f"/api/checkout/sessions/{session_id}/payment-sheet")

        assert response.status_code == 409

    def test_cancel(self, hosted_client_app):
        session_id = _to_payment(hosted_client_app)
        hosted_client_app.post(f"/api/checkout/sessions/{session_id}/payment-sheet")

        response = hosted_client_app.post(
            f"/api/checkout/sessions/{session_id}/payment-sheet/result",
            json={"status": "user_cancelled"},
        )

        data = response.json()
        assert data["status"] == "cancelled"
        assert data["state"]["current_step"] == "payment"
        assert data["state"]["is_processing"] is False


class TestOrderRoutes:
    def _saved_order(self, repository, items, address):
        order = repository.create_order(items, address, "25.00", "2.00", "9.99", USER)
        asyncio.run(repository.save_order(order))
        return order

    def test_get_order(self, client, repository, items, address):
        order = self._saved_order(repository, items, address)

        response = client.get(f"/api/orders/{USER}/{order.order_id}")

        assert response.status_code == 200
        assert response.json()["confirmation_number"] == order.confirmation_number

    def test_missing_order(self, client):
        assert client.get(f"/api/orders/{USER}/ORD-NOPE").status_code == 404

    def test_status_updates(self, client, repository, items, address):
        order = self._saved_order(repository, items, address)
        url = f"/api/orders/{USER}/{order.order_id}/status"

        shipped = client.patch(url, json={"status": "shipped"})
        backwards = client.patch(url, json={"status": "completed"})

        assert shipped.json()["status"] == "shipped"
        assert backwards.status_code == 409

    def test_filter_by_status(self, client, repository, items, address):
        self._saved_order(repository, items, address)

        assert len(client.get(f"/api/orders/{USER}?status=completed").json()) == 1
        assert client.get(f"/api/orders/{USER}?status=shipped").json() == []

    def test_statistics(self, client, repository, items, address):
        self._saved_order(repository, items, address)

        response = client.get(f"/api/orders/{USER}/statistics")

        assert response.json()["total_orders"] == 1
        assert response.json()["total_spent"] == "36.99"

    def test_reorder(self, client, repository, items, address):
        order = self._saved_order(repository, items, address)

        response = client.post(f"/api/orders/{USER}/{order.order_id}/reorder")

        assert response.status_code == 200
        assert response.json()["order_id"] != order.order_id
        assert len(client.get(f"/api/orders/{USER}/recent?limit=5").json()) == 2

    def test_delete_and_clear(self, client, repository, items, address):
        order = self._saved_order(repository, items, address)
        self._saved_order(repository, items, address)

        assert client.delete(f"/api/orders/{USER}/{order.order_id}").status_code == 200
        assert client.delete(f"/api/orders/{USER}/{order.order_id}").status_code == 404
        client.delete(f"/api/orders/{USER}")
        assert client.get(f"/api/orders/{USER}").json() == []

    def test_storage_unavailable(self, client):
        app.dependency_overrides[get_order_repository] = lambda: OrderRepository(
            UnreadableStorage(), "0.08", "9.99", clock=lambda: NOW
        )

        response = client.get(f"/api/orders/{USER}")

        assert response.status_code == 503
        assert response.json()["retryable"] is True
