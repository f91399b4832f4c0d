"""Integration tests for Order API endpoints via TestClient."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from ordering.api import cart_router, order_router, register_error_handlers
from ordering.config import OrderingSettings, set_settings

CUSTOMER = {"X-User-Id": "cust-api-001", "X-User-Name": "Asha"}
OTHER_CUSTOMER = {"X-User-Id": "cust-api-002", "X-User-Name": "Vikram"}
OPERATOR = {"X-User-Id": "ops-001", "X-User-Name": "Ravi", "X-User-Role": "operator"}

ADDRESS = {
    "full_name": "Asha Rao",
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "KA",
    "postal_code": "560001",
    "country": "IN",
}


@pytest.fixture()
def client(catalogue, gateway):
    catalogue.add_product("prod-lamp", "Brass Lamp", 1200.0, stock=5)
    catalogue.add_product("prod-rug", "Cotton Rug", 899.5, stock=5)
    app = FastAPI()
    app.include_router(cart_router)
    app.include_router(order_router)
    register_error_handlers(app)
    return TestClient(app)


def _checkout(client, headers=CUSTOMER, **overrides):
    client.post("/cart/items", json={"product_id": "prod-lamp", "quantity": 2}, headers=headers)
    client.post("/cart/items", json={"product_id": "prod-rug", "quantity": 1}, headers=headers)
    body = {"shipping_address": ADDRESS}
    body.update(overrides)
    response = client.post("/orders", json=body, headers=headers)
    assert response.status_code == 201
    return response.json()


class TestCheckoutEndpoint:
    def test_checkout_returns_pending_order(self, client):
        order = _checkout(client)

        assert order["status"] == "pending"
        assert order["total"] == 3299.5
        assert order["currency"] == "INR"
        assert order["shipping_address"]["city"] == "Bengaluru"
        assert len(order["items"]) == 2
        assert [entry["status"] for entry in order["tracking"]] == ["pending"]

    def test_checkout_empties_cart(self, client):
        _checkout(client)
        assert client.get("/cart", headers=CUSTOMER).json()["items"] == []

    def test_empty_cart_returns_400(self, client):
        response = client.post("/orders", json={"shipping_address": ADDRESS}, headers=CUSTOMER)
        assert response.status_code == 400
        assert "Cart is empty" in response.text

    def test_incomplete_address_returns_422(self, client):
        response = client.post("/orders", json={"shipping_address": {"city": "Pune"}}, headers=CUSTOMER)
        assert response.status_code == 422

    def test_supplied_order_number_is_used(self, client):
        order = _checkout(client, order_number="ORD-1700000000000-API01")
        assert order["order_number"] == "ORD-1700000000000-API01"


class TestReadEndpoints:
    def test_get_own_order(self, client):
        order = _checkout(client)
        response = client.get(f"/orders/{order['order_id']}", headers=CUSTOMER)
        assert response.status_code == 200
        assert response.json()["order_number"] == order["order_number"]

    def test_other_customer_gets_403(self, client):
        order = _checkout(client)
        response = client.get(f"/orders/{order['order_id']}", headers=OTHER_CUSTOMER)
        assert response.status_code == 403
        assert "You do not have access to this order" in response.text

    def test_operator_can_read_any_order(self, client):
        order = _checkout(client)
        assert client.get(f"/orders/{order['order_id']}", headers=OPERATOR).status_code == 200

    def test_unknown_order_returns_404(self, client):
        assert client.get("/orders/does-not-exist", headers=CUSTOMER).status_code == 404

    def test_get_by_number(self, client):
        order = _checkout(client)
        response = client.get(f"/orders/by-number/{order['order_number']}", headers=CUSTOMER)
        assert response.status_code == 200
        assert response.json()["order_id"] == order["order_id"]

    def test_get_by_unknown_number_returns_404(self, client):
        assert client.get("/orders/by-number/ORD-0-NOPE0", headers=CUSTOMER).status_code == 404

    def test_list_own_orders(self, client):
        _checkout(client)
        response = client.get("/orders", headers=CUSTOMER)
        assert response.status_code == 200
        assert len(response.json()) == 1
        assert response.json()[0]["item_count"] == 3

    def test_list_other_customers_orders_forbidden(self, client):
        _checkout(client)
        response = client.get("/orders", params={"customer_id": "cust-api-001"}, headers=OTHER_CUSTOMER)
        assert response.status_code == 403

    def test_operator_lists_any_customer(self, client):
        _checkout(client)
        response = client.get("/orders", params={"customer_id": "cust-api-001"}, headers=OPERATOR)
        assert len(response.json()) == 1

    def test_tracking_history(self, client):
        order = _checkout(client)
        response = client.get(f"/orders/{order['order_id']}/tracking", headers=CUSTOMER)
        assert response.status_code == 200
        assert response.json()[0]["status"] == "pending"
        assert response.json()[0]["actor_id"] == "cust-api-001"


class TestPaymentEndpoints:
    def test_initiate_payment_returns_session(self, client, gateway):
        order = _checkout(client)

        response = client.post(f"/orders/{order['order_id']}/payment", headers=CUSTOMER)

        assert response.status_code == 200
        body = response.json()
        assert body["payment_session_id"].startswith("session_")
        assert body["amount"] == 3299.5
        assert gateway.calls[-1]["order_number"] == order["order_number"]

    def test_gateway_failure_returns_400(self, client, gateway):
        order = _checkout(client)
        gateway.configure(should_succeed=False, failure_reason="Gateway down")

        response = client.post(f"/orders/{order['order_id']}/payment", headers=CUSTOMER)

        assert response.status_code == 400
        assert "Gateway down" in response.text

    def test_time_remaining_inside_window(self, client):
        order = _checkout(client)
        response = client.get(f"/orders/{order['order_id']}/time-remaining", headers=CUSTOMER)
        body = response.json()
        assert response.status_code == 200
        assert body["is_expired"] is False
        assert 0 < body["time_remaining_seconds"] <= 30 * 60

    def test_expired_window_cancels_on_payment_attempt(self, client):
        order = _checkout(client)
        set_settings(OrderingSettings(payment_timeout_minutes=0))

        response = client.post(f"/orders/{order['order_id']}/payment", headers=CUSTOMER)

        assert response.status_code == 400
        assert "Payment session has expired. Order has been automatically cancelled." in response.text
        refreshed = client.get(f"/orders/{order['order_id']}", headers=CUSTOMER).json()
        assert refreshed["status"] == "cancelled"
        assert refreshed["tracking"][0]["actor_id"] == "system/timeout"


class TestCancelEndpoint:
    def test_cancel_restores_items(self, client):
        order = _checkout(client)

        response = client.post(f"/orders/{order['order_id']}/cancel", json={"note": "Changed my mind"}, headers=CUSTOMER)

        assert response.status_code == 200
        body = response.json()
        assert body["restoration"] == "full"
        assert body["restored_count"] == 2
        assert "All 2 items were restored to your cart" in body["message"]
        assert client.get("/cart", headers=CUSTOMER).json()["item_count"] == 3

    def test_cancel_without_body(self, client):
        order = _checkout(client)
        assert client.post(f"/orders/{order['order_id']}/cancel", headers=CUSTOMER).status_code == 200

    def test_partial_restoration(self, client, catalogue):
        order = _checkout(client)
        catalogue.set_stock("prod-rug", 0)

        body = client.post(f"/orders/{order['order_id']}/cancel", headers=CUSTOMER).json()

        assert body["restoration"] == "partial"
        assert body["skipped_product_ids"] == ["prod-rug"]

    def test_cancel_twice_returns_409(self, client):
        order = _checkout(client)
        client.post(f"/orders/{order['order_id']}/cancel", headers=CUSTOMER)

        response = client.post(f"/orders/{order['order_id']}/cancel", headers=CUSTOMER)

        assert response.status_code == 409
        assert "Cannot transition from cancelled to cancelled" in response.text

    def test_other_customer_cannot_cancel(self, client):
        order = _checkout(client)
        response = client.post(f"/orders/{order['order_id']}/cancel", headers=OTHER_CUSTOMER)
        assert response.status_code == 403
