"""Integration tests for operator-only order endpoints."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from ordering.api import cart_router, order_router, register_error_handlers
from ordering.webhook.events import PaymentSucceeded
from ordering.webhook.ingestion import WebhookIngester

CUSTOMER = {"X-User-Id": "cust-api-001", "X-User-Name": "Asha"}
OPERATOR = {"X-User-Id": "ops-001", "X-User-Name": "Ravi", "X-User-Role": "operator"}


@pytest.fixture()
def client(catalogue):
    catalogue.add_product("prod-lamp", "Brass Lamp", 1200.0, stock=5)
    app = FastAPI()
    app.include_router(cart_router)
    app.include_router(order_router)
    register_error_handlers(app)
    return TestClient(app)


@pytest.fixture()
def order_id(client):
    client.post("/cart/items", json={"product_id": "prod-lamp", "quantity": 1}, headers=CUSTOMER)
    response = client.post(
        "/orders",
        json={"shipping_address": {"street": "12 MG Road", "city": "Bengaluru", "postal_code": "560001", "country": "IN"}},
        headers=CUSTOMER,
    )
    return response.json()["order_id"]


def _set_status(client, order_id, status, **extra):
    return client.put(f"/orders/{order_id}/status", json={"status": status, **extra}, headers=OPERATOR)


class TestStatusEndpoint:
    def test_customer_gets_403(self, client, order_id):
        response = client.put(f"/orders/{order_id}/status", json={"status": "confirmed"}, headers=CUSTOMER)
        assert response.status_code == 403
        assert "Operator access required" in response.text

    def test_operator_moves_order_forward(self, client, order_id):
        response = _set_status(client, order_id, "confirmed", note="Paid offline")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "confirmed"
        latest = body["tracking"][0]
        assert latest["previous_status"] == "pending"
        assert latest["actor_id"] == "ops-001"
        assert latest["actor_name"] == "Ravi"
        assert latest["note"] == "Paid offline"

    def test_illegal_transition_returns_409(self, client, order_id):
        response = _set_status(client, order_id, "shipped")
        assert response.status_code == 409
        assert "Cannot transition from pending to shipped" in response.text

    def test_unknown_status_returns_400(self, client, order_id):
        response = _set_status(client, order_id, "teleported")
        assert response.status_code == 400
        assert "Unknown order status: teleported" in response.text

    def test_stale_expected_status_returns_409(self, client, order_id):
        _set_status(client, order_id, "confirmed")

        response = _set_status(client, order_id, "processing", expected_status="pending")

        assert response.status_code == 409
        assert "Expected order to be pending but it is confirmed" in response.text

    def test_delivered_order_cannot_be_cancelled(self, client, order_id):
        for status in ("confirmed", "processing", "shipped", "delivered"):
            assert _set_status(client, order_id, status).status_code == 200

        response = _set_status(client, order_id, "cancelled")

        assert response.status_code == 409
        detail = client.get(f"/orders/{order_id}", headers=OPERATOR).json()
        assert detail["status"] == "delivered"
        assert len(detail["tracking"]) == 5

    def test_operator_cancel_reports_cart_restoration(self, client, order_id):
        response = _set_status(client, order_id, "cancelled", note="Customer called")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "cancelled"
        assert body["restoration"]["restoration"] == "full"
        assert body["restoration"]["restored_count"] == 1
        cart = client.get("/cart", headers=CUSTOMER).json()
        assert [line["product_id"] for line in cart["items"]] == ["prod-lamp"]

    def test_forward_move_has_no_restoration(self, client, order_id):
        body = _set_status(client, order_id, "confirmed").json()
        assert body["restoration"] is None


class TestAdditionalInfoEndpoints:
    def test_set_and_clear(self, client, order_id):
        response = client.put(
            f"/orders/{order_id}/additional-info", json={"message": "Courier delayed"}, headers=OPERATOR
        )
        assert response.status_code == 200
        info = response.json()["additional_info"]
        assert info["message"] == "Courier delayed"
        assert info["updated_by"] == "Ravi"

        response = client.delete(f"/orders/{order_id}/additional-info", headers=OPERATOR)
        assert response.status_code == 200
        assert response.json()["additional_info"] is None

    def test_customer_cannot_set(self, client, order_id):
        response = client.put(f"/orders/{order_id}/additional-info", json={"message": "Hi"}, headers=CUSTOMER)
        assert response.status_code == 403

    def test_empty_message_rejected(self, client, order_id):
        response = client.put(f"/orders/{order_id}/additional-info", json={"message": ""}, headers=OPERATOR)
        assert response.status_code == 422


class TestRecentTracking:
    def test_recent_updates_newest_first(self, client, order_id):
        _set_status(client, order_id, "confirmed")

        response = client.get("/orders/tracking/recent", headers=OPERATOR)

        assert response.status_code == 200
        assert [record["status"] for record in response.json()] == ["confirmed", "pending"]

    def test_limit(self, client, order_id):
        _set_status(client, order_id, "confirmed")
        response = client.get("/orders/tracking/recent", params={"limit": 1}, headers=OPERATOR)
        assert len(response.json()) == 1

    def test_customer_gets_403(self, client):
        assert client.get("/orders/tracking/recent", headers=CUSTOMER).status_code == 403


class TestRefundEndpoint:
    @pytest.fixture()
    def paid_order_id(self, client, order_id):
        order_number = client.get(f"/orders/{order_id}", headers=OPERATOR).json()["order_number"]
        WebhookIngester().handle(PaymentSucceeded(order_number, payment_id="cf-1", payment_amount=1200.0))
        return order_id

    def test_operator_requests_partial_refund(self, client, paid_order_id):
        response = client.post(
            f"/orders/{paid_order_id}/refund", json={"amount": 200.0, "note": "Scratched base"}, headers=OPERATOR
        )

        assert response.status_code == 201
        body = response.json()
        assert body["refund_amount"] == 200.0
        assert body["refund_status"] == "pending"
        detail = client.get(f"/orders/{paid_order_id}", headers=OPERATOR).json()
        assert detail["refund_id"] == body["refund_id"]
        assert detail["status"] == "confirmed"

    def test_empty_body_refunds_everything(self, client, paid_order_id):
        response = client.post(f"/orders/{paid_order_id}/refund", headers=OPERATOR)
        assert response.status_code == 201
        assert response.json()["refund_amount"] == 1200.0

    def test_customer_gets_403(self, client, paid_order_id):
        response = client.post(f"/orders/{paid_order_id}/refund", json={"amount": 10.0}, headers=CUSTOMER)
        assert response.status_code == 403

    def test_unpaid_order_returns_400(self, client, order_id):
        response = client.post(f"/orders/{order_id}/refund", headers=OPERATOR)
        assert response.status_code == 400
        assert "Refunds can only be requested for paid orders" in response.text

    def test_non_positive_amount_returns_422(self, client, paid_order_id):
        response = client.post(f"/orders/{paid_order_id}/refund", json={"amount": 0}, headers=OPERATOR)
        assert response.status_code == 422
