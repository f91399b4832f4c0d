"""Application tests for operator refunds through the gateway port."""

import pytest
from ordering.cart.items import add_to_cart
from ordering.order.checkout import place_order
from ordering.order.order import Order, OrderStatus, RefundStatus
from ordering.order.refund import initiate_refund
from ordering.webhook.events import PaymentSucceeded, RefundFailed, RefundSucceeded
from ordering.webhook.ingestion import AckOutcome, WebhookIngester
from ordering.webhook.retry import WebhookRetryQueue
from protean import current_domain
from protean.exceptions import ValidationError


@pytest.fixture()
def order_id(catalogue, gateway, shipping_address):
    catalogue.add_product("prod-lamp", "Brass Lamp", 1200.0, stock=10)
    add_to_cart("cust-001", "prod-lamp", 2)
    return place_order("cust-001", shipping_address)


@pytest.fixture()
def ingester():
    return WebhookIngester(WebhookRetryQueue(max_attempts=3))


@pytest.fixture()
def paid_order_id(order_id, ingester):
    ingester.handle(PaymentSucceeded(_order(order_id).order_number, payment_id="cf-1", payment_amount=2400.0))
    return order_id


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


class TestInitiateRefund:
    def test_full_refund_by_default(self, paid_order_id, gateway):
        refund = initiate_refund(paid_order_id, note="Damaged in transit", requested_by="Ravi")

        order = _order(paid_order_id)
        assert refund["refund_id"].startswith("refund_")
        assert refund["refund_amount"] == 2400.0
        assert refund["refund_status"] == RefundStatus.PENDING.value
        assert order.refund_id == refund["refund_id"]
        assert order.refund_status == RefundStatus.PENDING.value
        assert order.status == OrderStatus.CONFIRMED.value

    def test_gateway_receives_refund_details(self, paid_order_id, gateway):
        refund = initiate_refund(paid_order_id, amount=500.0, note="Partial")

        call = gateway.calls[-1]
        assert call["method"] == "create_refund"
        assert call["order_number"] == _order(paid_order_id).order_number
        assert call["refund_id"] == refund["refund_id"]
        assert call["amount"] == 500.0
        assert call["note"] == "Partial"

    def test_unpaid_order_rejected(self, order_id, gateway):
        with pytest.raises(ValidationError) as exc:
            initiate_refund(order_id)
        assert "Refunds can only be requested for paid orders" in exc.value.messages["refund"]
        assert gateway.calls == []

    def test_amount_above_payment_rejected(self, paid_order_id, gateway):
        with pytest.raises(ValidationError) as exc:
            initiate_refund(paid_order_id, amount=5000.0)
        assert "would exceed the amount paid" in exc.value.messages["amount"][0]
        assert _order(paid_order_id).refund_id is None

    def test_second_refund_while_pending_rejected(self, paid_order_id, gateway):
        initiate_refund(paid_order_id, amount=100.0)

        with pytest.raises(ValidationError) as exc:
            initiate_refund(paid_order_id, amount=100.0)
        assert exc.value.messages["refund"] == ["A refund is already pending for this order"]

    def test_gateway_failure_leaves_order_untouched(self, paid_order_id, gateway):
        gateway.configure(should_succeed=False, failure_reason="Refunds disabled")

        with pytest.raises(ValidationError) as exc:
            initiate_refund(paid_order_id)

        assert exc.value.messages["refund"] == ["Refunds disabled"]
        order = _order(paid_order_id)
        assert order.refund_id is None
        assert order.refund_status is None


class TestRefundOutcomeWebhooks:
    def test_success_webhook_completes_requested_refund(self, paid_order_id, ingester):
        refund = initiate_refund(paid_order_id, amount=400.0)
        order = _order(paid_order_id)

        ack = ingester.handle(RefundSucceeded(order.order_number, refund_id=refund["refund_id"], refund_amount=400.0))

        assert ack.outcome == AckOutcome.APPLIED
        refreshed = _order(paid_order_id)
        assert refreshed.refund_status == RefundStatus.COMPLETED.value
        assert refreshed.refund_amount == 400.0

    def test_failed_refund_can_be_requested_again(self, paid_order_id, ingester):
        first = initiate_refund(paid_order_id, amount=400.0)
        order_number = _order(paid_order_id).order_number
        ingester.handle(RefundFailed(order_number, refund_id=first["refund_id"], failure_reason="Account closed"))

        second = initiate_refund(paid_order_id, amount=400.0)

        assert second["refund_id"] != first["refund_id"]
        refreshed = _order(paid_order_id)
        assert refreshed.refund_status == RefundStatus.PENDING.value
        assert refreshed.refund_failure_reason is None
