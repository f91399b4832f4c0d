"""Application tests for checkout — cart to pending order."""

import pytest
from ordering.cart.cart import CartLine
from ordering.cart.items import add_to_cart
from ordering.config import LateAdditionsPolicy, OrderingSettings, set_settings
from ordering.errors import DuplicateOrderNumber
from ordering.order import checkout
from ordering.order.checkout import place_order, release_checked_out_lines
from ordering.order.numbering import generate_order_number
from ordering.order.order import Order, OrderStatus
from protean import current_domain
from protean.exceptions import ValidationError


@pytest.fixture()
def stocked(catalogue):
    catalogue.add_product("prod-lamp", "Brass Lamp", 1200.0, stock=10, image="/img/lamp.jpg")
    catalogue.add_product("prod-rug", "Cotton Rug", 899.5, stock=10)
    return catalogue


def _cart_lines(customer_id):
    return current_domain.repository_for(CartLine).for_customer(customer_id)


class TestPlaceOrder:
    def test_creates_pending_order_from_cart(self, stocked, shipping_address):
        add_to_cart("cust-001", "prod-lamp", 2)
        add_to_cart("cust-001", "prod-rug", 1)

        order_id = place_order("cust-001", shipping_address, customer_name="Asha")

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == OrderStatus.PENDING.value
        assert order.total == 3299.5
        assert len(order.items) == 2
        assert order.shipping_address_data == shipping_address
        assert order.order_number.startswith("ORD-")

    def test_exactly_one_tracking_entry(self, stocked, shipping_address):
        add_to_cart("cust-001", "prod-lamp", 1)
        order = current_domain.repository_for(Order).get(place_order("cust-001", shipping_address))

        assert len(order.tracking_entries) == 1
        assert order.tracking_entries[0].status == OrderStatus.PENDING.value

    def test_empties_the_cart(self, stocked, shipping_address):
        add_to_cart("cust-001", "prod-lamp", 1)
        place_order("cust-001", shipping_address)
        assert _cart_lines("cust-001") == []

    def test_empty_cart_rejected(self, stocked, shipping_address):
        with pytest.raises(ValidationError) as exc:
            place_order("cust-001", shipping_address)
        assert exc.value.messages == {"cart": ["Cart is empty"]}
        assert current_domain.repository_for(Order).for_customer("cust-001") == []

    def test_price_change_after_checkout_does_not_reach_order(self, stocked, shipping_address):
        add_to_cart("cust-001", "prod-lamp", 1)
        order_id = place_order("cust-001", shipping_address)

        stocked.set_price("prod-lamp", 1.0)
        stocked.remove_product("prod-rug")

        order = current_domain.repository_for(Order).get(order_id)
        assert order.items[0].unit_price == 1200.0
        assert order.items[0].product_image == "/img/lamp.jpg"
        assert order.total == 1200.0

    def test_lines_of_deleted_products_are_left_out(self, stocked, shipping_address):
        add_to_cart("cust-001", "prod-lamp", 1)
        add_to_cart("cust-001", "prod-rug", 1)
        stocked.remove_product("prod-rug")

        order = current_domain.repository_for(Order).get(place_order("cust-001", shipping_address))
        assert [line.product_id for line in order.items] == ["prod-lamp"]

    def test_nothing_orderable_rejected(self, stocked, shipping_address):
        add_to_cart("cust-001", "prod-rug", 1)
        stocked.deactivate("prod-rug")

        with pytest.raises(ValidationError) as exc:
            place_order("cust-001", shipping_address)
        assert "cart" in exc.value.messages

    def test_currency_from_settings(self, stocked, shipping_address):
        set_settings(OrderingSettings(currency="USD"))
        add_to_cart("cust-001", "prod-lamp", 1)

        order = current_domain.repository_for(Order).get(place_order("cust-001", shipping_address))
        assert order.currency == "USD"


class TestOrderNumbers:
    def test_caller_chosen_number_is_replay_safe(self, stocked, shipping_address):
        add_to_cart("cust-001", "prod-lamp", 1)
        first = place_order("cust-001", shipping_address, order_number="ORD-1-CLIENT")

        add_to_cart("cust-001", "prod-rug", 1)
        second = place_order("cust-001", shipping_address, order_number="ORD-1-CLIENT")

        assert first == second
        # The replay did not consume the new cart line
        assert len(_cart_lines("cust-001")) == 1

    def test_number_taken_by_another_customer(self, stocked, shipping_address):
        add_to_cart("cust-001", "prod-lamp", 1)
        place_order("cust-001", shipping_address, order_number="ORD-1-CLIENT")

        add_to_cart("cust-002", "prod-lamp", 1)
        with pytest.raises(DuplicateOrderNumber):
            place_order("cust-002", shipping_address, order_number="ORD-1-CLIENT")

    def test_generated_collision_is_retried(self, stocked, shipping_address, monkeypatch):
        add_to_cart("cust-001", "prod-lamp", 1)
        place_order("cust-001", shipping_address, order_number="ORD-TAKEN")

        numbers = iter(["ORD-TAKEN", "ORD-TAKEN", "ORD-FRESH"])
        monkeypatch.setattr(checkout, "generate_order_number", lambda: next(numbers))

        add_to_cart("cust-002", "prod-lamp", 1)
        order = current_domain.repository_for(Order).get(place_order("cust-002", shipping_address))
        assert order.order_number == "ORD-FRESH"

    def test_gives_up_after_repeated_collisions(self, stocked, shipping_address, monkeypatch):
        add_to_cart("cust-001", "prod-lamp", 1)
        place_order("cust-001", shipping_address, order_number="ORD-TAKEN")
        monkeypatch.setattr(checkout, "generate_order_number", lambda: "ORD-TAKEN")

        add_to_cart("cust-002", "prod-lamp", 1)
        with pytest.raises(DuplicateOrderNumber):
            place_order("cust-002", shipping_address)
        assert len(_cart_lines("cust-002")) == 1

    def test_generated_numbers_are_unique(self, stocked, shipping_address):
        numbers = set()
        for index in range(5):
            customer_id = f"cust-{index}"
            add_to_cart(customer_id, "prod-lamp", 1)
            order = current_domain.repository_for(Order).get(place_order(customer_id, shipping_address))
            numbers.add(order.order_number)
        assert len(numbers) == 5


class TestLateAdditions:
    def _snapshot_then_add_more(self):
        add_to_cart("cust-001", "prod-lamp", 2)
        lamp = current_domain.repository_for(CartLine).find_line("cust-001", "prod-lamp")
        captured = {str(lamp.id): 2}

        # Arrives after the snapshot was read
        add_to_cart("cust-001", "prod-lamp", 1)
        add_to_cart("cust-001", "prod-rug", 1)
        return captured

    def test_drop_policy_clears_everything(self, stocked):
        captured = self._snapshot_then_add_more()

        deleted = release_checked_out_lines("cust-001", captured, LateAdditionsPolicy.DROP)

        assert deleted == 2
        assert _cart_lines("cust-001") == []

    def test_preserve_policy_keeps_late_additions(self, stocked):
        captured = self._snapshot_then_add_more()

        deleted = release_checked_out_lines("cust-001", captured, LateAdditionsPolicy.PRESERVE)

        assert deleted == 0
        remaining = {line.product_id: line.quantity for line in _cart_lines("cust-001")}
        assert remaining == {"prod-lamp": 1, "prod-rug": 1}


def test_generated_number_format():
    prefix, millis, suffix = generate_order_number().split("-")
    assert prefix == "ORD"
    assert millis.isdigit()
    assert len(suffix) == 5
    assert suffix == suffix.upper()
