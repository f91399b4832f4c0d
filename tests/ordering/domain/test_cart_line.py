"""Tests for the CartLine aggregate."""

import pytest
from ordering.cart.cart import CartLine
from ordering.cart.events import CartItemAdded, CartQuantityUpdated
from protean.exceptions import ValidationError


class TestReserve:
    def test_reserve_sets_fields(self):
        line = CartLine.reserve("cust-001", "prod-001", 2)
        assert line.customer_id == "cust-001"
        assert line.product_id == "prod-001"
        assert line.quantity == 2
        assert line.added_at is not None

    def test_reserve_raises_item_added(self):
        line = CartLine.reserve("cust-001", "prod-001", 2)
        assert len(line._events) == 1
        event = line._events[0]
        assert isinstance(event, CartItemAdded)
        assert event.quantity == 2

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            CartLine.reserve("cust-001", "prod-001", 0)


class TestQuantityChanges:
    def test_increase_by_adds(self):
        line = CartLine.reserve("cust-001", "prod-001", 2)
        line.increase_by(3)
        assert line.quantity == 5

    def test_set_quantity_replaces(self):
        line = CartLine.reserve("cust-001", "prod-001", 2)
        line._events.clear()
        line.set_quantity(4)

        assert line.quantity == 4
        event = line._events[-1]
        assert isinstance(event, CartQuantityUpdated)
        assert event.previous_quantity == 2
        assert event.new_quantity == 4

    def test_set_quantity_zero_rejected(self):
        line = CartLine.reserve("cust-001", "prod-001", 2)
        with pytest.raises(ValidationError):
            line.set_quantity(0)

    def test_increase_by_zero_rejected(self):
        line = CartLine.reserve("cust-001", "prod-001", 2)
        with pytest.raises(ValidationError):
            line.increase_by(0)
