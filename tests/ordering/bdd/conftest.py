"""Shared BDD fixtures and step definitions for the Ordering domain."""

import pytest
from ordering.cart.cart import CartLine
from ordering.cart.items import add_to_cart
from ordering.order.cancellation import cancel_order
from ordering.order.checkout import place_order
from ordering.order.order import Actor, Order
from ordering.order.status import update_order_status
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when

OPERATOR = Actor(actor_id="ops-001", name="Ravi")


# ---------------------------------------------------------------------------
# Scalar fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def customer_id():
    return "cust-001"


@pytest.fixture()
def error():
    """Container for a captured validation error."""
    return {"exc": None}


@pytest.fixture()
def outcome():
    """Container for the value returned by the last When step."""
    return {"result": None}


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a product "{product_id}" priced {price:f} with {stock:d} in stock'))
def product_in_catalogue(catalogue, product_id, price, stock):
    catalogue.add_product(product_id, product_id.title(), price, stock=stock)


@given(parsers.cfparse('a product "{product_id}" with {stock:d} in stock and a minimum order of {minimum:d}'))
def product_with_minimum(catalogue, product_id, stock, minimum):
    catalogue.add_product(product_id, product_id.title(), 10.0, stock=stock, min_order_quantity=minimum)


@given(parsers.cfparse('the customer has {qty:d} of "{product_id}" in the cart'))
def customer_cart_line(customer_id, product_id, qty):
    add_to_cart(customer_id, product_id, qty)


@given("the customer has checked out", target_fixture="order_id")
def checked_out(customer_id, shipping_address):
    return place_order(customer_id, shipping_address, customer_name="Asha")


@given(parsers.cfparse('an operator has moved the order through "{statuses}"'))
def moved_through(order_id, statuses):
    for status in statuses.split(","):
        update_order_status(order_id, status.strip(), OPERATOR)


@given(parsers.cfparse('"{product_id}" goes out of stock'))
def out_of_stock(catalogue, product_id):
    catalogue.set_stock(product_id, 0)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the customer adds {qty:d} of "{product_id}" to the cart'))
def add_item(customer_id, product_id, qty, error):
    try:
        add_to_cart(customer_id, product_id, qty)
    except ValidationError as exc:
        error["exc"] = exc


@when("the customer cancels the order")
def customer_cancels(order_id, customer_id, error, outcome):
    try:
        outcome["result"] = cancel_order(order_id, Actor(actor_id=customer_id, name="Asha"))
    except ValidationError as exc:
        error["exc"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the request is denied with "{message}"'))
def request_denied(error, message):
    assert error["exc"] is not None
    assert any(message in text for texts in error["exc"].messages.values() for text in texts)


@then("the request succeeds")
def request_succeeds(error):
    assert error["exc"] is None


@then(parsers.cfparse('the cart holds {qty:d} of "{product_id}"'))
def cart_holds(customer_id, product_id, qty):
    line = current_domain.repository_for(CartLine).find_line(customer_id, product_id)
    assert line is not None
    assert line.quantity == qty


@then(parsers.cfparse('the cart has no "{product_id}"'))
def cart_lacks(customer_id, product_id):
    assert current_domain.repository_for(CartLine).find_line(customer_id, product_id) is None


@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order_id, status):
    assert _order(order_id).status == status


@then(parsers.cfparse("the order has {count:d} tracking entries"))
def tracking_entry_count(order_id, count):
    assert len(_order(order_id).tracking_entries) == count


@then(parsers.cfparse('the latest tracking entry is by "{actor_id}"'))
def latest_entry_actor(order_id, actor_id):
    assert _order(order_id).tracking_history()[0].actor_id == actor_id
