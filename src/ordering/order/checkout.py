"""Checkout — turns a customer's cart into a pending order.

Flow (one unit of work):
    1. Read the customer's cart lines; an empty cart is rejected.
    2. Freeze them into order lines with the Snapshot Builder.
    3. Place the order (status pending, one tracking entry) under a fresh
       order number.
    4. Release the checked-out cart lines according to the configured
       late-additions policy.

place_order() is the entry point. It holds the customer's cart lock while
processing and retries with a new order number on a collision. A caller
that supplies its own order number gets idempotent replays: checking out
again with a number the customer already owns returns the existing order.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.cart.cart import CartLine
from ordering.catalogue import get_catalogue
from ordering.config import LateAdditionsPolicy, get_settings
from ordering.domain import ordering
from ordering.errors import DuplicateOrderNumber
from ordering.order.numbering import generate_order_number
from ordering.order.order import Actor, Order
from ordering.order.snapshot import build_snapshot
from ordering.utils.locks import cart_key, get_locks

logger = structlog.get_logger(__name__)

MAX_ORDER_NUMBER_ATTEMPTS = 3


@ordering.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    customer_name = String(max_length=255)
    order_number = String(required=True, max_length=50)
    shipping_address = Text(required=True)  # JSON, stored verbatim
    replay_safe = Boolean(default=False)  # True when the caller chose the order number


def release_checked_out_lines(customer_id, captured: dict[str, int], policy: LateAdditionsPolicy) -> int:
    """Remove what the order took from the customer's cart.

    ``captured`` maps cart line ids to the quantity frozen into the order.
    With DROP every current line goes, including anything added after the
    snapshot was read. With PRESERVE only the captured quantities go: new
    lines survive, and a line that grew keeps the difference.

    Returns the number of lines deleted.
    """
    repo = current_domain.repository_for(CartLine)
    deleted = 0

    for line in repo.for_customer(customer_id):
        taken = captured.get(str(line.id))
        if policy == LateAdditionsPolicy.PRESERVE:
            if taken is None:
                continue
            if line.quantity > taken:
                line.set_quantity(line.quantity - taken)
                repo.add(line)
                continue
        repo.discard(line)
        deleted += 1

    return deleted


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        order_repo = current_domain.repository_for(Order)

        existing = order_repo.find_by_order_number(command.order_number)
        if existing is not None:
            if command.replay_safe and existing.customer_id == str(command.customer_id):
                logger.info(
                    "Checkout replayed for existing order",
                    order_id=str(existing.id),
                    order_number=command.order_number,
                )
                return str(existing.id)
            raise DuplicateOrderNumber({"order_number": [f"Order number {command.order_number} is already in use"]})

        cart_lines = current_domain.repository_for(CartLine).for_customer(command.customer_id)
        if not cart_lines:
            raise ValidationError({"cart": ["Cart is empty"]})

        snapshot = build_snapshot(cart_lines, get_catalogue())
        if snapshot.is_empty:
            raise ValidationError({"cart": ["None of the products in your cart are available any more"]})

        settings = get_settings()
        order = Order.place(
            customer_id=command.customer_id,
            order_number=command.order_number,
            lines=snapshot.lines,
            shipping_address=json.loads(command.shipping_address),
            actor=Actor(actor_id=str(command.customer_id), name=command.customer_name),
            currency=settings.currency,
        )
        order_repo.add(order)

        release_checked_out_lines(command.customer_id, snapshot.captured, settings.late_additions_policy)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            customer_id=str(command.customer_id),
            total=order.total,
            item_count=len(snapshot.lines),
            skipped_products=snapshot.skipped_product_ids,
        )
        return str(order.id)


def place_order(customer_id, shipping_address, customer_name=None, order_number=None):
    """Check out the customer's cart and return the new order id."""
    shipping_json = json.dumps(shipping_address)

    with get_locks().hold(cart_key(customer_id)):
        if order_number is not None:
            command = PlaceOrder(
                customer_id=customer_id,
                customer_name=customer_name,
                order_number=order_number,
                shipping_address=shipping_json,
                replay_safe=True,
            )
            return current_domain.process(command, asynchronous=False)

        for attempt in range(1, MAX_ORDER_NUMBER_ATTEMPTS + 1):
            command = PlaceOrder(
                customer_id=customer_id,
                customer_name=customer_name,
                order_number=generate_order_number(),
                shipping_address=shipping_json,
            )
            try:
                return current_domain.process(command, asynchronous=False)
            except DuplicateOrderNumber:
                logger.warning(
                    "Order number collision, retrying",
                    order_number=command.order_number,
                    attempt=attempt,
                )

    raise DuplicateOrderNumber({"order_number": ["Could not allocate a unique order number"]})
