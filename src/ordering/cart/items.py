"""Cart item management — commands, handler and locked entry points.

Every reservation change runs through the Inventory Guard. The module-level
functions (add_to_cart, set_cart_quantity, ...) are the entry points the API
uses: they hold the product lock while the command is processed and
committed, so two concurrent adds for the same product are serialized
through the guard.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from ordering.cart.cart import CartLine
from ordering.cart.inventory import Denied, can_reserve, can_set_quantity
from ordering.catalogue import get_catalogue
from ordering.domain import ordering
from ordering.utils.locks import cart_key, process_exclusively, product_key

logger = structlog.get_logger(__name__)


@ordering.command(part_of="CartLine")
class AddToCart:
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@ordering.command(part_of="CartLine")
class SetCartQuantity:
    """Replace a line's quantity. Zero removes the line."""

    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=0)


@ordering.command(part_of="CartLine")
class RemoveFromCart:
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)


@ordering.command(part_of="CartLine")
class ClearCart:
    customer_id = Identifier(required=True)


def _deny(decision: Denied, customer_id, product_id, quantity):
    logger.info(
        "Cart reservation denied",
        customer_id=str(customer_id),
        product_id=str(product_id),
        quantity=quantity,
        reason=decision.reason,
    )
    raise decision.to_error()


@ordering.command_handler(part_of=CartLine)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        product = get_catalogue().get_product(command.product_id)
        repo = current_domain.repository_for(CartLine)

        line = repo.find_line(command.customer_id, command.product_id)
        existing = line.quantity if line else 0
        decision = can_reserve(
            product,
            existing,
            command.quantity,
            reserved_by_others=repo.reserved_by_others(command.product_id, command.customer_id),
        )
        if isinstance(decision, Denied):
            _deny(decision, command.customer_id, command.product_id, command.quantity)

        if line is None:
            line = CartLine.reserve(command.customer_id, command.product_id, command.quantity)
        else:
            line.increase_by(command.quantity)
        repo.add(line)
        return str(line.id)

    @handle(SetCartQuantity)
    def set_cart_quantity(self, command):
        repo = current_domain.repository_for(CartLine)
        line = repo.find_line(command.customer_id, command.product_id)
        if line is None:
            raise ObjectNotFoundError("Cart item not found or already removed")

        if command.quantity == 0:
            repo.discard(line)
            return None

        product = get_catalogue().get_product(command.product_id)
        decision = can_set_quantity(
            product,
            command.quantity,
            reserved_by_others=repo.reserved_by_others(command.product_id, command.customer_id),
        )
        if isinstance(decision, Denied):
            _deny(decision, command.customer_id, command.product_id, command.quantity)

        line.set_quantity(command.quantity)
        repo.add(line)
        return str(line.id)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        repo = current_domain.repository_for(CartLine)
        line = repo.find_line(command.customer_id, command.product_id)
        if line is None:
            raise ObjectNotFoundError("Cart item not found or already removed")
        repo.discard(line)

    @handle(ClearCart)
    def clear_cart(self, command):
        repo = current_domain.repository_for(CartLine)
        lines = repo.for_customer(command.customer_id)
        for line in lines:
            repo.discard(line)
        return len(lines)


# ---------------------------------------------------------------------------
# Locked entry points
# ---------------------------------------------------------------------------
def add_to_cart(customer_id, product_id, quantity):
    command = AddToCart(customer_id=customer_id, product_id=product_id, quantity=quantity)
    return process_exclusively(command, cart_key(customer_id), product_key(product_id))


def set_cart_quantity(customer_id, product_id, quantity):
    command = SetCartQuantity(customer_id=customer_id, product_id=product_id, quantity=quantity)
    return process_exclusively(command, cart_key(customer_id), product_key(product_id))


def remove_from_cart(customer_id, product_id):
    command = RemoveFromCart(customer_id=customer_id, product_id=product_id)
    return process_exclusively(command, cart_key(customer_id), product_key(product_id))


def clear_cart(customer_id):
    return process_exclusively(ClearCart(customer_id=customer_id), cart_key(customer_id))
