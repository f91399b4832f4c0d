"""Domain events for the CartLine aggregate."""

from protean.fields import Identifier, Integer

from ordering.domain import ordering


@ordering.event(part_of="CartLine")
class CartItemAdded:
    """A product was reserved in a customer's cart for the first time."""

    __version__ = 1

    cart_line_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True)


@ordering.event(part_of="CartLine")
class CartQuantityUpdated:
    """The reserved quantity of a cart line changed."""

    __version__ = 1

    cart_line_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)
