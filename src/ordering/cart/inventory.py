"""Inventory Guard — decides whether a cart reservation is admissible.

Pure decision logic with no storage access. Callers pass in the product as
it is *now*, the quantity the customer already holds in their cart, and
the quantity reserved by every other customer; the guard answers Allowed
or Denied(reason).

Rules, applied in order:
    1. the product must still be active
    2. the requested quantity must meet the product's minimum order quantity
    3. the total reserved quantity must not exceed live stock
"""

from dataclasses import dataclass

from protean.exceptions import ValidationError

from ordering.catalogue.port import ProductInfo
from ordering.errors import InsufficientStock


class DenialKind:
    UNAVAILABLE = "unavailable"
    MIN_QUANTITY = "min_quantity"
    STOCK = "stock"


@dataclass(frozen=True)
class Allowed:
    allowed = True


@dataclass(frozen=True)
class Denied:
    reason: str
    kind: str = DenialKind.STOCK
    allowed = False

    def to_error(self) -> ValidationError:
        if self.kind == DenialKind.STOCK:
            return InsufficientStock({"quantity": [self.reason]})
        return ValidationError({"quantity": [self.reason]})


def _available(product: ProductInfo, reserved_by_others: int) -> int:
    return max(product.stock - reserved_by_others, 0)


def can_reserve(
    product: ProductInfo,
    existing_reserved_qty: int,
    requested_qty: int,
    reserved_by_others: int = 0,
) -> Allowed | Denied:
    """Check adding ``requested_qty`` on top of an existing reservation."""
    if not product.is_active:
        return Denied(f"{product.name} is no longer available.", DenialKind.UNAVAILABLE)

    if requested_qty < product.min_order_quantity:
        return Denied(
            f"Minimum order quantity for this product is {product.min_order_quantity} items.",
            DenialKind.MIN_QUANTITY,
        )

    available = _available(product, reserved_by_others)
    if existing_reserved_qty + requested_qty > available:
        if existing_reserved_qty > 0:
            return Denied(
                f"Cannot add {requested_qty} more items. You already have {existing_reserved_qty} "
                f"in your cart, but only {available} total items are available."
            )
        return Denied(
            f"Insufficient stock. Only {available} items available, "
            f"but you're trying to add {requested_qty} items."
        )

    return Allowed()


def can_set_quantity(
    product: ProductInfo,
    new_qty: int,
    reserved_by_others: int = 0,
) -> Allowed | Denied:
    """Check replacing a cart line's quantity with the absolute value ``new_qty``.

    The customer's current reservation is not counted: the new value
    replaces it.
    """
    if not product.is_active:
        return Denied(f"{product.name} is no longer available.", DenialKind.UNAVAILABLE)

    if new_qty < product.min_order_quantity:
        return Denied(
            f"Cannot reduce quantity below minimum order quantity of {product.min_order_quantity} items.",
            DenialKind.MIN_QUANTITY,
        )

    available = _available(product, reserved_by_others)
    if new_qty > available:
        return Denied(f"Cannot set quantity to {new_qty}. Only {available} items available in stock.")

    return Allowed()
