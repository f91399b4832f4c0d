"""Freezes cart lines into immutable order lines at checkout.

Joins each cart line with the product as it is right now and copies the
name, image and price into a plain dict that Order.place turns into
OrderLine entities. Lines whose product has disappeared or been
deactivated are left out and reported as skipped.
"""

from dataclasses import dataclass, field

from ordering.cart.cart import CartLine
from ordering.catalogue.port import Catalogue


@dataclass(frozen=True)
class Snapshot:
    lines: list[dict] = field(default_factory=list)
    captured: dict[str, int] = field(default_factory=dict)  # cart_line_id -> quantity taken
    skipped_product_ids: list[str] = field(default_factory=list)

    @property
    def total(self) -> float:
        return round(sum(line["unit_price"] * line["quantity"] for line in self.lines), 2)

    @property
    def is_empty(self) -> bool:
        return not self.lines


def build_snapshot(cart_lines: list[CartLine], catalogue: Catalogue) -> Snapshot:
    lines = []
    captured = {}
    skipped = []

    for cart_line in cart_lines:
        product = catalogue.find_product(cart_line.product_id)
        if product is None or not product.is_active:
            skipped.append(str(cart_line.product_id))
            continue

        lines.append(
            {
                "product_id": product.product_id,
                "product_name": product.name,
                "product_image": product.image,
                "unit_price": product.price,
                "quantity": cart_line.quantity,
            }
        )
        captured[str(cart_line.id)] = cart_line.quantity

    return Snapshot(lines=lines, captured=captured, skipped_product_ids=skipped)
