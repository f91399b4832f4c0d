"""A customer's cart lines joined with live catalogue data.

Lines whose product no longer exists are orphans: they are left out of the
listing and removed later by PurgeOrphanedCartLines.
"""

from dataclasses import dataclass, field

from protean.utils.globals import current_domain

from ordering.cart.cart import CartLine
from ordering.catalogue import get_catalogue


@dataclass(frozen=True)
class CartLineView:
    cart_line_id: str
    product_id: str
    product_name: str
    product_image: str
    unit_price: float
    quantity: int
    min_order_quantity: int
    stock: int

    @property
    def subtotal(self) -> float:
        return round(self.unit_price * self.quantity, 2)


@dataclass(frozen=True)
class CartView:
    customer_id: str
    lines: list[CartLineView] = field(default_factory=list)

    @property
    def total(self) -> float:
        return round(sum(line.subtotal for line in self.lines), 2)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)


def list_cart(customer_id) -> CartView:
    catalogue = get_catalogue()
    views = []
    for line in current_domain.repository_for(CartLine).for_customer(customer_id):
        product = catalogue.find_product(line.product_id)
        if product is None:
            continue
        views.append(
            CartLineView(
                cart_line_id=str(line.id),
                product_id=product.product_id,
                product_name=product.name,
                product_image=product.image,
                unit_price=product.price,
                quantity=line.quantity,
                min_order_quantity=product.min_order_quantity,
                stock=product.stock,
            )
        )
    return CartView(customer_id=str(customer_id), lines=views)
