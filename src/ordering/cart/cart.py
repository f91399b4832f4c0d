"""CartLine aggregate (CQRS) — one reserved (customer, product, quantity) row.

Each line is its own aggregate so that reservations for different products
never contend. A customer holds at most one line per product; adding the
same product again increases that line. Lines are deleted on removal,
cart clear and checkout.

Stock rules live in the Inventory Guard (ordering.cart.inventory); the
aggregate only enforces what it can check on its own.
"""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer

from ordering.cart.events import CartItemAdded, CartQuantityUpdated
from ordering.domain import ordering


@ordering.aggregate
class CartLine:
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    added_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def reserve(cls, customer_id, product_id, quantity):
        now = datetime.now(UTC)
        line = cls(
            customer_id=str(customer_id),
            product_id=str(product_id),
            quantity=quantity,
            added_at=now,
            updated_at=now,
        )
        line.raise_(
            CartItemAdded(
                cart_line_id=str(line.id),
                customer_id=str(customer_id),
                product_id=str(product_id),
                quantity=quantity,
            )
        )
        return line

    def increase_by(self, quantity):
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity to add must be at least 1"]})
        self._change_quantity(self.quantity + quantity)

    def set_quantity(self, quantity):
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        self._change_quantity(quantity)

    def _change_quantity(self, new_quantity):
        previous_quantity = self.quantity
        self.quantity = new_quantity
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartQuantityUpdated(
                cart_line_id=str(self.id),
                customer_id=str(self.customer_id),
                product_id=str(self.product_id),
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
            )
        )


@ordering.repository(part_of=CartLine)
class CartLineRepository:
    """Queries over cart lines by customer and by product."""

    def for_customer(self, customer_id) -> list[CartLine]:
        lines = self._dao.query.filter(customer_id=str(customer_id)).limit(None).all().items
        return sorted(lines, key=lambda line: line.added_at)

    def for_product(self, product_id) -> list[CartLine]:
        return self._dao.query.filter(product_id=str(product_id)).limit(None).all().items

    def all_lines(self) -> list[CartLine]:
        return self._dao.query.limit(None).all().items

    def find_line(self, customer_id, product_id) -> CartLine | None:
        lines = self._dao.query.filter(customer_id=str(customer_id), product_id=str(product_id)).all().items
        return lines[0] if lines else None

    def reserved_by_others(self, product_id, customer_id) -> int:
        """Total quantity of ``product_id`` held in every cart except ``customer_id``'s."""
        return sum(line.quantity for line in self.for_product(product_id) if line.customer_id != str(customer_id))

    def discard(self, line: CartLine) -> None:
        self._dao.delete(line)
