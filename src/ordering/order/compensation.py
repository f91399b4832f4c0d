"""Cancellation Compensator — puts a cancelled order's items back in the cart.

Each order line is re-reserved through the Inventory Guard against the
product's *current* stock. A line is restored at its full original
quantity or skipped: products that are gone, inactive or short of stock
are never restored at a reduced quantity.

Runs inside the unit of work that cancels the order. Callers hold
lock_keys_for(order) around that unit of work.
"""

from dataclasses import dataclass, field
from enum import Enum

import structlog
from protean.utils.globals import current_domain

from ordering.cart.cart import CartLine
from ordering.cart.inventory import Denied, can_reserve
from ordering.catalogue import get_catalogue
from ordering.utils.locks import cart_key, order_key, product_key

logger = structlog.get_logger(__name__)


class RestorationOutcome(Enum):
    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


@dataclass(frozen=True)
class CancellationResult:
    order_id: str
    restored_count: int
    skipped_count: int
    skipped_product_ids: list[str] = field(default_factory=list)

    @property
    def outcome(self) -> RestorationOutcome:
        if self.skipped_count == 0:
            return RestorationOutcome.FULL
        if self.restored_count == 0:
            return RestorationOutcome.NONE
        return RestorationOutcome.PARTIAL

    @property
    def message(self) -> str:
        total = self.restored_count + self.skipped_count
        if self.outcome == RestorationOutcome.FULL:
            return f"Order cancelled. All {total} items were restored to your cart (0 skipped)."
        if self.outcome == RestorationOutcome.NONE:
            return (
                f"Order cancelled. 0 items were restored to your cart; all {self.skipped_count} were skipped "
                "because they are out of stock or no longer available."
            )
        return (
            f"Order cancelled. {self.restored_count} items were restored to your cart; "
            f"{self.skipped_count} were skipped because they are out of stock or no longer available."
        )


def lock_keys_for(order) -> list[tuple]:
    """Every lock a change to ``order`` may need, compensation included."""
    keys = [order_key(order.id), cart_key(order.customer_id)]
    keys.extend(product_key(item.product_id) for item in order.items)
    return keys


def restore_items_to_cart(order) -> CancellationResult:
    catalogue = get_catalogue()
    repo = current_domain.repository_for(CartLine)
    restored = 0
    skipped = []

    for item in order.items:
        product = catalogue.find_product(item.product_id)
        if product is None:
            skipped.append(str(item.product_id))
            logger.info(
                "Skipping restore of deleted product",
                order_id=str(order.id),
                product_id=str(item.product_id),
            )
            continue

        line = repo.find_line(order.customer_id, item.product_id)
        decision = can_reserve(
            product,
            line.quantity if line else 0,
            item.quantity,
            reserved_by_others=repo.reserved_by_others(item.product_id, order.customer_id),
        )
        if isinstance(decision, Denied):
            skipped.append(str(item.product_id))
            logger.info(
                "Skipping restore of unavailable item",
                order_id=str(order.id),
                product_id=str(item.product_id),
                quantity=item.quantity,
                reason=decision.reason,
            )
            continue

        if line is None:
            line = CartLine.reserve(order.customer_id, item.product_id, item.quantity)
        else:
            line.increase_by(item.quantity)
        repo.add(line)
        restored += 1

    result = CancellationResult(
        order_id=str(order.id),
        restored_count=restored,
        skipped_count=len(skipped),
        skipped_product_ids=skipped,
    )
    logger.info(
        "Cart restoration completed",
        order_id=str(order.id),
        customer_id=str(order.customer_id),
        restored_count=result.restored_count,
        skipped_count=result.skipped_count,
        outcome=result.outcome.value,
    )
    return result
