"""Orphaned cart line cleanup.

A line becomes orphaned when its product is deleted from the catalogue.
Listing already hides such lines; this purge removes them for good. It is
triggered through the maintenance API or by the background runner.
"""

import structlog
from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from ordering.cart.cart import CartLine
from ordering.catalogue import get_catalogue
from ordering.domain import ordering

logger = structlog.get_logger(__name__)


@ordering.command(part_of="CartLine")
class PurgeOrphanedCartLines:
    """Delete cart lines whose product no longer exists."""

    customer_id = Identifier()  # Optional: limit the purge to one customer


@ordering.command_handler(part_of=CartLine)
class PurgeOrphanedCartLinesHandler:
    @handle(PurgeOrphanedCartLines)
    def purge_orphaned_cart_lines(self, command):
        repo = current_domain.repository_for(CartLine)
        if command.customer_id:
            lines = repo.for_customer(command.customer_id)
        else:
            lines = repo.all_lines()

        catalogue = get_catalogue()
        purged = 0
        for line in lines:
            if catalogue.find_product(line.product_id) is None:
                repo.discard(line)
                purged += 1
                logger.info(
                    "Purged orphaned cart line",
                    cart_line_id=str(line.id),
                    customer_id=str(line.customer_id),
                    product_id=str(line.product_id),
                )

        logger.info("Orphaned cart line purge complete", purged_count=purged)
        return purged
