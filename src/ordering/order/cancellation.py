"""Order cancellation — command, handler and locked entry point.

Cancelling is a state transition followed by compensation: the order moves
to cancelled (with its tracking entry) and then the Cancellation
Compensator re-reserves each order line in the customer's cart. Both
happen in one unit of work.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.compensation import lock_keys_for, restore_items_to_cart
from ordering.order.expiry import expire_if_stale
from ordering.order.order import Actor, Order, OrderStatus
from ordering.utils.locks import get_locks

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    actor_id = String(required=True, max_length=255)
    actor_name = String(max_length=255)
    note = Text()
    expected_status = String(max_length=20)


@ordering.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        previous_status = order.status

        order.transition(
            OrderStatus.CANCELLED,
            Actor(actor_id=command.actor_id, name=command.actor_name),
            note=command.note,
            expected_status=command.expected_status,
        )
        repo.add(order)

        result = restore_items_to_cart(order)
        logger.info(
            "Order cancelled",
            order_id=str(order.id),
            order_number=order.order_number,
            previous_status=previous_status,
            actor_id=command.actor_id,
            restored_count=result.restored_count,
            skipped_count=result.skipped_count,
        )
        return result


def cancel_order(order_id, actor: Actor, note=None, expected_status=None):
    """Cancel an order and restore its items. Returns a CancellationResult."""
    order = current_domain.repository_for(Order).get(order_id)

    with get_locks().hold(*lock_keys_for(order)):
        expire_if_stale(order.id)
        command = CancelOrder(
            order_id=str(order.id),
            actor_id=actor.actor_id,
            actor_name=actor.name,
            note=note,
            expected_status=expected_status,
        )
        return current_domain.process(command, asynchronous=False)
