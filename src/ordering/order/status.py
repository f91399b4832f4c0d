"""Operator status updates — command, handler and locked entry point.

Operators may request any legal transition, optionally conditioned on the
status they last saw. Moving an order to cancelled this way runs the same
compensation as a customer cancellation.
"""

from dataclasses import dataclass

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.compensation import CancellationResult, lock_keys_for, restore_items_to_cart
from ordering.order.expiry import expire_if_stale
from ordering.order.order import Actor, Order, OrderStatus, parse_status
from ordering.utils.locks import get_locks

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, choices=OrderStatus, max_length=20)
    actor_id = String(required=True, max_length=255)
    actor_name = String(max_length=255)
    note = Text()
    expected_status = String(choices=OrderStatus, max_length=20)


@dataclass(frozen=True)
class StatusChange:
    order_id: str
    previous_status: str
    status: str
    restoration: CancellationResult | None = None


@ordering.command_handler(part_of=Order)
class UpdateOrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_order_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        previous_status = order.status

        order.transition(
            OrderStatus(command.status),
            Actor(actor_id=command.actor_id, name=command.actor_name),
            note=command.note,
            expected_status=command.expected_status,
        )
        repo.add(order)

        restoration = None
        if order.status == OrderStatus.CANCELLED.value:
            restoration = restore_items_to_cart(order)

        logger.info(
            "Order status updated",
            order_id=str(order.id),
            order_number=order.order_number,
            previous_status=previous_status,
            status=order.status,
            actor_id=command.actor_id,
            restored_count=restoration.restored_count if restoration else None,
            skipped_count=restoration.skipped_count if restoration else None,
        )
        return StatusChange(
            order_id=str(order.id),
            previous_status=previous_status,
            status=order.status,
            restoration=restoration,
        )


def update_order_status(order_id, status, actor: Actor, note=None, expected_status=None) -> StatusChange:
    """Apply an operator transition. A cancellation carries its cart restoration."""
    order = current_domain.repository_for(Order).get(order_id)

    with get_locks().hold(*lock_keys_for(order)):
        expire_if_stale(order.id)
        command = UpdateOrderStatus(
            order_id=str(order.id),
            status=parse_status(status).value,
            actor_id=actor.actor_id,
            actor_name=actor.name,
            note=note,
            expected_status=parse_status(expected_status).value if expected_status else None,
        )
        return current_domain.process(command, asynchronous=False)
