"""Refund initiation for paid orders.

An operator asks for a refund; the order records it as pending and the
gateway is asked to pay it out. The outcome arrives later as a
REFUND_SUCCESS or REFUND_FAILED webhook carrying the same refund_id.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.gateway import get_gateway
from ordering.order.compensation import lock_keys_for
from ordering.order.order import Order
from ordering.utils.locks import get_locks

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class InitiateRefund:
    order_id = Identifier(required=True)
    amount = Float(min_value=0.01)
    note = Text()
    requested_by = String(max_length=255)


@ordering.command_handler(part_of=Order)
class InitiateRefundHandler:
    @handle(InitiateRefund)
    def initiate_refund(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        refund_id = order.request_refund(amount=command.amount, note=command.note)

        result = get_gateway().create_refund(
            order_number=order.order_number,
            refund_id=refund_id,
            amount=order.refund_amount,
            note=command.note,
        )
        if not result.success:
            logger.warning(
                "Refund request rejected by gateway",
                order_id=str(order.id),
                order_number=order.order_number,
                reason=result.failure_reason,
            )
            raise ValidationError({"refund": [result.failure_reason or "Failed to create refund"]})

        repo.add(order)

        logger.info(
            "Refund requested",
            order_id=str(order.id),
            order_number=order.order_number,
            refund_id=refund_id,
            amount=order.refund_amount,
            requested_by=command.requested_by,
        )
        return {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "refund_id": refund_id,
            "refund_amount": order.refund_amount,
            "refund_status": order.refund_status,
        }


def initiate_refund(order_id, amount=None, note=None, requested_by=None):
    order = current_domain.repository_for(Order).get(order_id)

    with get_locks().hold(*lock_keys_for(order)):
        return current_domain.process(
            InitiateRefund(order_id=str(order.id), amount=amount, note=note, requested_by=requested_by),
            asynchronous=False,
        )
