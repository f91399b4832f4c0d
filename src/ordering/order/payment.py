"""Payment initiation — opens a gateway payment session for a pending order.

The gateway is only asked for a session handle here; the payment outcome
arrives later through the webhook ingester.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.gateway import get_gateway
from ordering.gateway.port import CustomerDetails
from ordering.order.compensation import lock_keys_for
from ordering.order.expiry import expire_if_stale
from ordering.order.order import Order, OrderStatus
from ordering.utils.locks import get_locks

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class InitiatePayment:
    order_id = Identifier(required=True)
    customer_name = String(max_length=255)


@ordering.command_handler(part_of=Order)
class InitiatePaymentHandler:
    @handle(InitiatePayment)
    def initiate_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        # Checked before the gateway is called; start_payment repeats it
        if order.status != OrderStatus.PENDING.value:
            raise ValidationError(
                {"status": [f"Only pending orders can initiate payment. Current status: {order.status}"]}
            )

        result = get_gateway().create_payment_session(
            order_number=order.order_number,
            amount=order.total,
            currency=order.currency,
            customer=CustomerDetails(customer_id=str(order.customer_id), customer_name=command.customer_name),
        )
        if not result.success:
            logger.warning(
                "Payment session creation failed",
                order_id=str(order.id),
                order_number=order.order_number,
                reason=result.failure_reason,
            )
            raise ValidationError({"payment": [result.failure_reason or "Failed to initiate payment"]})

        order.start_payment(result.payment_session_id)
        repo.add(order)

        logger.info(
            "Payment session started",
            order_id=str(order.id),
            order_number=order.order_number,
            amount=order.total,
        )
        return {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "payment_session_id": result.payment_session_id,
            "amount": order.total,
            "currency": order.currency,
        }


def initiate_payment(order_id, customer_name=None):
    order = current_domain.repository_for(Order).get(order_id)

    with get_locks().hold(*lock_keys_for(order)):
        if expire_if_stale(order.id) is not None:
            raise ValidationError(
                {"payment": ["Payment session has expired. Order has been automatically cancelled."]}
            )
        return current_domain.process(
            InitiatePayment(order_id=str(order.id), customer_name=customer_name),
            asynchronous=False,
        )
