"""Payment timeout — cancels pending orders whose payment window elapsed.

The window opens when the order is placed and lasts
``payment_timeout_minutes``. Expiry is enforced two ways:

- on read: expire_if_stale() runs before status updates, cancellations,
  payment initiation and webhook handling touch an order;
- in the background: expire_stale_pending_orders() sweeps every pending
  order (maintenance API and the server runner call it).

An expired order is cancelled with the system/timeout actor and its items
go back to the cart through the Cancellation Compensator.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import DateTime, Identifier
from protean.utils.globals import current_domain

from ordering.config import get_settings
from ordering.domain import ordering
from ordering.order.compensation import lock_keys_for, restore_items_to_cart
from ordering.order.order import TIMEOUT_ACTOR, Order, OrderStatus, PaymentStatus
from ordering.utils.locks import get_locks

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class ExpirePendingOrder:
    order_id = Identifier(required=True)
    as_of = DateTime()  # Optional: defaults to now


@ordering.command_handler(part_of=Order)
class ExpirePendingOrderHandler:
    @handle(ExpirePendingOrder)
    def expire_pending_order(self, command):
        timeout_minutes = get_settings().payment_timeout_minutes
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        if not order.is_payment_expired(timeout_minutes, command.as_of):
            return None

        order.transition(
            OrderStatus.CANCELLED,
            TIMEOUT_ACTOR,
            note=f"Payment not completed within {timeout_minutes} minutes",
        )
        order.payment_status = PaymentStatus.CANCELLED.value
        repo.add(order)

        logger.info(
            "Pending order expired",
            order_id=str(order.id),
            order_number=order.order_number,
            timeout_minutes=timeout_minutes,
        )
        return restore_items_to_cart(order)


def expire_if_stale(order_id, now=None):
    """Cancel the order if its payment window has elapsed.

    Returns the CancellationResult when the order was expired, else None.
    """
    timeout_minutes = get_settings().payment_timeout_minutes
    order = current_domain.repository_for(Order).get(order_id)
    if not order.is_payment_expired(timeout_minutes, now):
        return None

    with get_locks().hold(*lock_keys_for(order)):
        return current_domain.process(
            ExpirePendingOrder(order_id=str(order.id), as_of=now or datetime.now(UTC)),
            asynchronous=False,
        )


def expire_stale_pending_orders(now=None) -> int:
    """Sweep all pending orders and expire the stale ones. Returns the count."""
    now = now or datetime.now(UTC)
    timeout_minutes = get_settings().payment_timeout_minutes

    stale = [
        order
        for order in current_domain.repository_for(Order).pending()
        if order.is_payment_expired(timeout_minutes, now)
    ]
    if not stale:
        logger.info("No expired pending orders found")
        return 0

    expired_count = 0
    for order in stale:
        try:
            if expire_if_stale(order.id, now) is not None:
                expired_count += 1
        except (ValidationError, InvalidOperationError) as exc:
            logger.warning(
                "Failed to expire pending order",
                order_id=str(order.id),
                order_number=order.order_number,
                error=str(exc),
            )

    logger.info("Pending order expiry sweep complete", expired_count=expired_count)
    return expired_count


@dataclass(frozen=True)
class PaymentWindow:
    order_id: str
    timeout_at: datetime | None
    time_remaining_seconds: int
    is_expired: bool

    @property
    def minutes_remaining(self) -> int:
        return self.time_remaining_seconds // 60


def payment_time_remaining(order_id, now=None) -> PaymentWindow:
    """How long the customer has left to pay for a pending order."""
    now = now or datetime.now(UTC)
    timeout_minutes = get_settings().payment_timeout_minutes
    order = current_domain.repository_for(Order).get(order_id)

    if OrderStatus(order.status) != OrderStatus.PENDING:
        raise ValidationError({"status": [f"Order is not pending payment. Current status: {order.status}"]})

    deadline = order.payment_deadline(timeout_minutes)
    if order.is_payment_expired(timeout_minutes, now):
        expire_if_stale(order.id, now)
        return PaymentWindow(str(order.id), deadline, 0, True)

    remaining = int((deadline - now).total_seconds()) if deadline else timeout_minutes * 60
    return PaymentWindow(str(order.id), deadline, max(remaining, 0), False)
