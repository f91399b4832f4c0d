"""Drives order state from payment gateway events.

The gateway delivers at least once and in no particular order, so every
event is checked against the order's current state first:

    payment success   → confirmed   (no-op once confirmed or further along)
    payment failed    → failed      (no-op once failed); items go back to cart
    user dropped      → cancelled   (no-op once cancelled); items go back to cart
    refund success    → refund metadata only
    refund failed     → refund metadata only

WebhookIngester.handle() always returns an Ack. Unknown events, unknown
orders and illegal transitions are logged and acknowledged. Transient
failures are parked on the retry queue.
"""

from dataclasses import dataclass
from enum import Enum

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Float, String
from protean.utils.globals import current_domain
from sqlalchemy.exc import OperationalError

from ordering.domain import ordering
from ordering.errors import InvalidTransition, TransientError
from ordering.order.compensation import lock_keys_for, restore_items_to_cart
from ordering.order.expiry import expire_if_stale
from ordering.order.order import WEBHOOK_ACTOR, Order, OrderStatus, RefundStatus
from ordering.utils.locks import get_locks
from ordering.webhook.events import (
    PaymentFailed,
    PaymentSucceeded,
    PaymentUserDropped,
    RefundFailed,
    RefundSucceeded,
    UnknownEvent,
)
from ordering.webhook.retry import get_retry_queue

logger = structlog.get_logger(__name__)

_TRANSIENT_ERRORS = (TransientError, OperationalError)

# Statuses in which a repeated event of the given kind changes nothing
_ALREADY_PAID = {
    OrderStatus.CONFIRMED.value,
    OrderStatus.PROCESSING.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
}


class AckOutcome(Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    ORDER_NOT_FOUND = "order_not_found"
    REJECTED = "rejected"
    QUEUED = "queued"
    DEAD_LETTERED = "dead_lettered"


@dataclass(frozen=True)
class Ack:
    outcome: AckOutcome
    event_type: str | None = None
    order_number: str | None = None
    detail: str | None = None

    @property
    def requeued(self) -> bool:
        return self.outcome == AckOutcome.QUEUED

    @property
    def dead_lettered(self) -> bool:
        return self.outcome == AckOutcome.DEAD_LETTERED


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@ordering.command(part_of="Order")
class ConfirmPayment:
    order_number = String(required=True, max_length=50)
    payment_id = String(max_length=255)
    payment_amount = Float()
    payment_method = String(max_length=50)


@ordering.command(part_of="Order")
class FailPayment:
    order_number = String(required=True, max_length=50)
    failure_reason = String(max_length=500)


@ordering.command(part_of="Order")
class DropPayment:
    order_number = String(required=True, max_length=50)


@ordering.command(part_of="Order")
class RecordRefundOutcome:
    order_number = String(required=True, max_length=50)
    refund_id = String(required=True, max_length=255)
    refund_status = String(required=True, choices=RefundStatus)
    refund_amount = Float()
    failure_reason = String(max_length=500)


def _find_order(repo, order_number) -> Order:
    order = repo.find_by_order_number(order_number)
    if order is None:
        raise ObjectNotFoundError(f"Order {order_number} not found")
    return order


@ordering.command_handler(part_of=Order)
class PaymentWebhookHandler:
    @handle(ConfirmPayment)
    def confirm_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = _find_order(repo, command.order_number)
        if order.status in _ALREADY_PAID:
            return AckOutcome.DUPLICATE

        order.record_payment_success(
            WEBHOOK_ACTOR,
            payment_id=command.payment_id,
            amount=command.payment_amount,
            payment_method=command.payment_method,
        )
        repo.add(order)
        return AckOutcome.APPLIED

    @handle(FailPayment)
    def fail_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = _find_order(repo, command.order_number)
        if order.status == OrderStatus.FAILED.value:
            return AckOutcome.DUPLICATE

        order.record_payment_failure(WEBHOOK_ACTOR, reason=command.failure_reason)
        repo.add(order)
        restore_items_to_cart(order)
        return AckOutcome.APPLIED

    @handle(DropPayment)
    def drop_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = _find_order(repo, command.order_number)
        if order.status == OrderStatus.CANCELLED.value:
            return AckOutcome.DUPLICATE

        order.record_payment_dropped(WEBHOOK_ACTOR)
        repo.add(order)
        restore_items_to_cart(order)
        return AckOutcome.APPLIED

    @handle(RecordRefundOutcome)
    def record_refund_outcome(self, command):
        repo = current_domain.repository_for(Order)
        order = _find_order(repo, command.order_number)
        if order.has_refund_outcome(command.refund_id, command.refund_status):
            return AckOutcome.DUPLICATE

        order.record_refund(
            command.refund_id,
            command.refund_status,
            amount=command.refund_amount,
            failure_reason=command.failure_reason,
        )
        repo.add(order)
        return AckOutcome.APPLIED


def command_for(event):
    """Translate a parsed gateway event into the command that applies it."""
    if isinstance(event, PaymentSucceeded):
        return ConfirmPayment(
            order_number=event.order_number,
            payment_id=event.payment_id,
            payment_amount=event.payment_amount,
            payment_method=event.payment_method,
        )
    if isinstance(event, PaymentFailed):
        return FailPayment(order_number=event.order_number, failure_reason=event.failure_reason)
    if isinstance(event, PaymentUserDropped):
        return DropPayment(order_number=event.order_number)
    if isinstance(event, RefundSucceeded):
        return RecordRefundOutcome(
            order_number=event.order_number,
            refund_id=event.refund_id,
            refund_status=RefundStatus.COMPLETED.value,
            refund_amount=event.refund_amount,
        )
    if isinstance(event, RefundFailed):
        return RecordRefundOutcome(
            order_number=event.order_number,
            refund_id=event.refund_id,
            refund_status=RefundStatus.FAILED.value,
            failure_reason=event.failure_reason,
        )
    raise TypeError(f"No command for {type(event).__name__}")


# ---------------------------------------------------------------------------
# Ingester
# ---------------------------------------------------------------------------
class WebhookIngester:
    def __init__(self, retry_queue=None) -> None:
        self._retry_queue = retry_queue

    @property
    def retry_queue(self):
        if self._retry_queue is not None:
            return self._retry_queue
        return get_retry_queue()

    def handle(self, event, attempts: int = 0) -> Ack:
        """Apply ``event``; ``attempts`` counts earlier failed tries."""
        if isinstance(event, UnknownEvent):
            logger.info("Ignoring unrecognised webhook event", type=event.raw_type, reason=event.reason)
            return Ack(AckOutcome.IGNORED, event_type=event.raw_type, detail=event.reason)

        event_type = event.event_type.value
        try:
            outcome = self.apply(event)
        except ObjectNotFoundError:
            logger.warning("Webhook for unknown order", type=event_type, order_number=event.order_number)
            return Ack(AckOutcome.ORDER_NOT_FOUND, event_type, event.order_number)
        except InvalidTransition as exc:
            logger.info(
                "Webhook transition not applicable",
                type=event_type,
                order_number=event.order_number,
                error=str(exc.messages),
            )
            return Ack(AckOutcome.REJECTED, event_type, event.order_number, detail=str(exc.messages))
        except ValidationError as exc:
            logger.warning(
                "Webhook event failed validation",
                type=event_type,
                order_number=event.order_number,
                error=str(exc.messages),
            )
            return Ack(AckOutcome.REJECTED, event_type, event.order_number, detail=str(exc.messages))
        except _TRANSIENT_ERRORS as exc:
            if self.retry_queue.push(event, exc, attempts + 1):
                return Ack(AckOutcome.QUEUED, event_type, event.order_number, detail=str(exc))
            return Ack(AckOutcome.DEAD_LETTERED, event_type, event.order_number, detail=str(exc))

        if outcome == AckOutcome.DUPLICATE:
            logger.info("Duplicate webhook delivery", type=event_type, order_number=event.order_number)
        else:
            logger.info("Webhook applied", type=event_type, order_number=event.order_number)
        return Ack(outcome, event_type, event.order_number)

    def apply(self, event) -> AckOutcome:
        order = _find_order(current_domain.repository_for(Order), event.order_number)

        with get_locks().hold(*lock_keys_for(order)):
            expire_if_stale(order.id)
            return current_domain.process(command_for(event), asynchronous=False)

    def drain_retries(self, now=None):
        return self.retry_queue.drain(self, now=now)
