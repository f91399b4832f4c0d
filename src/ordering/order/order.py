"""Order aggregate (CQRS) — the purchase record and its audit trail.

An order is created once per checkout from an immutable snapshot of the
cart: line items, total and shipping address never change afterwards.
Only the status and the payment/refund metadata move.

The tracking log lives inside the aggregate, so a status change and its
TrackingEntry are persisted in the same unit of work. The post-invariant
below refuses any state where the latest entry disagrees with the status.

State Machine (7 states):
    pending → confirmed → processing → shipped → delivered
    pending → failed
    pending | confirmed | processing | shipped → cancelled
    delivered, cancelled and failed are terminal
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from uuid import uuid4

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text

from ordering.catalogue.port import PLACEHOLDER_IMAGE
from ordering.domain import ordering
from ordering.errors import InvalidTransition
from ordering.order.events import (
    AdditionalInfoUpdated,
    OrderPlaced,
    OrderStatusChanged,
    PaymentRecorded,
    PaymentSessionStarted,
    RefundRequested,
    RefundStatusUpdated,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"


class PaymentStatus(Enum):
    PENDING = "pending"
    INITIATED = "initiated"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RefundStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.FAILED}

# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED, OrderStatus.FAILED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.FAILED: set(),  # Terminal
}


def allowed_transitions(status: OrderStatus) -> set[OrderStatus]:
    return set(_VALID_TRANSITIONS.get(status, set()))


def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError as exc:
        raise ValidationError({"status": [f"Unknown order status: {value}"]}) from exc


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Actor:
    """Who caused a status change: a person or a system process."""

    actor_id: str
    name: str | None = None


WEBHOOK_ACTOR = Actor(actor_id="system/webhook", name="Payment gateway")
TIMEOUT_ACTOR = Actor(actor_id="system/timeout", name="Payment timeout")


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderLine:
    """A purchased product frozen at checkout time.

    Name, image and unit price are copied from the catalogue when the order
    is placed and are never refreshed, so later catalogue edits or product
    deletion do not rewrite purchase history.
    """

    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    product_image = String(max_length=1000, default=PLACEHOLDER_IMAGE)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)

    @property
    def subtotal(self) -> float:
        return round(self.unit_price * self.quantity, 2)


@ordering.entity(part_of="Order")
class TrackingEntry:
    """One status transition. Appended, never edited or removed."""

    sequence = Integer(required=True, min_value=1)
    status = String(required=True, max_length=20)
    previous_status = String(max_length=20)  # None for the creation entry
    actor_id = String(required=True, max_length=255)
    actor_name = String(max_length=255)
    note = Text()
    timestamp = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    customer_id = Identifier(required=True)
    order_number = String(required=True, max_length=50)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    items = HasMany(OrderLine)
    tracking_entries = HasMany(TrackingEntry)
    total = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="INR")
    shipping_address = Text(required=True)  # JSON blob, stored as given

    # Payment correlation
    payment_session_id = String(max_length=255)
    payment_initiated_at = DateTime()
    payment_id = String(max_length=255)
    payment_method = String(max_length=50)
    payment_amount = Float()
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    failure_reason = String(max_length=500)
    refund_id = String(max_length=255)
    refund_amount = Float()
    refund_status = String(choices=RefundStatus)
    refund_failure_reason = String(max_length=500)

    # Operator note shown to the customer
    additional_info = Text()
    additional_info_updated_at = DateTime()
    additional_info_updated_by = String(max_length=255)

    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def latest_tracking_entry_must_match_status(self):
        if not self.tracking_entries:
            return
        latest = max(self.tracking_entries, key=lambda entry: entry.sequence)
        if latest.status != self.status:
            raise ValidationError(
                {"tracking_entries": [f"Latest tracking entry records {latest.status} but order is {self.status}"]}
            )

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, customer_id, order_number, lines, shipping_address, actor, currency="INR"):
        """Create a pending order from snapshot lines.

        Args:
            lines: List of dicts with product_id, product_name, product_image,
                   unit_price and quantity.
            shipping_address: Any JSON-serialisable value; stored verbatim.
            actor: The Actor placing the order.
        """
        if not lines:
            raise ValidationError({"items": ["Cannot place an order without items"]})

        now = datetime.now(UTC)
        items = [OrderLine(**line) for line in lines]
        total = round(sum(item.subtotal for item in items), 2)

        order = cls(
            customer_id=str(customer_id),
            order_number=order_number,
            status=OrderStatus.PENDING.value,
            items=items,
            tracking_entries=[
                TrackingEntry(
                    sequence=1,
                    status=OrderStatus.PENDING.value,
                    previous_status=None,
                    actor_id=actor.actor_id,
                    actor_name=actor.name,
                    note="Order placed",
                    timestamp=now,
                )
            ],
            total=total,
            currency=currency,
            shipping_address=json.dumps(shipping_address),
            payment_status=PaymentStatus.PENDING.value,
            payment_initiated_at=now,
            created_at=now,
            updated_at=now,
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                customer_id=str(customer_id),
                total=total,
                item_count=len(items),
                placed_at=now,
            )
        )
        return order

    @property
    def shipping_address_data(self):
        return json.loads(self.shipping_address) if self.shipping_address else None

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATES

    def tracking_history(self) -> list[TrackingEntry]:
        """Tracking entries, newest first."""
        return sorted(self.tracking_entries, key=lambda entry: entry.sequence, reverse=True)

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------
    def can_transition_to(self, target_status: OrderStatus) -> bool:
        return target_status in _VALID_TRANSITIONS.get(OrderStatus(self.status), set())

    def _assert_can_transition(self, target_status, expected_status=None):
        """Validate that the current state allows transition to target."""
        current = OrderStatus(self.status)
        if expected_status is not None and OrderStatus(expected_status) != current:
            raise InvalidTransition(
                {"status": [f"Expected order to be {OrderStatus(expected_status).value} but it is {current.value}"]}
            )
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def transition(self, target_status, actor, note=None, expected_status=None):
        """Move to ``target_status`` and append exactly one tracking entry.

        ``expected_status`` makes the change conditional on the status the
        caller last observed; a mismatch is an InvalidTransition.
        """
        target_status = OrderStatus(target_status)
        self._assert_can_transition(target_status, expected_status)

        previous_status = self.status
        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = target_status.value
            self.add_tracking_entries(
                TrackingEntry(
                    sequence=len(self.tracking_entries) + 1,
                    status=target_status.value,
                    previous_status=previous_status,
                    actor_id=actor.actor_id,
                    actor_name=actor.name,
                    note=note,
                    timestamp=now,
                )
            )
            self.updated_at = now

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                previous_status=previous_status,
                status=target_status.value,
                actor_id=actor.actor_id,
                note=note,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def payment_deadline(self, timeout_minutes: int) -> datetime | None:
        initiated_at = as_utc(self.payment_initiated_at)
        if initiated_at is None:
            return None
        return initiated_at + timedelta(minutes=timeout_minutes)

    def is_payment_expired(self, timeout_minutes: int, now: datetime | None = None) -> bool:
        """True when a pending order has outlived its payment window."""
        if OrderStatus(self.status) != OrderStatus.PENDING:
            return False
        deadline = self.payment_deadline(timeout_minutes)
        if deadline is None:
            return False
        return as_utc(now or datetime.now(UTC)) >= deadline

    def start_payment(self, payment_session_id):
        if OrderStatus(self.status) != OrderStatus.PENDING:
            raise ValidationError(
                {"status": [f"Only pending orders can initiate payment. Current status: {self.status}"]}
            )

        self.payment_session_id = payment_session_id
        self.payment_status = PaymentStatus.INITIATED.value
        self.updated_at = datetime.now(UTC)

        self.raise_(
            PaymentSessionStarted(
                order_id=str(self.id),
                order_number=self.order_number,
                payment_session_id=payment_session_id,
                amount=self.total,
            )
        )

    def _record_payment(self, payment_status, **fields):
        self.payment_status = payment_status.value
        for name, value in fields.items():
            setattr(self, name, value)

        self.raise_(
            PaymentRecorded(
                order_id=str(self.id),
                order_number=self.order_number,
                payment_status=payment_status.value,
                payment_id=self.payment_id,
                payment_method=self.payment_method,
                payment_amount=self.payment_amount,
                failure_reason=self.failure_reason,
            )
        )

    def record_payment_success(self, actor, payment_id=None, amount=None, payment_method=None):
        self.transition(OrderStatus.CONFIRMED, actor, note="Payment received")
        self._record_payment(
            PaymentStatus.COMPLETED,
            payment_id=payment_id,
            payment_amount=amount,
            payment_method=payment_method,
        )

    def record_payment_failure(self, actor, reason=None):
        reason = reason or "Payment failed"
        self.transition(OrderStatus.FAILED, actor, note=reason)
        self._record_payment(PaymentStatus.FAILED, failure_reason=reason)

    def record_payment_dropped(self, actor):
        self.transition(OrderStatus.CANCELLED, actor, note="Customer left the payment page")
        self._record_payment(PaymentStatus.CANCELLED)

    # -------------------------------------------------------------------
    # Refunds (metadata only, status is untouched)
    # -------------------------------------------------------------------
    def request_refund(self, amount=None, note=None) -> str:
        """Mark a refund of ``amount`` (default: everything paid) as pending.

        Returns the refund_id the gateway will report outcomes against.
        """
        if self.payment_status != PaymentStatus.COMPLETED.value:
            raise ValidationError({"refund": ["Refunds can only be requested for paid orders"]})
        if self.refund_status in (RefundStatus.PENDING.value, RefundStatus.COMPLETED.value):
            raise ValidationError({"refund": [f"A refund is already {self.refund_status} for this order"]})

        paid = self.payment_amount if self.payment_amount is not None else self.total
        amount = paid if amount is None else amount
        if amount <= 0:
            raise ValidationError({"amount": ["Refund amount must be greater than 0"]})
        if amount > paid:
            raise ValidationError({"amount": [f"Refund amount ({amount}) would exceed the amount paid ({paid})"]})

        now = datetime.now(UTC)
        refund_id = f"refund_{uuid4().hex[:16]}"
        self.refund_id = refund_id
        self.refund_amount = amount
        self.refund_status = RefundStatus.PENDING.value
        self.refund_failure_reason = None
        self.updated_at = now

        self.raise_(
            RefundRequested(
                order_id=str(self.id),
                order_number=self.order_number,
                refund_id=refund_id,
                refund_amount=amount,
                note=note,
                requested_at=now,
            )
        )
        return refund_id

    def has_refund_outcome(self, refund_id, refund_status) -> bool:
        return self.refund_id == refund_id and self.refund_status == RefundStatus(refund_status).value

    def record_refund(self, refund_id, refund_status, amount=None, failure_reason=None):
        refund_status = RefundStatus(refund_status)
        self.refund_id = refund_id
        self.refund_status = refund_status.value
        if amount is not None:
            self.refund_amount = amount
        self.refund_failure_reason = failure_reason if refund_status == RefundStatus.FAILED else None
        self.updated_at = datetime.now(UTC)

        self.raise_(
            RefundStatusUpdated(
                order_id=str(self.id),
                order_number=self.order_number,
                refund_id=refund_id,
                refund_status=refund_status.value,
                refund_amount=self.refund_amount,
                failure_reason=self.refund_failure_reason,
            )
        )

    # -------------------------------------------------------------------
    # Operator note
    # -------------------------------------------------------------------
    def set_additional_info(self, message, updated_by):
        if not message or not message.strip():
            raise ValidationError({"additional_info": ["Additional information cannot be empty"]})

        now = datetime.now(UTC)
        self.additional_info = message.strip()
        self.additional_info_updated_at = now
        self.additional_info_updated_by = updated_by
        self.updated_at = now

        self.raise_(
            AdditionalInfoUpdated(
                order_id=str(self.id),
                message=self.additional_info,
                updated_by=updated_by,
            )
        )

    def clear_additional_info(self, updated_by):
        now = datetime.now(UTC)
        self.additional_info = None
        self.additional_info_updated_at = now
        self.additional_info_updated_by = updated_by
        self.updated_at = now

        self.raise_(
            AdditionalInfoUpdated(
                order_id=str(self.id),
                message=None,
                updated_by=updated_by,
            )
        )


@ordering.repository(part_of=Order)
class OrderRepository:
    def find_by_order_number(self, order_number) -> Order | None:
        orders = self._dao.query.filter(order_number=order_number).all().items
        return orders[0] if orders else None

    def for_customer(self, customer_id) -> list[Order]:
        orders = self._dao.query.filter(customer_id=str(customer_id)).limit(None).all().items
        return sorted(orders, key=lambda order: as_utc(order.created_at), reverse=True)

    def pending(self) -> list[Order]:
        return self._dao.query.filter(status=OrderStatus.PENDING.value).limit(None).all().items

    def all_orders(self) -> list[Order]:
        return self._dao.query.limit(None).all().items
