"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A cart was checked out into a new pending order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier(required=True)
    total = Float(required=True)
    item_count = Integer(required=True)
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderStatusChanged:
    """The order moved between two states of the lifecycle."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    previous_status = String(required=True)
    status = String(required=True)
    actor_id = String(required=True)
    note = Text()
    changed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentSessionStarted:
    """A payment session was opened with the gateway."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    payment_session_id = String(required=True)
    amount = Float(required=True)


@ordering.event(part_of="Order")
class PaymentRecorded:
    """The gateway reported the outcome of a payment."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    payment_status = String(required=True)
    payment_id = String()
    payment_method = String()
    payment_amount = Float()
    failure_reason = String()


@ordering.event(part_of="Order")
class RefundRequested:
    """An operator asked the gateway to refund a paid order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    refund_id = String(required=True)
    refund_amount = Float(required=True)
    note = Text()
    requested_at = DateTime(required=True)


@ordering.event(part_of="Order")
class RefundStatusUpdated:
    """The gateway reported the outcome of a refund."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    refund_id = String(required=True)
    refund_status = String(required=True)
    refund_amount = Float()
    failure_reason = String()


@ordering.event(part_of="Order")
class AdditionalInfoUpdated:
    """An operator set or cleared the customer-facing note on an order."""

    __version__ = 1

    order_id = Identifier(required=True)
    message = Text()
    updated_by = String(required=True)
