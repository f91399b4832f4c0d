"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer), kept separate from
internal Protean commands. Response models are built from domain objects
through their ``from_*`` constructors.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    full_name: str | None = None
    street: str
    city: str
    state: str | None = None
    postal_code: str
    country: str
    phone: str | None = None


# ---------------------------------------------------------------------------
# Cart Request Schemas
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1, default=1)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_id": "prod-001",
                    "quantity": 2,
                }
            ]
        }
    }


class SetCartQuantityRequest(BaseModel):
    """Zero removes the line."""

    quantity: int = Field(ge=0)


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    shipping_address: AddressSchema
    order_number: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "shipping_address": {
                        "full_name": "Asha Rao",
                        "street": "12 MG Road",
                        "city": "Bengaluru",
                        "state": "KA",
                        "postal_code": "560001",
                        "country": "IN",
                        "phone": "+91-9000000000",
                    }
                }
            ]
        }
    }


class CancelOrderRequest(BaseModel):
    note: str | None = None


class UpdateOrderStatusRequest(BaseModel):
    status: str
    note: str | None = None
    expected_status: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "shipped",
                    "note": "Handed over to carrier",
                    "expected_status": "processing",
                }
            ]
        }
    }


class AdditionalInfoRequest(BaseModel):
    message: str = Field(min_length=1)


class RefundRequest(BaseModel):
    amount: float | None = Field(default=None, gt=0)
    note: str | None = Field(default=None, max_length=500)


# ---------------------------------------------------------------------------
# Cart Response Schemas
# ---------------------------------------------------------------------------
class CartLineResponse(BaseModel):
    cart_line_id: str
    product_id: str
    product_name: str
    product_image: str
    unit_price: float
    quantity: int
    subtotal: float
    min_order_quantity: int
    stock: int

    @classmethod
    def from_view(cls, view) -> "CartLineResponse":
        return cls(
            cart_line_id=view.cart_line_id,
            product_id=view.product_id,
            product_name=view.product_name,
            product_image=view.product_image,
            unit_price=view.unit_price,
            quantity=view.quantity,
            subtotal=view.subtotal,
            min_order_quantity=view.min_order_quantity,
            stock=view.stock,
        )


class CartResponse(BaseModel):
    customer_id: str
    items: list[CartLineResponse]
    total: float
    item_count: int

    @classmethod
    def from_view(cls, view) -> "CartResponse":
        return cls(
            customer_id=view.customer_id,
            items=[CartLineResponse.from_view(line) for line in view.lines],
            total=view.total,
            item_count=view.item_count,
        )


class CartLineIdResponse(BaseModel):
    cart_line_id: str | None = None


class ClearCartResponse(BaseModel):
    removed_count: int


# ---------------------------------------------------------------------------
# Order Response Schemas
# ---------------------------------------------------------------------------
class OrderLineResponse(BaseModel):
    product_id: str
    product_name: str
    product_image: str | None = None
    unit_price: float
    quantity: int
    subtotal: float


class TrackingEntryResponse(BaseModel):
    sequence: int
    status: str
    previous_status: str | None = None
    actor_id: str
    actor_name: str | None = None
    note: str | None = None
    timestamp: datetime


class AdditionalInfoResponse(BaseModel):
    message: str
    updated_at: datetime | None = None
    updated_by: str | None = None


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    customer_id: str
    status: str
    total: float
    currency: str
    items: list[OrderLineResponse]
    shipping_address: dict | None = None
    payment_status: str | None = None
    payment_id: str | None = None
    payment_method: str | None = None
    payment_amount: float | None = None
    failure_reason: str | None = None
    refund_id: str | None = None
    refund_status: str | None = None
    refund_amount: float | None = None
    additional_info: AdditionalInfoResponse | None = None
    tracking: list[TrackingEntryResponse]
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        additional_info = None
        if order.additional_info:
            additional_info = AdditionalInfoResponse(
                message=order.additional_info,
                updated_at=order.additional_info_updated_at,
                updated_by=order.additional_info_updated_by,
            )
        return cls(
            order_id=str(order.id),
            order_number=order.order_number,
            customer_id=str(order.customer_id),
            status=order.status,
            total=order.total,
            currency=order.currency,
            items=[
                OrderLineResponse(
                    product_id=str(line.product_id),
                    product_name=line.product_name,
                    product_image=line.product_image,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                    subtotal=line.subtotal,
                )
                for line in order.items
            ],
            shipping_address=order.shipping_address_data,
            payment_status=order.payment_status,
            payment_id=order.payment_id,
            payment_method=order.payment_method,
            payment_amount=order.payment_amount,
            failure_reason=order.failure_reason,
            refund_id=order.refund_id,
            refund_status=order.refund_status,
            refund_amount=order.refund_amount,
            additional_info=additional_info,
            tracking=[
                TrackingEntryResponse(
                    sequence=entry.sequence,
                    status=entry.status,
                    previous_status=entry.previous_status,
                    actor_id=entry.actor_id,
                    actor_name=entry.actor_name,
                    note=entry.note,
                    timestamp=entry.timestamp,
                )
                for entry in order.tracking_history()
            ],
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrderSummaryResponse(BaseModel):
    order_id: str
    order_number: str
    status: str
    total: float
    currency: str
    item_count: int
    created_at: datetime | None = None

    @classmethod
    def from_order(cls, order) -> "OrderSummaryResponse":
        return cls(
            order_id=str(order.id),
            order_number=order.order_number,
            status=order.status,
            total=order.total,
            currency=order.currency,
            item_count=sum(line.quantity for line in order.items),
            created_at=order.created_at,
        )


class PaymentSessionResponse(BaseModel):
    order_id: str
    order_number: str
    payment_session_id: str
    amount: float
    currency: str


class RefundResponse(BaseModel):
    order_id: str
    order_number: str
    refund_id: str
    refund_amount: float
    refund_status: str


class TimeRemainingResponse(BaseModel):
    order_id: str
    time_remaining_seconds: int
    minutes: int
    timeout_at: datetime | None = None
    is_expired: bool

    @classmethod
    def from_window(cls, window) -> "TimeRemainingResponse":
        return cls(
            order_id=window.order_id,
            time_remaining_seconds=window.time_remaining_seconds,
            minutes=window.minutes_remaining,
            timeout_at=window.timeout_at,
            is_expired=window.is_expired,
        )


class CancellationResponse(BaseModel):
    order_id: str
    message: str
    restoration: str
    restored_count: int
    skipped_count: int
    skipped_product_ids: list[str]

    @classmethod
    def from_result(cls, result) -> "CancellationResponse":
        return cls(
            order_id=result.order_id,
            message=result.message,
            restoration=result.outcome.value,
            restored_count=result.restored_count,
            skipped_count=result.skipped_count,
            skipped_product_ids=list(result.skipped_product_ids),
        )


class StatusChangeResponse(OrderResponse):
    restoration: CancellationResponse | None = None

    @classmethod
    def from_change(cls, order, change) -> "StatusChangeResponse":
        restoration = CancellationResponse.from_result(change.restoration) if change.restoration else None
        return cls(**OrderResponse.from_order(order).model_dump(), restoration=restoration)


class TrackingRecordResponse(BaseModel):
    order_id: str
    order_number: str
    sequence: int
    status: str
    previous_status: str | None = None
    actor_id: str
    actor_name: str | None = None
    note: str | None = None
    timestamp: datetime

    @classmethod
    def from_record(cls, record) -> "TrackingRecordResponse":
        return cls(
            order_id=record.order_id,
            order_number=record.order_number,
            sequence=record.sequence,
            status=record.status,
            previous_status=record.previous_status,
            actor_id=record.actor_id,
            actor_name=record.actor_name,
            note=record.note,
            timestamp=record.timestamp,
        )


# ---------------------------------------------------------------------------
# Webhook and maintenance
# ---------------------------------------------------------------------------
class WebhookAckResponse(BaseModel):
    message: str
    type: str | None = None
    timestamp: datetime


class ExpireOrdersResponse(BaseModel):
    expired_count: int


class PurgeCartLinesResponse(BaseModel):
    purged_count: int


class DrainRetriesResponse(BaseModel):
    retried: int
    succeeded: int
    requeued: int
    dead_lettered: int
    pending: int
