"""Payment gateway webhook events.

The gateway posts ``{"type": ..., "data": {...}}`` where ``data.order_id``
carries *our* order number. The pydantic models below are the wire
contract: one model per event type, selected by the ``type`` literal, with
the same field bounds the order accepts. parse_event() validates a payload
against them and returns one of the event dataclasses. A payload that does
not validate (unknown type, missing order number, oversized field) becomes
UnknownEvent so the caller can log and acknowledge it.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PayloadError


class WebhookType(Enum):
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS_WEBHOOK"
    PAYMENT_FAILED = "PAYMENT_FAILED_WEBHOOK"
    PAYMENT_USER_DROPPED = "PAYMENT_USER_DROPPED_WEBHOOK"
    REFUND_SUCCESS = "REFUND_SUCCESS_WEBHOOK"
    REFUND_FAILED = "REFUND_FAILED_WEBHOOK"


# ---------------------------------------------------------------------------
# Parsed events
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class PaymentSucceeded:
    order_number: str
    payment_id: str | None = None
    payment_amount: float | None = None
    payment_method: str | None = None
    event_type = WebhookType.PAYMENT_SUCCESS


@dataclass(frozen=True)
class PaymentFailed:
    order_number: str
    failure_reason: str | None = None
    event_type = WebhookType.PAYMENT_FAILED


@dataclass(frozen=True)
class PaymentUserDropped:
    order_number: str
    event_type = WebhookType.PAYMENT_USER_DROPPED


@dataclass(frozen=True)
class RefundSucceeded:
    order_number: str
    refund_id: str
    refund_amount: float | None = None
    event_type = WebhookType.REFUND_SUCCESS


@dataclass(frozen=True)
class RefundFailed:
    order_number: str
    refund_id: str
    failure_reason: str | None = None
    event_type = WebhookType.REFUND_FAILED


@dataclass(frozen=True)
class UnknownEvent:
    raw_type: str | None
    raw: dict = field(default_factory=dict, compare=False)
    reason: str = "unrecognised event type"
    order_number = None
    event_type = None


GatewayEvent = PaymentSucceeded | PaymentFailed | PaymentUserDropped | RefundSucceeded | RefundFailed | UnknownEvent


# ---------------------------------------------------------------------------
# Wire schemas
# ---------------------------------------------------------------------------
def _text_or_none(value):
    if value is None or value == "":
        return None
    # Gateways send numeric ids (cf_payment_id) as JSON numbers
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    return value


def _amount_or_none(value):
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class WebhookData(BaseModel):
    order_id: str = Field(max_length=50)

    @field_validator("order_id", mode="before")
    @classmethod
    def blank_order_id(cls, value):
        return _text_or_none(value)


class PaymentSuccessData(WebhookData):
    cf_payment_id: str | None = Field(default=None, max_length=255)
    payment_id: str | None = Field(default=None, max_length=255)
    payment_amount: float | None = None
    payment_method: str | None = Field(default=None, max_length=50)

    @field_validator("cf_payment_id", "payment_id", "payment_method", mode="before")
    @classmethod
    def blank_text(cls, value):
        return _text_or_none(value)

    @field_validator("payment_amount", mode="before")
    @classmethod
    def lenient_amount(cls, value):
        return _amount_or_none(value)


class PaymentFailedData(WebhookData):
    failure_reason: str | None = Field(default=None, max_length=500)

    @field_validator("failure_reason", mode="before")
    @classmethod
    def blank_text(cls, value):
        return _text_or_none(value)


class RefundSuccessData(WebhookData):
    refund_id: str = Field(max_length=255)
    refund_amount: float | None = None

    @field_validator("refund_id", mode="before")
    @classmethod
    def blank_text(cls, value):
        return _text_or_none(value)

    @field_validator("refund_amount", mode="before")
    @classmethod
    def lenient_amount(cls, value):
        return _amount_or_none(value)


class RefundFailedData(WebhookData):
    refund_id: str = Field(max_length=255)
    failure_reason: str | None = Field(default=None, max_length=500)

    @field_validator("refund_id", "failure_reason", mode="before")
    @classmethod
    def blank_text(cls, value):
        return _text_or_none(value)


class PaymentSuccessWebhook(BaseModel):
    type: Literal["PAYMENT_SUCCESS_WEBHOOK"]
    data: PaymentSuccessData

    def to_event(self) -> PaymentSucceeded:
        return PaymentSucceeded(
            order_number=self.data.order_id,
            payment_id=self.data.cf_payment_id or self.data.payment_id,
            payment_amount=self.data.payment_amount,
            payment_method=self.data.payment_method,
        )


class PaymentFailedWebhook(BaseModel):
    type: Literal["PAYMENT_FAILED_WEBHOOK"]
    data: PaymentFailedData

    def to_event(self) -> PaymentFailed:
        return PaymentFailed(order_number=self.data.order_id, failure_reason=self.data.failure_reason)


class PaymentUserDroppedWebhook(BaseModel):
    type: Literal["PAYMENT_USER_DROPPED_WEBHOOK"]
    data: WebhookData

    def to_event(self) -> PaymentUserDropped:
        return PaymentUserDropped(order_number=self.data.order_id)


class RefundSuccessWebhook(BaseModel):
    type: Literal["REFUND_SUCCESS_WEBHOOK"]
    data: RefundSuccessData

    def to_event(self) -> RefundSucceeded:
        return RefundSucceeded(
            order_number=self.data.order_id,
            refund_id=self.data.refund_id,
            refund_amount=self.data.refund_amount,
        )


class RefundFailedWebhook(BaseModel):
    type: Literal["REFUND_FAILED_WEBHOOK"]
    data: RefundFailedData

    def to_event(self) -> RefundFailed:
        return RefundFailed(
            order_number=self.data.order_id,
            refund_id=self.data.refund_id,
            failure_reason=self.data.failure_reason,
        )


GatewayWebhook = Annotated[
    PaymentSuccessWebhook | PaymentFailedWebhook | PaymentUserDroppedWebhook | RefundSuccessWebhook | RefundFailedWebhook,
    Field(discriminator="type"),
]

_webhook_adapter = TypeAdapter(GatewayWebhook)

_UNKNOWN_TYPE_ERRORS = {"union_tag_invalid", "union_tag_not_found"}


def _reason(exc: PayloadError) -> str:
    error = exc.errors()[0]
    if error["type"] in _UNKNOWN_TYPE_ERRORS:
        return "unrecognised event type"
    # Blank strings reach the field as None
    if error["type"] == "missing" or (error["type"] == "string_type" and error.get("input") is None):
        return f"missing {error['loc'][-1]}"
    # loc starts with the matched type tag
    location = ".".join(str(part) for part in error["loc"][1:])
    return f"invalid {location}: {error['msg']}"


def parse_event(payload) -> GatewayEvent:
    if not isinstance(payload, dict):
        return UnknownEvent(raw_type=None, reason="payload is not an object")

    raw_type = payload.get("type")
    try:
        webhook = _webhook_adapter.validate_python(payload)
    except PayloadError as exc:
        return UnknownEvent(raw_type=raw_type if isinstance(raw_type, str) else None, raw=payload, reason=_reason(exc))
    return webhook.to_event()


def to_payload(event) -> dict:
    """Render a parsed event back into the gateway's wire shape."""
    data = asdict(event)
    data["order_id"] = data.pop("order_number")
    return {"type": event.event_type.value, "data": data}
