"""FastAPI routes for the Ordering domain — cart, orders, webhooks and maintenance."""

import json
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from protean.utils.globals import current_domain

from ordering.api.auth import Principal, current_user, ensure_can_access, require_operator
from ordering.api.schemas import (
    AddToCartRequest,
    AdditionalInfoRequest,
    CancellationResponse,
    CancelOrderRequest,
    CartLineIdResponse,
    CartResponse,
    ClearCartResponse,
    DrainRetriesResponse,
    ExpireOrdersResponse,
    OrderResponse,
    OrderSummaryResponse,
    PaymentSessionResponse,
    PlaceOrderRequest,
    PurgeCartLinesResponse,
    RefundRequest,
    RefundResponse,
    SetCartQuantityRequest,
    StatusChangeResponse,
    TimeRemainingResponse,
    TrackingRecordResponse,
    UpdateOrderStatusRequest,
    WebhookAckResponse,
)
from ordering.cart.items import add_to_cart, clear_cart, remove_from_cart, set_cart_quantity
from ordering.cart.listing import list_cart
from ordering.cart.maintenance import PurgeOrphanedCartLines
from ordering.gateway import get_gateway
from ordering.order.cancellation import cancel_order
from ordering.order.checkout import place_order
from ordering.order.compensation import lock_keys_for
from ordering.order.expiry import expire_stale_pending_orders, payment_time_remaining
from ordering.order.notes import ClearAdditionalInfo, SetAdditionalInfo
from ordering.order.order import Order
from ordering.order.payment import initiate_payment
from ordering.order.refund import initiate_refund
from ordering.order.status import update_order_status
from ordering.order.tracking import recent_updates, tracking_history
from ordering.utils.locks import process_exclusively
from ordering.webhook.events import parse_event
from ordering.webhook.ingestion import AckOutcome, WebhookIngester
from ordering.webhook.retry import get_retry_queue


def _load_order(order_id, user: Principal) -> Order:
    order = current_domain.repository_for(Order).get(order_id)
    ensure_can_access(user, order)
    return order


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("", response_model=CartResponse)
async def get_cart(user: Principal = Depends(current_user)) -> CartResponse:
    return CartResponse.from_view(list_cart(user.user_id))


@cart_router.post("/items", status_code=201, response_model=CartLineIdResponse)
async def add_cart_item(body: AddToCartRequest, user: Principal = Depends(current_user)) -> CartLineIdResponse:
    cart_line_id = add_to_cart(user.user_id, body.product_id, body.quantity)
    return CartLineIdResponse(cart_line_id=cart_line_id)


@cart_router.put("/items/{product_id}", response_model=CartLineIdResponse)
async def update_cart_item(
    product_id: str,
    body: SetCartQuantityRequest,
    user: Principal = Depends(current_user),
) -> CartLineIdResponse:
    cart_line_id = set_cart_quantity(user.user_id, product_id, body.quantity)
    return CartLineIdResponse(cart_line_id=cart_line_id)


@cart_router.delete("/items/{product_id}", status_code=204)
async def remove_cart_item(product_id: str, user: Principal = Depends(current_user)) -> None:
    remove_from_cart(user.user_id, product_id)


@cart_router.delete("", response_model=ClearCartResponse)
async def empty_cart(user: Principal = Depends(current_user)) -> ClearCartResponse:
    return ClearCartResponse(removed_count=clear_cart(user.user_id))


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def checkout(body: PlaceOrderRequest, user: Principal = Depends(current_user)) -> OrderResponse:
    """Turn the caller's cart into a pending order."""
    order_id = place_order(
        user.user_id,
        body.shipping_address.model_dump(),
        customer_name=user.name,
        order_number=body.order_number,
    )
    order = current_domain.repository_for(Order).get(order_id)
    return OrderResponse.from_order(order)


@order_router.get("", response_model=list[OrderSummaryResponse])
async def list_orders(
    customer_id: str | None = None,
    user: Principal = Depends(current_user),
) -> list[OrderSummaryResponse]:
    """The caller's orders, newest first. Operators may ask for any customer."""
    if customer_id and customer_id != user.user_id and not user.is_operator:
        raise HTTPException(status_code=403, detail="You do not have access to these orders")

    orders = current_domain.repository_for(Order).for_customer(customer_id or user.user_id)
    return [OrderSummaryResponse.from_order(order) for order in orders]


@order_router.get("/tracking/recent", response_model=list[TrackingRecordResponse])
async def recent_tracking(
    limit: int = 10,
    user: Principal = Depends(require_operator),
) -> list[TrackingRecordResponse]:
    return [TrackingRecordResponse.from_record(record) for record in recent_updates(limit)]


@order_router.get("/by-number/{order_number}", response_model=OrderResponse)
async def get_order_by_number(order_number: str, user: Principal = Depends(current_user)) -> OrderResponse:
    order = current_domain.repository_for(Order).find_by_order_number(order_number)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_number} not found")
    ensure_can_access(user, order)
    return OrderResponse.from_order(order)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, user: Principal = Depends(current_user)) -> OrderResponse:
    return OrderResponse.from_order(_load_order(order_id, user))


@order_router.post("/{order_id}/payment", response_model=PaymentSessionResponse)
async def start_payment(order_id: str, user: Principal = Depends(current_user)) -> PaymentSessionResponse:
    _load_order(order_id, user)
    session = initiate_payment(order_id, customer_name=user.name)
    return PaymentSessionResponse(**session)


@order_router.get("/{order_id}/time-remaining", response_model=TimeRemainingResponse)
async def get_time_remaining(order_id: str, user: Principal = Depends(current_user)) -> TimeRemainingResponse:
    _load_order(order_id, user)
    return TimeRemainingResponse.from_window(payment_time_remaining(order_id))


@order_router.post("/{order_id}/cancel", response_model=CancellationResponse)
async def cancel(
    order_id: str,
    body: CancelOrderRequest | None = None,
    user: Principal = Depends(current_user),
) -> CancellationResponse:
    _load_order(order_id, user)
    result = cancel_order(order_id, user.as_actor(), note=body.note if body else None)
    return CancellationResponse.from_result(result)


# --- Operator endpoints ---


@order_router.put("/{order_id}/status", response_model=StatusChangeResponse)
async def change_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    user: Principal = Depends(require_operator),
) -> StatusChangeResponse:
    change = update_order_status(
        order_id,
        body.status,
        user.as_actor(),
        note=body.note,
        expected_status=body.expected_status,
    )
    order = current_domain.repository_for(Order).get(order_id)
    return StatusChangeResponse.from_change(order, change)


@order_router.post("/{order_id}/refund", status_code=201, response_model=RefundResponse)
async def request_refund(
    order_id: str,
    body: RefundRequest | None = None,
    user: Principal = Depends(require_operator),
) -> RefundResponse:
    refund = initiate_refund(
        order_id,
        amount=body.amount if body else None,
        note=body.note if body else None,
        requested_by=user.name or user.user_id,
    )
    return RefundResponse(**refund)


@order_router.put("/{order_id}/additional-info", response_model=OrderResponse)
async def set_additional_info(
    order_id: str,
    body: AdditionalInfoRequest,
    user: Principal = Depends(require_operator),
) -> OrderResponse:
    order = current_domain.repository_for(Order).get(order_id)
    command = SetAdditionalInfo(order_id=order_id, message=body.message, updated_by=user.name or user.user_id)
    process_exclusively(command, *lock_keys_for(order))
    return OrderResponse.from_order(current_domain.repository_for(Order).get(order_id))


@order_router.delete("/{order_id}/additional-info", response_model=OrderResponse)
async def clear_additional_info(order_id: str, user: Principal = Depends(require_operator)) -> OrderResponse:
    order = current_domain.repository_for(Order).get(order_id)
    command = ClearAdditionalInfo(order_id=order_id, updated_by=user.name or user.user_id)
    process_exclusively(command, *lock_keys_for(order))
    return OrderResponse.from_order(current_domain.repository_for(Order).get(order_id))


@order_router.get("/{order_id}/tracking", response_model=list[TrackingRecordResponse])
async def get_tracking(order_id: str, user: Principal = Depends(current_user)) -> list[TrackingRecordResponse]:
    _load_order(order_id, user)
    return [TrackingRecordResponse.from_record(record) for record in tracking_history(order_id)]


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])

_ACK_MESSAGES = {
    AckOutcome.APPLIED: "Webhook processed successfully",
    AckOutcome.DUPLICATE: "Webhook already processed",
    AckOutcome.IGNORED: "Webhook event ignored",
    AckOutcome.ORDER_NOT_FOUND: "Order not found, webhook acknowledged",
    AckOutcome.REJECTED: "Webhook not applicable to current order status",
    AckOutcome.QUEUED: "Webhook accepted for retry",
    AckOutcome.DEAD_LETTERED: "Webhook could not be processed",
}


@webhook_router.post("/payments", response_model=WebhookAckResponse)
async def payment_webhook(
    request: Request,
    x_gateway_signature: str = Header(default=""),
) -> WebhookAckResponse:
    """Receive a payment gateway callback.

    Authentic deliveries are always acknowledged with 200 so the gateway
    stops redelivering; the outcome is reported in ``message``.
    """
    raw_body = (await request.body()).decode("utf-8", errors="replace")
    if not get_gateway().verify_webhook_signature(raw_body, x_gateway_signature):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        payload = json.loads(raw_body)
    except ValueError:
        payload = None

    ack = WebhookIngester().handle(parse_event(payload))
    return WebhookAckResponse(
        message=_ACK_MESSAGES[ack.outcome],
        type=ack.event_type,
        timestamp=datetime.now(UTC),
    )


# ---------------------------------------------------------------------------
# Maintenance Router
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@maintenance_router.post("/expire-pending-orders", response_model=ExpireOrdersResponse)
async def expire_pending_orders(user: Principal = Depends(require_operator)) -> ExpireOrdersResponse:
    return ExpireOrdersResponse(expired_count=expire_stale_pending_orders())


@maintenance_router.post("/purge-orphaned-cart-lines", response_model=PurgeCartLinesResponse)
async def purge_orphaned_cart_lines(user: Principal = Depends(require_operator)) -> PurgeCartLinesResponse:
    purged = current_domain.process(PurgeOrphanedCartLines(), asynchronous=False)
    return PurgeCartLinesResponse(purged_count=purged)


@maintenance_router.post("/drain-webhook-retries", response_model=DrainRetriesResponse)
async def drain_webhook_retries(user: Principal = Depends(require_operator)) -> DrainRetriesResponse:
    queue = get_retry_queue()
    report = WebhookIngester(queue).drain_retries()
    return DrainRetriesResponse(
        retried=report.retried,
        succeeded=report.succeeded,
        requeued=report.requeued,
        dead_lettered=report.dead_lettered,
        pending=len(queue),
    )
