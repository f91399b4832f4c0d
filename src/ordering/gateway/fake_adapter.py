"""Configurable fake payment gateway for development and testing.

Simulates session and refund creation without external calls. Configure
it to fail to exercise the error paths; every call is recorded in ``calls``.
Webhooks signed with ``test-signature`` are accepted.
"""

from uuid import uuid4

from ordering.gateway.port import CustomerDetails, PaymentGateway, PaymentSessionResult, RefundResult


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Gateway unavailable"
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Gateway unavailable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_payment_session(
        self,
        order_number: str,
        amount: float,
        currency: str,
        customer: CustomerDetails,
    ) -> PaymentSessionResult:
        self.calls.append(
            {
                "method": "create_payment_session",
                "order_number": order_number,
                "amount": amount,
                "currency": currency,
                "customer_id": customer.customer_id,
            }
        )

        if self.should_succeed:
            return PaymentSessionResult(
                success=True,
                payment_session_id=f"session_{uuid4().hex[:16]}",
                gateway_order_id=order_number,
            )
        return PaymentSessionResult(success=False, failure_reason=self.failure_reason)

    def create_refund(
        self,
        order_number: str,
        refund_id: str,
        amount: float,
        note: str | None = None,
    ) -> RefundResult:
        self.calls.append(
            {
                "method": "create_refund",
                "order_number": order_number,
                "refund_id": refund_id,
                "amount": amount,
                "note": note,
            }
        )

        if self.should_succeed:
            return RefundResult(success=True, refund_id=refund_id, gateway_status="pending")
        return RefundResult(success=False, failure_reason=self.failure_reason)

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:  # noqa: ARG002
        return signature == "test-signature"
