"""Payment gateway port (abstract interface).

The gateway is a black box. We ask it to open payment sessions and to
refund paid orders; it reports the outcomes later through webhooks.
Adapters hide the provider's API behind this contract.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class CustomerDetails:
    customer_id: str
    customer_name: str | None = None


@dataclass(frozen=True)
class PaymentSessionResult:
    """Result of asking the gateway to open a payment session."""

    success: bool
    payment_session_id: str | None = None
    gateway_order_id: str | None = None
    failure_reason: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class RefundResult:
    """Result of asking the gateway to refund a paid order."""

    success: bool
    refund_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_payment_session(
        self,
        order_number: str,
        amount: float,
        currency: str,
        customer: CustomerDetails,
    ) -> PaymentSessionResult:
        """Open a payment session for an order."""
        ...

    @abstractmethod
    def create_refund(
        self,
        order_number: str,
        refund_id: str,
        amount: float,
        note: str | None = None,
    ) -> RefundResult:
        """Refund part or all of an order's captured payment."""
        ...

    @abstractmethod
    def verify_webhook_signature(
        self,
        payload: str,
        signature: str,
    ) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...
