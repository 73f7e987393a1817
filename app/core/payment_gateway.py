# app/core/payment_gateway.py
"""
Payment processor port.

Services depend on this interface only; StripeGateway is the production
adapter and tests plug in an in-memory fake. Keeps the checkout and
webhook code free of SDK calls.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"


class PaymentGatewayError(Exception):
    """The processor could not be reached or rejected the request."""


class WebhookSignatureError(Exception):
    """A webhook payload did not carry a valid processor signature."""


@dataclass(frozen=True)
class CheckoutLine:
    """One price line of a hosted checkout (per product, not per unit)."""

    name: str
    unit_price: float
    quantity: int


@dataclass(frozen=True)
class CheckoutSessionResult:
    session_id: str
    url: str


@dataclass(frozen=True)
class CompletedCheckout:
    """
    A paid checkout session as reported by the processor.

    `line_quantities` is the processor's own record, in the order the
    lines were submitted; an entry is None when the processor omitted
    the quantity for that line.
    """

    session_id: str
    metadata: dict[str, str]
    line_quantities: list[int | None]
    payment_status: str | None = None


@dataclass(frozen=True)
class GatewayEvent:
    id: str
    type: str
    checkout: CompletedCheckout | None = None
    raw: dict = field(default_factory=dict, repr=False)


class PaymentGateway(ABC):
    """Abstract payment processor interface."""

    name: str = "unknown"

    @abstractmethod
    def create_checkout_session(
        self,
        lines: list[CheckoutLine],
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSessionResult:
        """Open a hosted checkout session. Raises PaymentGatewayError."""
        ...

    @abstractmethod
    def parse_event(self, payload: bytes, signature: str | None) -> GatewayEvent:
        """
        Verify and decode a webhook delivery.

        Raises WebhookSignatureError for unauthenticated payloads and
        PaymentGatewayError when extra data (line items) cannot be fetched.
        """
        ...
