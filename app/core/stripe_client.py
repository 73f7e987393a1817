# app/core/stripe_client.py
import json
import logging
from functools import lru_cache

import stripe

from app.core.config import get_settings
from app.core.payment_gateway import (
    CHECKOUT_ASYNC_PAYMENT_SUCCEEDED,
    CHECKOUT_COMPLETED,
    CheckoutLine,
    CheckoutSessionResult,
    CompletedCheckout,
    GatewayEvent,
    PaymentGateway,
    PaymentGatewayError,
    WebhookSignatureError,
)

logger = logging.getLogger(__name__)

CHECKOUT_EVENT_TYPES = {CHECKOUT_COMPLETED, CHECKOUT_ASYNC_PAYMENT_SUCCEEDED}


def to_minor_units(amount: float) -> int:
    """Dollars -> cents (Stripe amounts are integers)."""
    return int(round(amount * 100))


class StripeGateway(PaymentGateway):
    """
    Stripe Checkout adapter.

    The API key is passed per request instead of being set on the
    `stripe` module, so several gateways (e.g. test and live) can
    coexist in one process. Calls are not retried here; a failed call
    surfaces as PaymentGatewayError and the caller decides.
    """

    name = "stripe"

    def __init__(self, api_key: str, webhook_secret: str, currency: str = "usd"):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.currency = currency

    def create_checkout_session(
        self,
        lines: list[CheckoutLine],
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSessionResult:
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "unit_amount": to_minor_units(line.unit_price),
                            "product_data": {"name": line.name},
                        },
                        "quantity": line.quantity,
                    }
                    for line in lines
                ],
                metadata=metadata,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as exc:
            logger.warning("Stripe checkout session creation failed: %s", exc)
            raise PaymentGatewayError(str(exc)) from exc

        return CheckoutSessionResult(session_id=session.id, url=session.url)

    def parse_event(self, payload: bytes, signature: str | None) -> GatewayEvent:
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise WebhookSignatureError("Webhook payload is not valid UTF-8") from exc
        try:
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError(str(exc)) from exc

        event = json.loads(body)
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}

        checkout = None
        if event_type in CHECKOUT_EVENT_TYPES:
            checkout = CompletedCheckout(
                session_id=obj["id"],
                metadata=dict(obj.get("metadata") or {}),
                line_quantities=self._list_line_quantities(obj["id"]),
                payment_status=obj.get("payment_status"),
            )

        return GatewayEvent(
            id=event.get("id", ""),
            type=event_type,
            checkout=checkout,
            raw=event,
        )

    def _list_line_quantities(self, session_id: str) -> list[int | None]:
        """
        Checkout webhooks do not embed line items; fetch them. Stripe
        returns them in submission order.
        """
        try:
            items = stripe.checkout.Session.list_line_items(
                session_id,
                api_key=self.api_key,
                limit=100,
            )
            return [getattr(item, "quantity", None) for item in items.auto_paging_iter()]
        except stripe.StripeError as exc:
            raise PaymentGatewayError(str(exc)) from exc


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    """
    FastAPI dependency returning the configured processor adapter.
    Tests override it with an in-memory gateway.
    """
    settings = get_settings()
    return StripeGateway(
        api_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        currency=settings.STRIPE_CURRENCY,
    )
