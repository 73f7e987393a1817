# app/routers/webhooks.py
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from sqlmodel import Session

from app.core.payment_gateway import (
    PaymentGateway,
    PaymentGatewayError,
    WebhookSignatureError,
)
from app.core.stripe_client import get_payment_gateway
from app.database import get_session
from app.repositories.address_repo import AddressRepository
from app.repositories.cart_repo import CartRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.services.address_service import AddressService
from app.services.cart_service import CartService
from app.services.order_materializer import OrderMaterializer
from app.services.order_service import OrderService

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

logger = logging.getLogger(__name__)

order_repo = OrderRepository()
product_repo = ProductRepository()
order_service = OrderService(order_repo, product_repo, AddressService(AddressRepository()))
cart_service = CartService(CartRepository(), product_repo)


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    session: Session = Depends(get_session),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Stripe event receiver.

    - 400 when the signature does not verify (not from Stripe)
    - 503 when line items cannot be fetched; Stripe redelivers and
      redelivery is idempotent
    - 200 otherwise, also when some order lines failed: failures are
      logged, not retried
    """
    payload = await request.body()

    try:
        event = await run_in_threadpool(gateway.parse_event, payload, stripe_signature)
    except WebhookSignatureError as exc:
        logger.warning("Rejected webhook with invalid signature: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        )
    except PaymentGatewayError as exc:
        logger.error("Could not load checkout details for webhook: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment processor unavailable",
        )

    if event.checkout is None:
        logger.info("Ignoring %s event %s", event.type, event.id)
        return {"received": True}

    materializer = OrderMaterializer(
        order_service,
        order_repo,
        cart_service,
        payment_method=gateway.name,
    )
    # sync DB and SDK calls run off the event loop
    await run_in_threadpool(materializer.materialize, session, event.checkout)
    return {"received": True}
