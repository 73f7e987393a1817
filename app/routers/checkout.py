# app/routers/checkout.py
from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.core.auth import require_user
from app.core.config import get_settings
from app.core.payment_gateway import PaymentGateway
from app.core.stripe_client import get_payment_gateway
from app.database import get_session
from app.models.user import User
from app.repositories.address_repo import AddressRepository
from app.repositories.cart_repo import CartRepository
from app.repositories.product_repo import ProductRepository
from app.schemas.checkout import CheckoutCreate, CheckoutSessionRead
from app.services.checkout_service import CheckoutService

router = APIRouter(prefix="/checkout", tags=["Checkout"])

settings = get_settings()

service = CheckoutService(ProductRepository(), AddressRepository(), CartRepository())


@router.post("", response_model=CheckoutSessionRead)
def create_checkout_session(
    payload: CheckoutCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Open a hosted checkout session and return its redirect URL.

    No order is created here; orders appear once the payment processor
    reports the session as paid.

    Errors:
      - 404 address not in the shopper's address book
      - 400 no purchasable product left
      - 503 payment processor unavailable (Retry-After set)
    """
    return service.create_checkout_session(
        session,
        gateway,
        current_user.id,
        payload,
        success_url=settings.CHECKOUT_SUCCESS_URL,
        cancel_url=settings.CHECKOUT_CANCEL_URL,
    )
