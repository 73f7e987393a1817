# app/routers/orders.py
import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from app.core.auth import require_user, require_admin
from app.database import get_session
from app.models.user import User
from app.repositories.address_repo import AddressRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.schemas.order import (
    DeliveryStatus,
    OrderCancel,
    OrderCancelByShopper,
    OrderCreate,
    OrderRead,
    OrderStatus,
    OrderUpdate,
    PaymentStatus,
)
from app.services.address_service import AddressService
from app.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])

order_repo = OrderRepository()
product_repo = ProductRepository()
address_service = AddressService(AddressRepository())
service = OrderService(order_repo, product_repo, address_service)


# -------- User-facing endpoints --------


@router.get(
    "/me",
    response_model=list[OrderRead],
)
def list_my_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
    skip: int = 0,
    limit: int = 50,
):
    """
    List the authenticated shopper's orders, newest first.
    """
    return service.list_user_orders(session, current_user.id, skip, limit)


@router.get(
    "/me/{order_id}",
    response_model=OrderRead,
)
def get_my_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return service.get_user_order(session, current_user.id, order_id)


@router.post(
    "/me/{order_id}/cancel",
    response_model=OrderRead,
)
def cancel_my_order(
    order_id: uuid.UUID,
    payload: OrderCancelByShopper,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Cancel one of the shopper's orders.

    Only allowed while the order is PENDING or CONFIRMED.
    """
    return service.cancel_user_order(session, current_user.id, order_id, payload.reason)


# -------- Admin endpoints --------


@router.get(
    "",
    response_model=list[OrderRead],
    dependencies=[Depends(require_admin)],
)
def list_all_orders(
    session: Session = Depends(get_session),
    user_id: uuid.UUID | None = None,
    order_status: OrderStatus | None = None,
    payment_status: PaymentStatus | None = None,
    delivery_status: DeliveryStatus | None = None,
    skip: int = 0,
    limit: int = 50,
):
    """
    List all orders (admin only), optionally filtered.
    """
    return service.list_all_orders(
        session,
        user_id=user_id,
        order_status=order_status,
        payment_status=payment_status,
        delivery_status=delivery_status,
        skip=skip,
        limit=limit,
    )


@router.post(
    "",
    response_model=OrderRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_order(
    payload: OrderCreate,
    session: Session = Depends(get_session),
):
    """
    Create a single order line on behalf of a shopper (admin only).

    The unit price is taken from the product now and frozen. No cart is
    touched.
    """
    return service.create_order(session, payload)


@router.get(
    "/{order_id}",
    response_model=OrderRead,
    dependencies=[Depends(require_admin)],
)
def get_order_admin(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    return service.get_order(session, order_id)


@router.patch(
    "/{order_id}",
    response_model=OrderRead,
    dependencies=[Depends(require_admin)],
)
def update_order(
    order_id: uuid.UUID,
    payload: OrderUpdate,
    session: Session = Depends(get_session),
):
    """
    Partial update (admin only). Status changes follow:

      order / delivery:
        PENDING    -> CONFIRMED, PROCESSING, CANCELLED

        CONFIRMED  -> PROCESSING, SHIPPED, CANCELLED

        PROCESSING -> SHIPPED, CANCELLED

        SHIPPED    -> DELIVERED

      payment:
        PENDING -> PAID, FAILED

        FAILED  -> PENDING, PAID

        PAID    -> REFUNDED, PARTIALLY_REFUNDED

        PARTIALLY_REFUNDED -> REFUNDED
    """
    return service.update_order(session, order_id, payload)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderRead,
    dependencies=[Depends(require_admin)],
)
def cancel_order(
    order_id: uuid.UUID,
    payload: OrderCancel,
    session: Session = Depends(get_session),
):
    return service.cancel_order(session, order_id, payload)


@router.delete(
    "/{order_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    service.delete_order(session, order_id)
