# app/services/order_service.py
import secrets
import string
import uuid
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlmodel import Session

from app.models.order import Order
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.schemas.order import (
    OrderCancel,
    OrderCreate,
    OrderUpdate,
)
from app.services.address_service import AddressService

# Allowed status changes. Setting a status to its current value is a
# no-op and always allowed.
ORDER_TRANSITIONS: dict[str, set[str]] = {
    "PENDING": {"CONFIRMED", "PROCESSING", "CANCELLED"},
    "CONFIRMED": {"PROCESSING", "SHIPPED", "CANCELLED"},
    "PROCESSING": {"SHIPPED", "CANCELLED"},
    "SHIPPED": {"DELIVERED"},
    "DELIVERED": set(),
    "CANCELLED": set(),
}
DELIVERY_TRANSITIONS = ORDER_TRANSITIONS
PAYMENT_TRANSITIONS: dict[str, set[str]] = {
    "PENDING": {"PAID", "FAILED"},
    "FAILED": {"PENDING", "PAID"},
    "PAID": {"REFUNDED", "PARTIALLY_REFUNDED"},
    "PARTIALLY_REFUNDED": {"REFUNDED"},
    "REFUNDED": set(),
}

# Statuses from which a shopper may still cancel on their own
SHOPPER_CANCELLABLE = {"PENDING", "CONFIRMED"}

_ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def compute_totals(
    unit_price: float,
    quantity: int,
    tax_amount: float = 0.0,
    shipping_cost: float = 0.0,
    discount_amount: float = 0.0,
) -> tuple[float, float]:
    """
    Return (subtotal, grand_total).

    grand_total = subtotal + tax + shipping - discount, rounded to cents.
    This is the only place order amounts are derived.
    """
    subtotal = round(unit_price * quantity, 2)
    grand_total = round(subtotal + tax_amount + shipping_cost - discount_amount, 2)
    return subtotal, grand_total


def generate_order_number(now: datetime | None = None) -> str:
    """
    ORD-<UTC timestamp to the microsecond>-<6 random chars>.

    Lexicographic order follows creation time; the suffix keeps numbers
    unique within the same microsecond.
    """
    now = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(6))
    return f"ORD-{now.strftime('%Y%m%d%H%M%S%f')}-{suffix}"


def check_transition(
    kind: str,
    table: dict[str, set[str]],
    current: str,
    new: str,
) -> None:
    if current == new:
        return
    if new not in table.get(current, set()):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {kind} status transition: {current} -> {new}",
        )


class OrderService:
    """
    Business logic for orders.

    Responsibilities:
      - Create one order line with a frozen unit price (admin path and
        webhook materialization share this)
      - Snapshot product name and shipping details onto the order
      - Enforce status transitions on admin updates
      - Cancellation (admin and shopper)

    Cart deactivation is NOT done here: admins create orders without
    touching any cart, the materializer does it explicitly.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        product_repo: ProductRepository,
        address_service: AddressService,
    ):
        self.order_repo = order_repo
        self.product_repo = product_repo
        self.address_service = address_service

    # -------- Creation --------

    def build_order(
        self,
        session: Session,
        payload: OrderCreate,
        *,
        checkout_session_id: str | None = None,
        session_line: int | None = None,
    ) -> Order:
        """
        Validate references and build (without inserting) an Order.

        - 404 if product or address does not exist.
        - 400 if discounts would make the grand total negative.
        """
        product = self.product_repo.get_by_id(session, payload.product_id)
        if not product:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Product not found",
            )

        shipping = self.address_service.get_shipping_snapshot(
            session, payload.address_id, payload.user_id
        )

        unit_price = product.price
        subtotal, grand_total = compute_totals(
            unit_price,
            payload.quantity,
            payload.tax_amount,
            payload.shipping_cost,
            payload.discount_amount,
        )
        if grand_total < 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Discount exceeds order total",
            )

        now = datetime.now(timezone.utc)
        return Order(
            order_number=generate_order_number(now),
            user_id=payload.user_id,
            address_id=payload.address_id,
            product_id=product.id,
            quantity=payload.quantity,
            unit_price=unit_price,
            subtotal=subtotal,
            tax_amount=payload.tax_amount,
            shipping_cost=payload.shipping_cost,
            discount_amount=payload.discount_amount,
            grand_total=grand_total,
            order_status="PENDING",
            payment_status="PENDING",
            delivery_status="PENDING",
            payment_method=payload.payment_method,
            notes=payload.notes,
            checkout_session_id=checkout_session_id,
            session_line=session_line,
            product_name=product.name,
            created_at=now,
            updated_at=now,
            **shipping,
        )

    def create_order(
        self,
        session: Session,
        payload: OrderCreate,
        *,
        checkout_session_id: str | None = None,
        session_line: int | None = None,
    ) -> Order:
        """
        Insert one order line in its own transaction.

        On any failure the transaction is rolled back and the error
        re-raised, so a half-written order is never visible.
        """
        try:
            order = self.build_order(
                session,
                payload,
                checkout_session_id=checkout_session_id,
                session_line=session_line,
            )
            order = self.order_repo.create_order(session, order)
            session.commit()
        except Exception:
            session.rollback()
            raise
        session.refresh(order)
        return order

    # -------- Queries --------

    def list_user_orders(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        return self.order_repo.list_for_user(session, user_id, skip, limit)

    def get_user_order(
        self,
        session: Session,
        user_id: uuid.UUID,
        order_id: uuid.UUID,
    ) -> Order:
        """
        - 404 if order not found or does not belong to this user.
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order or order.user_id != user_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found",
            )
        return order

    def list_all_orders(
        self,
        session: Session,
        *,
        user_id: uuid.UUID | None = None,
        order_status: str | None = None,
        payment_status: str | None = None,
        delivery_status: str | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        return self.order_repo.list_all(
            session,
            user_id=user_id,
            order_status=order_status,
            payment_status=payment_status,
            delivery_status=delivery_status,
            skip=skip,
            limit=limit,
        )

    def get_order(self, session: Session, order_id: uuid.UUID) -> Order:
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found",
            )
        return order

    # -------- Admin mutations --------

    def _check_refund(self, order: Order, refund_amount: float | None) -> None:
        if refund_amount is not None and refund_amount > order.grand_total:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Refund amount exceeds order grand total",
            )

    def update_order(
        self,
        session: Session,
        order_id: uuid.UUID,
        payload: OrderUpdate,
    ) -> Order:
        """
        Apply only the fields present in `payload`.

        Rules:
          - each status change must follow its transition table
          - order_status=CANCELLED stamps cancelled_at (if unset) and,
            when delivery_status is not part of the same update, forces
            delivery_status=CANCELLED regardless of the delivery table
        """
        order = self.get_order(session, order_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)

        if "order_status" in changes:
            check_transition("order", ORDER_TRANSITIONS, order.order_status, changes["order_status"])
        if "delivery_status" in changes:
            check_transition(
                "delivery", DELIVERY_TRANSITIONS, order.delivery_status, changes["delivery_status"]
            )
        if "payment_status" in changes:
            check_transition(
                "payment", PAYMENT_TRANSITIONS, order.payment_status, changes["payment_status"]
            )
        self._check_refund(order, changes.get("refund_amount"))

        now = datetime.now(timezone.utc)
        if changes.get("order_status") == "CANCELLED":
            if order.cancelled_at is None:
                changes["cancelled_at"] = now
            changes.setdefault("delivery_status", "CANCELLED")

        for key, value in changes.items():
            setattr(order, key, value)
        order.updated_at = now

        self.order_repo.update_order(session, order)
        session.commit()
        session.refresh(order)
        return order

    def cancel_order(
        self,
        session: Session,
        order_id: uuid.UUID,
        payload: OrderCancel,
    ) -> Order:
        """
        Cancel an order: order and delivery status both become CANCELLED,
        cancelled_at is stamped, refund_amount defaults to 0.

        - 400 if the order status can no longer move to CANCELLED
          (shipped, delivered or already cancelled).
        """
        order = self.get_order(session, order_id)
        return self._cancel(session, order, payload.reason, payload.refund_amount)

    def cancel_user_order(
        self,
        session: Session,
        user_id: uuid.UUID,
        order_id: uuid.UUID,
        reason: str | None,
    ) -> Order:
        """
        Shopper self-service cancellation; only before processing starts
        and without a refund amount (refunds are decided by admins).
        """
        order = self.get_user_order(session, user_id, order_id)
        if order.order_status not in SHOPPER_CANCELLABLE:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Order can no longer be cancelled (status {order.order_status})",
            )
        return self._cancel(session, order, reason, None)

    def _cancel(
        self,
        session: Session,
        order: Order,
        reason: str | None,
        refund_amount: float | None,
    ) -> Order:
        check_transition("order", ORDER_TRANSITIONS, order.order_status, "CANCELLED")
        if order.order_status == "CANCELLED":
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Order is already cancelled",
            )
        self._check_refund(order, refund_amount)

        now = datetime.now(timezone.utc)
        order.order_status = "CANCELLED"
        order.delivery_status = "CANCELLED"
        order.cancelled_at = now
        order.cancellation_reason = reason
        order.refund_amount = refund_amount or 0.0
        order.updated_at = now

        self.order_repo.update_order(session, order)
        session.commit()
        session.refresh(order)
        return order

    def delete_order(self, session: Session, order_id: uuid.UUID) -> None:
        """
        Hard delete (admin only, rare).
        """
        order = self.get_order(session, order_id)
        self.order_repo.delete_order(session, order)
        session.commit()
