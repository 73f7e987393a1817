# app/repositories/order_repo.py
import uuid

from sqlmodel import Session, select

from app.models.order import Order


class OrderRepository:
    """
    Data access layer for orders.

    NOTE:
      - No commits here; each order line is its own transaction and the
        service is responsible for calling session.commit() / rollback().
    """

    def list_for_user(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return session.exec(stmt).all()

    def list_all(
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
        stmt = select(Order)
        if user_id:
            stmt = stmt.where(Order.user_id == user_id)
        if order_status:
            stmt = stmt.where(Order.order_status == order_status)
        if payment_status:
            stmt = stmt.where(Order.payment_status == payment_status)
        if delivery_status:
            stmt = stmt.where(Order.delivery_status == delivery_status)
        stmt = stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        return session.exec(stmt).all()

    def get_by_id(self, session: Session, order_id: uuid.UUID) -> Order | None:
        return session.get(Order, order_id)

    def exists_for_checkout_session(
        self,
        session: Session,
        checkout_session_id: str,
    ) -> bool:
        stmt = select(Order.id).where(
            Order.checkout_session_id == checkout_session_id
        )
        return session.exec(stmt).first() is not None

    def create_order(self, session: Session, order: Order) -> Order:
        """
        Insert an Order without committing, but ensure id is populated.
        """
        session.add(order)
        session.flush()  # Assign PK, surface constraint violations
        session.refresh(order)
        return order

    def update_order(self, session: Session, order: Order) -> Order:
        session.add(order)
        session.flush()
        session.refresh(order)
        return order

    def delete_order(self, session: Session, order: Order) -> None:
        session.delete(order)
        session.flush()
