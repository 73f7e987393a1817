# app/repositories/cart_repo.py
import uuid
from datetime import datetime, timezone

from sqlmodel import Session, col, select

from app.models.cart import CartItem


class CartRepository:
    """
    Data access for cart_items.

    Every query here only sees "live" rows: is_active and not deleted.
    No commits here; the service owns the transaction.
    """

    @staticmethod
    def _live():
        return (
            CartItem.is_active == True,  # noqa: E712
            col(CartItem.deleted_at).is_(None),
        )

    def list_for_user(self, session: Session, user_id: uuid.UUID) -> list[CartItem]:
        stmt = (
            select(CartItem)
            .where(CartItem.user_id == user_id, *self._live())
            .order_by(CartItem.created_at)
        )
        return session.exec(stmt).all()

    def get_item(
        self, session: Session, user_id: uuid.UUID, product_id: uuid.UUID
    ) -> CartItem | None:
        stmt = select(CartItem).where(
            CartItem.user_id == user_id,
            CartItem.product_id == product_id,
            *self._live(),
        )
        return session.exec(stmt).first()

    def save(self, session: Session, item: CartItem) -> CartItem:
        item.updated_at = datetime.now(timezone.utc)
        session.add(item)
        session.flush()
        return item

    def soft_delete(self, session: Session, item: CartItem) -> None:
        now = datetime.now(timezone.utc)
        item.is_active = False
        item.deleted_at = now
        item.updated_at = now
        session.add(item)
        session.flush()

    def soft_delete_all_for_user(self, session: Session, user_id: uuid.UUID) -> int:
        rows = self.list_for_user(session, user_id)
        for row in rows:
            self.soft_delete(session, row)
        return len(rows)

    def deactivate_all_for_user(self, session: Session, user_id: uuid.UUID) -> int:
        """
        Mark the user's live rows inactive. deleted_at stays NULL so
        purchased rows remain distinguishable from removed ones.
        """
        now = datetime.now(timezone.utc)
        rows = self.list_for_user(session, user_id)
        for row in rows:
            row.is_active = False
            row.updated_at = now
            session.add(row)
        session.flush()
        return len(rows)
