# app/repositories/address_repo.py
import uuid
from datetime import datetime, timezone

from sqlmodel import Session, select

from app.models.address import Address, UserAddress
from app.models.order import Order


class AddressRepository:
    """
    Data access layer for addresses and user_addresses.

    NOTE:
      - No commits here; default switching must be clear-then-set in one
        transaction, so the service calls session.commit().
    """

    # ---- Canonical addresses ----

    def get_by_id(self, session: Session, address_id: uuid.UUID) -> Address | None:
        return session.get(Address, address_id)

    def find_identical(
        self,
        session: Session,
        *,
        address_line1: str,
        city: str,
        state: str,
        postal_code: str,
    ) -> Address | None:
        stmt = select(Address).where(
            Address.address_line1 == address_line1,
            Address.city == city,
            Address.state == state,
            Address.postal_code == postal_code,
        )
        return session.exec(stmt).first()

    def add_address(self, session: Session, address: Address) -> Address:
        session.add(address)
        session.flush()
        return address

    def is_referenced(
        self,
        session: Session,
        address_id: uuid.UUID,
        *,
        exclude_link_id: uuid.UUID | None = None,
    ) -> bool:
        """
        True if any order or shopper link still points at the address.
        `exclude_link_id` leaves one link out of the check.
        """
        order = session.exec(
            select(Order.id).where(Order.address_id == address_id)
        ).first()
        if order is not None:
            return True
        stmt = select(UserAddress.id).where(UserAddress.address_id == address_id)
        if exclude_link_id is not None:
            stmt = stmt.where(UserAddress.id != exclude_link_id)
        return session.exec(stmt).first() is not None

    def delete_address(self, session: Session, address: Address) -> None:
        session.delete(address)
        session.flush()

    # ---- Shopper links ----

    def get_link(
        self,
        session: Session,
        user_id: uuid.UUID,
        address_id: uuid.UUID,
    ) -> UserAddress | None:
        stmt = select(UserAddress).where(
            UserAddress.user_id == user_id,
            UserAddress.address_id == address_id,
        )
        return session.exec(stmt).first()

    def list_for_user(
        self,
        session: Session,
        user_id: uuid.UUID,
        *,
        city: str | None = None,
        state: str | None = None,
        postal_code: str | None = None,
    ) -> list[tuple[UserAddress, Address]]:
        stmt = (
            select(UserAddress, Address)
            .join(Address, UserAddress.address_id == Address.id)
            .where(UserAddress.user_id == user_id)
        )
        if city:
            stmt = stmt.where(Address.city == city)
        if state:
            stmt = stmt.where(Address.state == state)
        if postal_code:
            stmt = stmt.where(Address.postal_code == postal_code)
        stmt = stmt.order_by(UserAddress.is_default.desc(), UserAddress.created_at)
        return list(session.exec(stmt).all())

    def list_defaults(self, session: Session, user_id: uuid.UUID) -> list[UserAddress]:
        stmt = select(UserAddress).where(
            UserAddress.user_id == user_id,
            UserAddress.is_default == True,  # noqa: E712
        )
        return session.exec(stmt).all()

    def add_link(self, session: Session, link: UserAddress) -> UserAddress:
        session.add(link)
        session.flush()
        return link

    def save_link(self, session: Session, link: UserAddress) -> UserAddress:
        link.updated_at = datetime.now(timezone.utc)
        session.add(link)
        session.flush()
        return link

    def delete_link(self, session: Session, link: UserAddress) -> None:
        session.delete(link)
        session.flush()

    def clear_defaults(self, session: Session, user_id: uuid.UUID) -> int:
        now = datetime.now(timezone.utc)
        rows = self.list_defaults(session, user_id)
        for row in rows:
            row.is_default = False
            row.updated_at = now
            session.add(row)
        session.flush()
        return len(rows)
