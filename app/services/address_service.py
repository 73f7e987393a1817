# app/services/address_service.py
import uuid
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlmodel import Session

from app.models.address import Address, UserAddress
from app.repositories.address_repo import AddressRepository
from app.schemas.address import AddressCreate, AddressRead, AddressUpdate

ADDRESS_FIELDS = ("address_line1", "address_line2", "city", "state", "postal_code")
LINK_FIELDS = ("first_name", "last_name", "phone")


class AddressService:
    """
    Business logic for the shopper address book.

    Responsibilities:
      - share identical canonical addresses between shoppers
      - keep (shopper, address) links unique
      - keep at most one default address per shopper; moving the
        default is clear-then-set inside a single commit
    """

    def __init__(self, repo: AddressRepository):
        self.repo = repo

    # ---- internal helpers ----

    @staticmethod
    def _to_read(link: UserAddress, address: Address) -> AddressRead:
        return AddressRead(
            id=address.id,
            user_id=link.user_id,
            first_name=link.first_name,
            last_name=link.last_name,
            phone=link.phone,
            is_default=link.is_default,
            address_line1=address.address_line1,
            address_line2=address.address_line2,
            city=address.city,
            state=address.state,
            postal_code=address.postal_code,
            created_at=link.created_at,
            updated_at=link.updated_at,
        )

    def _get_owned(
        self,
        session: Session,
        user_id: uuid.UUID,
        address_id: uuid.UUID,
    ) -> tuple[UserAddress, Address]:
        link = self.repo.get_link(session, user_id, address_id)
        address = self.repo.get_by_id(session, address_id) if link else None
        if link is None or address is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Address not found",
            )
        return link, address

    def _make_default(self, session: Session, link: UserAddress) -> None:
        """
        Clear every default of the shopper, then flag `link`.
        Caller commits.
        """
        self.repo.clear_defaults(session, link.user_id)
        link.is_default = True
        self.repo.save_link(session, link)

    def _apply_address_changes(
        self,
        session: Session,
        link: UserAddress,
        address: Address,
        changes: dict,
    ) -> Address:
        """
        Copy-on-write edit of the canonical row behind `link`.

        The row is edited in place only when this link is its sole
        reference. Otherwise the link moves to an identical existing row
        or to a new one, so other shoppers and past orders keep theirs.
        Returns the address the link points at afterwards.
        """
        values = {field: getattr(address, field) for field in ADDRESS_FIELDS}
        values.update(changes)
        if all(getattr(address, field) == value for field, value in values.items()):
            return address

        match = self.repo.find_identical(
            session,
            address_line1=values["address_line1"],
            city=values["city"],
            state=values["state"],
            postal_code=values["postal_code"],
        )
        if match is not None and match.id != address.id:
            if self.repo.get_link(session, link.user_id, match.id) is not None:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Address already exists in your address book",
                )
            target = match
        elif self.repo.is_referenced(session, address.id, exclude_link_id=link.id):
            target = self.repo.add_address(session, Address(**values))
        else:
            for key, value in changes.items():
                setattr(address, key, value)
            address.updated_at = datetime.now(timezone.utc)
            session.add(address)
            return address

        link.address_id = target.id
        self.repo.save_link(session, link)
        if not self.repo.is_referenced(session, address.id):
            self.repo.delete_address(session, address)
        return target

    # ---- public operations ----

    def list_addresses(
        self,
        session: Session,
        user_id: uuid.UUID,
        *,
        city: str | None = None,
        state: str | None = None,
        postal_code: str | None = None,
    ) -> list[AddressRead]:
        rows = self.repo.list_for_user(
            session, user_id, city=city, state=state, postal_code=postal_code
        )
        return [self._to_read(link, address) for link, address in rows]

    def get_address(
        self,
        session: Session,
        user_id: uuid.UUID,
        address_id: uuid.UUID,
    ) -> AddressRead:
        link, address = self._get_owned(session, user_id, address_id)
        return self._to_read(link, address)

    def create_address(
        self,
        session: Session,
        user_id: uuid.UUID,
        payload: AddressCreate,
    ) -> AddressRead:
        """
        Add an address to the shopper's book.

        Rules:
          - an identical canonical address is reused rather than duplicated
          - linking the same address twice => 409
          - the first address of a shopper becomes the default
        """
        address = self.repo.find_identical(
            session,
            address_line1=payload.address_line1,
            city=payload.city,
            state=payload.state,
            postal_code=payload.postal_code,
        )
        if address is not None:
            if self.repo.get_link(session, user_id, address.id) is not None:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Address already exists in your address book",
                )
        else:
            address = self.repo.add_address(
                session,
                Address(**payload.model_dump(include=set(ADDRESS_FIELDS))),
            )

        has_addresses = bool(self.repo.list_for_user(session, user_id))
        link = self.repo.add_link(
            session,
            UserAddress(
                user_id=user_id,
                address_id=address.id,
                **payload.model_dump(include=set(LINK_FIELDS)),
            ),
        )
        if payload.is_default or not has_addresses:
            self._make_default(session, link)

        session.commit()
        session.refresh(link)
        session.refresh(address)
        return self._to_read(link, address)

    def update_address(
        self,
        session: Session,
        user_id: uuid.UUID,
        address_id: uuid.UUID,
        payload: AddressUpdate,
    ) -> AddressRead:
        """
        Partial update. Address fields go through _apply_address_changes,
        so a row shared with other shoppers or orders is never rewritten
        and the returned id may differ from `address_id`. Link fields
        change this shopper's link.
        """
        link, address = self._get_owned(session, user_id, address_id)
        data = payload.model_dump(exclude_unset=True)

        address_changes = {k: v for k, v in data.items() if k in ADDRESS_FIELDS}
        for field in ("address_line1", "city", "state", "postal_code"):
            if field in address_changes and address_changes[field] is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"{field} cannot be null",
                )

        link_changed = False
        if address_changes:
            address = self._apply_address_changes(session, link, address, address_changes)
            link_changed = True

        for key in LINK_FIELDS:
            if data.get(key) is not None:
                setattr(link, key, data[key])
                link_changed = True

        if data.get("is_default") is True:
            self._make_default(session, link)
        elif data.get("is_default") is False and link.is_default:
            link.is_default = False
            link_changed = True

        if link_changed:
            self.repo.save_link(session, link)

        session.commit()
        session.refresh(link)
        session.refresh(address)
        return self._to_read(link, address)

    def set_default(
        self,
        session: Session,
        user_id: uuid.UUID,
        address_id: uuid.UUID,
    ) -> AddressRead:
        """
        Make `address_id` the shopper's only default address.

        Idempotent: repeated calls converge to exactly one default.
        """
        link, address = self._get_owned(session, user_id, address_id)
        self._make_default(session, link)
        session.commit()
        session.refresh(link)
        return self._to_read(link, address)

    def delete_address(
        self,
        session: Session,
        user_id: uuid.UUID,
        address_id: uuid.UUID,
    ) -> None:
        """
        Remove the address from the shopper's book.

        The canonical row is only deleted when nothing else references it
        (orders keep pointing at it).
        """
        link, address = self._get_owned(session, user_id, address_id)
        self.repo.delete_link(session, link)
        if not self.repo.is_referenced(session, address.id):
            self.repo.delete_address(session, address)
        session.commit()

    # ---- lookup used by order creation ----

    def get_shipping_snapshot(
        self,
        session: Session,
        address_id: uuid.UUID,
        user_id: uuid.UUID | None = None,
    ) -> dict[str, str | None]:
        """
        Display fields copied onto an order.

        Recipient name / phone come from the shopper's link when one
        exists. Raises 404 if the address does not exist.
        """
        address = self.repo.get_by_id(session, address_id)
        if address is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Address not found",
            )
        link = self.repo.get_link(session, user_id, address_id) if user_id else None
        return {
            "recipient_name": f"{link.first_name} {link.last_name}" if link else None,
            "phone_number": link.phone if link else None,
            "address_line1": address.address_line1,
            "address_line2": address.address_line2,
            "city": address.city,
            "state": address.state,
            "postal_code": address.postal_code,
        }
