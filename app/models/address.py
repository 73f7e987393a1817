# app/models/address.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Index, UniqueConstraint, text
from sqlmodel import SQLModel, Field


class Address(SQLModel, table=True):
    """
    Canonical postal address.

    Shopper-independent: two shoppers shipping to the same place share
    one row. Shopper-specific fields live on UserAddress.
    """

    __tablename__ = "addresses"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    address_line1: str = Field(max_length=255)
    address_line2: str | None = Field(default=None, max_length=255)
    city: str = Field(max_length=100, index=True)
    state: str = Field(max_length=100, index=True)
    postal_code: str = Field(max_length=20, index=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class UserAddress(SQLModel, table=True):
    """
    Link between a shopper and an address.

    Carries the recipient details and the default flag.
    One shopper cannot link the same address twice, and at most one
    link per shopper has is_default=True (partial unique index).
    """

    __tablename__ = "user_addresses"
    __table_args__ = (
        UniqueConstraint("user_id", "address_id", name="uq_user_address"),
        Index(
            "uq_user_addresses_default",
            "user_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default = 1"),
        ),
    )

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    user_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
    )

    address_id: uuid.UUID = Field(
        foreign_key="addresses.id",
        index=True,
    )

    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    phone: str = Field(max_length=30)

    is_default: bool = Field(default=False, index=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
