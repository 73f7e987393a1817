# app/schemas/address.py
import uuid
from datetime import datetime

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field


class AddressCreate(SQLModel):
    """
    Payload for adding an address to the current shopper's address book.
    """

    model_config = ConfigDict(extra="forbid")

    address_line1: str = Field(min_length=1, max_length=255)
    address_line2: str | None = Field(default=None, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=1, max_length=100)
    postal_code: str = Field(min_length=1, max_length=20)

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=1, max_length=30)

    is_default: bool = False

    @field_validator(
        "address_line1", "city", "state", "postal_code",
        "first_name", "last_name", "phone",
    )
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v

    @field_validator("address_line2")
    @classmethod
    def normalize_line2(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class AddressUpdate(SQLModel):
    """
    Partial update; only fields that are sent are applied.
    """

    model_config = ConfigDict(extra="forbid")

    address_line1: str | None = Field(default=None, min_length=1, max_length=255)
    address_line2: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, min_length=1, max_length=100)
    state: str | None = Field(default=None, min_length=1, max_length=100)
    postal_code: str | None = Field(default=None, min_length=1, max_length=20)

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    phone: str | None = Field(default=None, min_length=1, max_length=30)

    is_default: bool | None = None


class AddressRead(SQLModel):
    """
    Address as seen by one shopper: canonical fields + link fields.

    `id` is the canonical address id (what checkout and orders reference).
    """

    id: uuid.UUID
    user_id: uuid.UUID
    first_name: str
    last_name: str
    phone: str
    is_default: bool
    address_line1: str
    address_line2: str | None
    city: str
    state: str
    postal_code: str
    created_at: datetime
    updated_at: datetime
