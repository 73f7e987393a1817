# app/schemas/checkout.py
import uuid

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field


class CheckoutItem(SQLModel):
    product_id: uuid.UUID
    quantity: int = Field(gt=0)


class CheckoutCreate(SQLModel):
    """
    Payload for opening a hosted checkout session.

    If `items` is omitted, the shopper's active cart is checked out.
    """

    model_config = ConfigDict(extra="forbid")

    address_id: uuid.UUID
    items: list[CheckoutItem] | None = None

    @field_validator("items")
    @classmethod
    def not_empty(cls, v: list[CheckoutItem] | None) -> list[CheckoutItem] | None:
        if v is not None and not v:
            raise ValueError("items cannot be an empty list")
        return v


class CheckoutSessionRead(SQLModel):
    session_id: str
    url: str
