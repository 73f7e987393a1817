# app/schemas/cart.py
import uuid
from datetime import datetime

from sqlmodel import SQLModel, Field


class CartItemCreate(SQLModel):
    """
    Payload for adding to cart.

    Adding a product that is already in the cart increases its quantity.
    """

    product_id: uuid.UUID
    quantity: int = Field(default=1, gt=0)


class CartItemUpdate(SQLModel):
    """
    Payload for updating quantity of a cart item.
    """

    quantity: int = Field(gt=0)


class CartItemRead(SQLModel):
    """
    Read model for a single active cart item, priced at the current
    product price.
    """

    id: uuid.UUID
    user_id: uuid.UUID
    product_id: uuid.UUID
    quantity: int
    product_name: str | None = None
    unit_price: float
    line_total: float
    created_at: datetime
    updated_at: datetime


class CartSummary(SQLModel):
    """
    Full cart response model with totals.
    """

    items: list[CartItemRead]
    total_quantity: int
    total_price: float
