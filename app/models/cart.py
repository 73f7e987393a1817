# app/models/cart.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Index, text
from sqlmodel import SQLModel, Field


class CartItem(SQLModel, table=True):
    """
    Shopping cart entry for a user.

    Rows are never hard-deleted: removal sets deleted_at, checkout
    completion clears is_active. A user cannot have 2 active,
    non-deleted rows for the same product.
    """

    __tablename__ = "cart_items"
    __table_args__ = (
        Index(
            "uq_cart_items_active_user_product",
            "user_id",
            "product_id",
            unique=True,
            postgresql_where=text("is_active AND deleted_at IS NULL"),
            sqlite_where=text("is_active = 1 AND deleted_at IS NULL"),
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

    product_id: uuid.UUID = Field(
        foreign_key="products.id",
        index=True,
    )

    quantity: int = Field(
        gt=0,
        description="Must be >= 1",
    )

    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    deleted_at: datetime | None = Field(default=None)
