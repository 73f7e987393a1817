# app/models/order.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class Order(SQLModel, table=True):
    """
    One purchased product line.

    A checkout session paying for N products materializes N rows that
    share checkout_session_id and differ by session_line.

    Pricing (unit_price, subtotal, tax/shipping/discount, grand_total) is
    frozen at creation; orders are never re-priced.

    Status lifecycle:
      - order_status:    PENDING | CONFIRMED | PROCESSING | SHIPPED | DELIVERED | CANCELLED
      - delivery_status: same values, mirrors order_status on cancellation
      - payment_status:  PENDING | PAID | FAILED | REFUNDED | PARTIALLY_REFUNDED
    """

    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint(
            "checkout_session_id",
            "session_line",
            name="uq_orders_checkout_session_line",
        ),
    )

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_number: str = Field(
        max_length=40,
        unique=True,
        index=True,
        description="Human-facing number, sortable by creation time",
    )

    user_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
    )
    address_id: uuid.UUID = Field(
        foreign_key="addresses.id",
        index=True,
    )
    product_id: uuid.UUID = Field(
        foreign_key="products.id",
        index=True,
    )

    quantity: int = Field(gt=0)

    # Pricing snapshot
    unit_price: float = Field(description="Unit price at time of order")
    subtotal: float
    tax_amount: float = Field(default=0.0, ge=0)
    shipping_cost: float = Field(default=0.0, ge=0)
    discount_amount: float = Field(default=0.0, ge=0)
    grand_total: float

    delivery_status: str = Field(default="PENDING", index=True)
    payment_status: str = Field(default="PENDING", index=True)
    order_status: str = Field(default="PENDING", index=True)

    payment_method: str | None = None
    tracking_number: str | None = None
    notes: str | None = None

    # Set only for orders materialized from a payment processor session
    checkout_session_id: str | None = Field(default=None, index=True)
    session_line: int | None = None

    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    refund_amount: float | None = Field(default=None, ge=0)

    # Display snapshot; later product/address edits do not change these
    product_name: str
    recipient_name: str | None = None
    phone_number: str | None = None
    address_line1: str
    address_line2: str | None = None
    city: str
    state: str
    postal_code: str

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Last mutation timestamp (UTC)",
    )
