# app/schemas/order.py
import uuid
from datetime import datetime
from typing import Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

OrderStatus = Literal[
    "PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED"
]
DeliveryStatus = OrderStatus
PaymentStatus = Literal[
    "PENDING", "PAID", "FAILED", "REFUNDED", "PARTIALLY_REFUNDED"
]


class OrderCreate(SQLModel):
    """
    Payload for creating a single order line.

    Used directly by admins and internally by webhook materialization.

    Backend derives:
      - unit_price from the product at this moment (frozen)
      - subtotal / grand_total from the amounts below
      - order_number, all statuses = 'PENDING'
      - display snapshot from product + address
    """

    model_config = ConfigDict(extra="forbid")

    user_id: uuid.UUID
    address_id: uuid.UUID
    product_id: uuid.UUID
    quantity: int = Field(gt=0)
    tax_amount: float = Field(default=0.0, ge=0)
    shipping_cost: float = Field(default=0.0, ge=0)
    discount_amount: float = Field(default=0.0, ge=0)
    payment_method: str | None = None
    notes: str | None = None

    @field_validator("notes", "payment_method")
    @classmethod
    def normalize_text(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class OrderRead(SQLModel):
    id: uuid.UUID
    order_number: str
    user_id: uuid.UUID
    address_id: uuid.UUID
    product_id: uuid.UUID
    quantity: int
    unit_price: float
    subtotal: float
    tax_amount: float
    shipping_cost: float
    discount_amount: float
    grand_total: float
    delivery_status: DeliveryStatus
    payment_status: PaymentStatus
    order_status: OrderStatus
    payment_method: str | None
    tracking_number: str | None
    notes: str | None
    checkout_session_id: str | None
    cancellation_reason: str | None
    cancelled_at: datetime | None
    refund_amount: float | None
    product_name: str
    recipient_name: str | None
    phone_number: str | None
    address_line1: str
    address_line2: str | None
    city: str
    state: str
    postal_code: str
    created_at: datetime
    updated_at: datetime


class OrderUpdate(SQLModel):
    """
    Admin partial update. Only fields present in the request are applied.

    Setting order_status=CANCELLED without delivery_status also cancels
    delivery and stamps cancelled_at.
    """

    model_config = ConfigDict(extra="forbid")

    delivery_status: DeliveryStatus | None = None
    payment_status: PaymentStatus | None = None
    order_status: OrderStatus | None = None
    tracking_number: str | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    refund_amount: float | None = Field(default=None, ge=0)


class OrderCancel(SQLModel):
    """
    Admin cancellation payload.
    """

    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(default=None, min_length=1)
    refund_amount: float | None = Field(default=None, ge=0)


class OrderCancelByShopper(SQLModel):
    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(default=None, min_length=1)
