# app/services/checkout_service.py
import logging
import uuid

from fastapi import HTTPException, status
from sqlmodel import Session

from app.core.payment_gateway import (
    CheckoutLine,
    PaymentGateway,
    PaymentGatewayError,
)
from app.repositories.address_repo import AddressRepository
from app.repositories.cart_repo import CartRepository
from app.repositories.product_repo import ProductRepository
from app.schemas.checkout import CheckoutCreate, CheckoutItem, CheckoutSessionRead
from app.services import checkout_metadata

logger = logging.getLogger(__name__)

# Seconds a client should wait before retrying after a processor outage
RETRY_AFTER_SECONDS = 30


class CheckoutService:
    """
    Opens hosted checkout sessions.

    Pure read + external call: no order, cart or stock row is touched.
    Orders only appear once the processor confirms payment via webhook.
    """

    def __init__(
        self,
        product_repo: ProductRepository,
        address_repo: AddressRepository,
        cart_repo: CartRepository,
    ):
        self.product_repo = product_repo
        self.address_repo = address_repo
        self.cart_repo = cart_repo

    @staticmethod
    def _merge_items(items: list[CheckoutItem]) -> list[CheckoutItem]:
        """
        One line per product, first-seen order, quantities summed.
        """
        merged: dict[uuid.UUID, int] = {}
        for item in items:
            merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
        return [CheckoutItem(product_id=pid, quantity=qty) for pid, qty in merged.items()]

    def _items_from_cart(
        self,
        session: Session,
        user_id: uuid.UUID,
    ) -> list[CheckoutItem]:
        return [
            CheckoutItem(product_id=row.product_id, quantity=row.quantity)
            for row in self.cart_repo.list_for_user(session, user_id)
        ]

    def create_checkout_session(
        self,
        session: Session,
        gateway: PaymentGateway,
        user_id: uuid.UUID,
        payload: CheckoutCreate,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSessionRead:
        """
        Steps:
          1. Address must be in the shopper's address book (404).
          2. Resolve items (payload or active cart), merge duplicates.
          3. Drop products that no longer exist or are inactive.
          4. Nothing left => 400.
          5. Open the processor session with current prices and
             metadata (shopper, address, ordered product ids).
        """
        if self.address_repo.get_link(session, user_id, payload.address_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Address not found",
            )

        items = payload.items
        if items is None:
            items = self._items_from_cart(session, user_id)
        items = self._merge_items(items)

        products = self.product_repo.get_many(session, (it.product_id for it in items))

        resolved: list[tuple[uuid.UUID, CheckoutLine]] = []
        for item in items:
            product = products.get(item.product_id)
            if product is None or not product.is_active:
                logger.info(
                    "Dropping unavailable product %s from checkout of user %s",
                    item.product_id,
                    user_id,
                )
                continue
            resolved.append(
                (
                    product.id,
                    CheckoutLine(
                        name=product.name,
                        unit_price=product.price,
                        quantity=item.quantity,
                    ),
                )
            )

        if not resolved:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No purchasable products in checkout",
            )

        try:
            metadata = checkout_metadata.encode(
                user_id,
                payload.address_id,
                [pid for pid, _ in resolved],
            )
        except checkout_metadata.MetadataTooLarge as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(exc),
            )

        try:
            result = gateway.create_checkout_session(
                lines=[line for _, line in resolved],
                metadata=metadata,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except PaymentGatewayError as exc:
            logger.error("Checkout session creation failed for user %s: %s", user_id, exc)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Payment processor unavailable, please retry",
                headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
            )

        logger.info(
            "Opened checkout session %s for user %s (%d lines)",
            result.session_id,
            user_id,
            len(resolved),
        )
        return CheckoutSessionRead(session_id=result.session_id, url=result.url)
