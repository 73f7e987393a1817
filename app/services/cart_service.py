# app/services/cart_service.py
import uuid

from fastapi import HTTPException, status
from sqlmodel import Session

from app.models.cart import CartItem
from app.models.product import Product
from app.repositories.cart_repo import CartRepository
from app.repositories.product_repo import ProductRepository
from app.schemas.cart import (
    CartItemCreate,
    CartItemUpdate,
    CartItemRead,
    CartSummary,
)


class CartService:
    """
    Business logic for cart operations.

    Responsibilities:
      - ensure only 'user' accounts use cart (via router dependency)
      - validate product existence and active flag
      - enforce quantity <= stock_on_hand
      - keep one live row per (user, product); re-adding merges quantities
      - price lines at the current product price (orders freeze it later)
      - deactivate the cart once a checkout has been paid
    """

    def __init__(self, cart_repo: CartRepository, product_repo: ProductRepository):
        self.cart_repo = cart_repo
        self.product_repo = product_repo

    # ---- internal helpers ----

    def _get_valid_product(self, session: Session, product_id: uuid.UUID) -> Product:
        product = self.product_repo.get_by_id(session, product_id)
        if not product:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Product not found",
            )
        if not product.is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Product is inactive",
            )
        return product

    # ---- public operations ----

    def get_cart_summary(
        self,
        session: Session,
        user_id: uuid.UUID,
    ) -> CartSummary:
        """
        Return full cart summary:
          - list of CartItemRead (with line_total at current price)
          - total_quantity
          - total_price
        """
        items = self.cart_repo.list_for_user(session, user_id)
        products = self.product_repo.get_many(session, (it.product_id for it in items))

        item_reads: list[CartItemRead] = []
        total_qty = 0
        total_price = 0.0

        for it in items:
            product = products.get(it.product_id)
            unit_price = product.price if product else 0.0
            line_total = round(it.quantity * unit_price, 2)
            total_qty += it.quantity
            total_price += line_total

            item_reads.append(
                CartItemRead(
                    id=it.id,
                    user_id=it.user_id,
                    product_id=it.product_id,
                    quantity=it.quantity,
                    product_name=product.name if product else None,
                    unit_price=unit_price,
                    line_total=line_total,
                    created_at=it.created_at,
                    updated_at=it.updated_at,
                )
            )

        return CartSummary(
            items=item_reads,
            total_quantity=total_qty,
            total_price=round(total_price, 2),
        )

    def add_to_cart(
        self,
        session: Session,
        user_id: uuid.UUID,
        payload: CartItemCreate,
    ) -> CartSummary:
        """
        Add a product to the user's cart.

        Rules:
          - product must exist and be active
          - an existing live row for the product gets its quantity
            increased instead of a second row being created
          - quantity + existing_quantity <= stock_on_hand
        """
        product = self._get_valid_product(session, payload.product_id)

        existing = self.cart_repo.get_item(session, user_id, payload.product_id)
        new_qty = payload.quantity + (existing.quantity if existing else 0)

        if new_qty > product.stock_on_hand:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Not enough stock available",
            )

        if existing:
            existing.quantity = new_qty
            self.cart_repo.save(session, existing)
        else:
            self.cart_repo.save(
                session,
                CartItem(
                    user_id=user_id,
                    product_id=payload.product_id,
                    quantity=payload.quantity,
                ),
            )
        session.commit()

        return self.get_cart_summary(session, user_id)

    def update_quantity(
        self,
        session: Session,
        user_id: uuid.UUID,
        product_id: uuid.UUID,
        payload: CartItemUpdate,
    ) -> CartSummary:
        """
        Update the quantity of an item in the cart.

        If quantity exceeds stock_on_hand => 400.
        """
        product = self._get_valid_product(session, product_id)
        item = self.cart_repo.get_item(session, user_id, product_id)

        if not item:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Item not in cart",
            )

        if payload.quantity > product.stock_on_hand:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Not enough stock available",
            )

        item.quantity = payload.quantity
        self.cart_repo.save(session, item)
        session.commit()

        return self.get_cart_summary(session, user_id)

    def remove_item(
        self,
        session: Session,
        user_id: uuid.UUID,
        product_id: uuid.UUID,
    ) -> CartSummary:
        """
        Soft-delete a product from the cart and return updated summary.
        """
        item = self.cart_repo.get_item(session, user_id, product_id)
        if not item:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Item not in cart",
            )

        self.cart_repo.soft_delete(session, item)
        session.commit()
        return self.get_cart_summary(session, user_id)

    def clear_cart(
        self,
        session: Session,
        user_id: uuid.UUID,
    ) -> CartSummary:
        """
        Soft-delete all items from the cart and return an empty summary.
        """
        self.cart_repo.soft_delete_all_for_user(session, user_id)
        session.commit()
        return CartSummary(items=[], total_quantity=0, total_price=0.0)

    def deactivate_all(
        self,
        session: Session,
        user_id: uuid.UUID,
    ) -> int:
        """
        Mark every live cart row of the user inactive (checkout completed).

        Rows are kept for order-history linkage. Returns how many rows
        changed; 0 is not an error.
        """
        count = self.cart_repo.deactivate_all_for_user(session, user_id)
        session.commit()
        return count
