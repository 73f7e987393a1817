# app/repositories/product_repo.py
import uuid
from typing import Iterable

from sqlmodel import Session, select

from app.models.product import Product


class ProductRepository:
    """
    Read access to the product catalog.

    - Pure DB operations.
    - No FastAPI, no business logic.
    """

    def get_by_id(self, session: Session, product_id: uuid.UUID) -> Product | None:
        return session.get(Product, product_id)

    def get_many(
        self,
        session: Session,
        product_ids: Iterable[uuid.UUID],
    ) -> dict[uuid.UUID, Product]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        stmt = select(Product).where(Product.id.in_(ids))
        return {p.id: p for p in session.exec(stmt).all()}
