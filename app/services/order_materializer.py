# app/services/order_materializer.py
"""
Turns a paid checkout session into orders.

The processor delivers "session completed" events at least once and in
no particular relation to the checkout request that opened the session.
Materialization therefore:

  - trusts the session metadata for *which* products and *where*,
  - trusts the processor's line items for *how many* (matched by index),
  - creates each line in its own transaction (no all-or-nothing),
  - skips sessions that already produced orders,
  - never raises: every line ends up as an OrderLineOutcome or a
    MaterializationError inside the returned report.
"""

import logging
import uuid
from dataclasses import dataclass, field

from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from app.core.payment_gateway import CompletedCheckout
from app.repositories.order_repo import OrderRepository
from app.schemas.order import OrderCreate
from app.services import checkout_metadata
from app.services.cart_service import CartService
from app.services.order_service import OrderService

logger = logging.getLogger(__name__)

# Error kinds carried by MaterializationError
MISSING_LINE_ITEM = "MISSING_LINE_ITEM"
NOT_FOUND = "NOT_FOUND"
VALIDATION = "VALIDATION"
DUPLICATE = "DUPLICATE"
UNEXPECTED = "UNEXPECTED"

# skipped_reason values
SKIP_MALFORMED = "malformed_metadata"
SKIP_NO_LINE_ITEMS = "no_line_items"
SKIP_DUPLICATE = "duplicate_session"
SKIP_UNPAID = "unpaid"

PAID_STATUSES = {"paid", "no_payment_required"}


@dataclass(frozen=True)
class OrderLineOutcome:
    line: int
    product_id: uuid.UUID
    quantity: int
    order_id: uuid.UUID
    order_number: str


@dataclass(frozen=True)
class MaterializationError:
    line: int
    product_id: uuid.UUID
    kind: str
    message: str


LineResult = OrderLineOutcome | MaterializationError


@dataclass
class MaterializationReport:
    session_id: str
    lines: list[LineResult] = field(default_factory=list)
    skipped_reason: str | None = None
    carts_deactivated: int = 0
    cart_error: str | None = None

    @property
    def created(self) -> list[OrderLineOutcome]:
        return [r for r in self.lines if isinstance(r, OrderLineOutcome)]

    @property
    def failed(self) -> list[MaterializationError]:
        return [r for r in self.lines if isinstance(r, MaterializationError)]

    def summary(self) -> str:
        if self.skipped_reason:
            return f"session {self.session_id}: skipped ({self.skipped_reason})"
        return (
            f"session {self.session_id}: {len(self.created)} created, "
            f"{len(self.failed)} failed, {self.carts_deactivated} cart rows deactivated"
        )


class OrderMaterializer:
    """
    Collaborators are injected; nothing here reaches for module globals,
    so tests can drive it with their own session and services.
    """

    def __init__(
        self,
        order_service: OrderService,
        order_repo: OrderRepository,
        cart_service: CartService,
        payment_method: str = "stripe",
    ):
        self.order_service = order_service
        self.order_repo = order_repo
        self.cart_service = cart_service
        self.payment_method = payment_method

    def materialize(
        self,
        session: Session,
        checkout: CompletedCheckout,
    ) -> MaterializationReport:
        report = MaterializationReport(session_id=checkout.session_id)
        try:
            self._materialize(session, checkout, report)
        except Exception:
            # Unexpected failure outside a single line (e.g. DB outage on
            # the idempotency lookup). The processor still gets its ack.
            logger.exception("Materialization aborted for %s", checkout.session_id)
            session.rollback()
            if report.skipped_reason is None and not report.lines:
                report.skipped_reason = UNEXPECTED.lower()
        logger.info("Materialization %s", report.summary())
        return report

    def _materialize(
        self,
        session: Session,
        checkout: CompletedCheckout,
        report: MaterializationReport,
    ) -> None:
        if checkout.payment_status is not None and checkout.payment_status not in PAID_STATUSES:
            logger.info(
                "Session %s not paid yet (%s); waiting for async confirmation",
                checkout.session_id,
                checkout.payment_status,
            )
            report.skipped_reason = SKIP_UNPAID
            return

        meta = checkout_metadata.decode(checkout.metadata)
        if meta is None:
            logger.warning(
                "Ignoring session %s: missing or invalid checkout metadata %r",
                checkout.session_id,
                checkout.metadata,
            )
            report.skipped_reason = SKIP_MALFORMED
            return

        if not checkout.line_quantities:
            logger.warning("Ignoring session %s: no line items", checkout.session_id)
            report.skipped_reason = SKIP_NO_LINE_ITEMS
            return

        if self.order_repo.exists_for_checkout_session(session, checkout.session_id):
            logger.info(
                "Session %s already materialized; skipping redelivery",
                checkout.session_id,
            )
            report.skipped_reason = SKIP_DUPLICATE
            return

        notes = f"Paid via {self.payment_method} checkout session {checkout.session_id}"
        for index, product_id in enumerate(meta.product_ids):
            if index >= len(checkout.line_quantities):
                report.lines.append(
                    MaterializationError(
                        line=index,
                        product_id=product_id,
                        kind=MISSING_LINE_ITEM,
                        message="processor reported no line item at this index",
                    )
                )
                logger.error(
                    "Session %s line %d (product %s): no processor line item",
                    checkout.session_id,
                    index,
                    product_id,
                )
                continue

            quantity = checkout.line_quantities[index]
            report.lines.append(
                self._create_line(
                    session,
                    checkout.session_id,
                    index,
                    product_id,
                    1 if quantity is None else quantity,
                    meta,
                    notes,
                )
            )

        if report.created:
            try:
                report.carts_deactivated = self.cart_service.deactivate_all(
                    session, meta.shopper_id
                )
            except Exception as exc:
                session.rollback()
                report.cart_error = str(exc)
                logger.exception(
                    "Session %s: failed to deactivate cart of user %s",
                    checkout.session_id,
                    meta.shopper_id,
                )

    def _create_line(
        self,
        session: Session,
        session_id: str,
        index: int,
        product_id: uuid.UUID,
        quantity: int,
        meta: checkout_metadata.CheckoutMetadata,
        notes: str,
    ) -> LineResult:
        try:
            payload = OrderCreate(
                user_id=meta.shopper_id,
                address_id=meta.address_id,
                product_id=product_id,
                quantity=quantity,
                payment_method=self.payment_method,
                notes=notes,
            )
            order = self.order_service.create_order(
                session,
                payload,
                checkout_session_id=session_id,
                session_line=index,
            )
        except ValidationError as exc:
            error = MaterializationError(index, product_id, VALIDATION, str(exc))
        except HTTPException as exc:
            kind = NOT_FOUND if exc.status_code == 404 else VALIDATION
            error = MaterializationError(index, product_id, kind, str(exc.detail))
        except IntegrityError as exc:
            # Concurrent delivery of the same session won the race for this line
            error = MaterializationError(index, product_id, DUPLICATE, str(exc.orig))
        except Exception as exc:
            error = MaterializationError(index, product_id, UNEXPECTED, repr(exc))
        else:
            return OrderLineOutcome(
                line=index,
                product_id=product_id,
                quantity=payload.quantity,
                order_id=order.id,
                order_number=order.order_number,
            )

        logger.error(
            "Session %s line %d (product %s) failed: %s %s",
            session_id,
            index,
            product_id,
            error.kind,
            error.message,
        )
        return error
