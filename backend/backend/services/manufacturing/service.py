"""Manufacturing transaction coordinator.

A run resolves the product's effective BOM, checks stock against a snapshot
taken inside the transaction, deducts every line through the stock ledger,
bumps the product's produced counter and appends one log entry. All of it
commits together or not at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from app.core import config
from app.core.errors import ConcurrencyConflictError, InsufficientStockError, NotFoundError, ValidationError
from app.db.models.manufacturing import ManufacturingLog
from app.db.models.product import ConditionalRule, Product
from app.db.session import SessionLocal
from app.db.uow import UnitOfWork
from app.events.bus import publish
from services.inventory.ledger import StockLedger
from services.manufacturing.bom import Dimensions, matching_rule, resolve_bom
from services.manufacturing.logs import LogFilters, ManufacturingLogBook
from services.manufacturing.sufficiency import SufficiencyReport, check_sufficiency

logger = logging.getLogger(__name__)

MAX_OPERATOR_LEN = 100
MAX_NOTES_LEN = 1000
# integer digits left in a Numeric(18, 6) column
MAX_DIMENSION = Decimal("1e12")


@dataclass(frozen=True)
class AvailabilityReport:
    product_id: str
    product_name: str
    product_sku: str
    quantity: int
    dimensions: Dimensions
    rule_id: str | None  # conditional rule that supplied the BOM, if any
    report: SufficiencyReport

    @property
    def can_manufacture(self) -> bool:
        return self.report.all_sufficient


def _validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be a whole number")
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    return quantity


def _validate_dimensions(width, height) -> Dimensions:
    for label, value in (("width", width), ("height", height)):
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            raise ValidationError(f"{label} must be a number")
        value = Decimal(str(value))
        if not value.is_finite():
            raise ValidationError(f"{label} must be a finite number")
        if value < 0:
            raise ValidationError(f"{label} cannot be negative")
        if value >= MAX_DIMENSION:
            raise ValidationError(f"{label} is too large")
    return Dimensions.of(width, height)


def _validate_text(value: str | None, label: str, max_len: int) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if len(value) > max_len:
        raise ValidationError(f"{label} cannot be more than {max_len} characters")
    return value or None


def _load_product(db: Session, product_id: str) -> Product:
    product = db.execute(
        select(Product)
        .where(Product.id == product_id)
        .options(
            selectinload(Product.components),
            selectinload(Product.conditional_rules).selectinload(ConditionalRule.components),
        )
    ).scalar_one_or_none()
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


class ManufacturingService:
    """Entry point for callers of the manufacturing core.

    Each operation opens its own unit of work from ``session_factory``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        *,
        conflict_retries: int | None = None,
    ):
        self.session_factory = session_factory
        self.conflict_retries = config.MANUFACTURING_CONFLICT_RETRIES if conflict_retries is None else conflict_retries

    # ---- read side ----

    def check_availability(self, product_id: str, quantity: int, *, width=None, height=None) -> AvailabilityReport:
        quantity = _validate_quantity(quantity)
        dims = _validate_dimensions(width, height)
        with UnitOfWork(self.session_factory) as uow:
            product = _load_product(uow.session, product_id)
            rule = matching_rule(product, dims)
            requirements = resolve_bom(product, dims)
            stock = StockLedger(uow).snapshot((r.inventory_item_id for r in requirements), lock=False)
            report = check_sufficiency(requirements, quantity, stock)
            return AvailabilityReport(
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                quantity=quantity,
                dimensions=dims,
                rule_id=rule.id if rule is not None else None,
                report=report,
            )

    def query_logs(self, filters: LogFilters | None = None) -> list[ManufacturingLog]:
        with UnitOfWork(self.session_factory) as uow:
            return ManufacturingLogBook(uow).query(filters)

    # ---- write side ----

    def manufacture(
        self,
        product_id: str,
        quantity_produced: int,
        *,
        width=None,
        height=None,
        manufactured_by: str | None = None,
        notes: str | None = None,
    ) -> ManufacturingLog:
        """Run one manufacturing transaction. Not idempotent: every call is a new run.

        Only ``ConcurrencyConflictError`` is retried, and always from scratch.
        """
        quantity = _validate_quantity(quantity_produced)
        dims = _validate_dimensions(width, height)
        manufactured_by = _validate_text(manufactured_by, "Manufactured by", MAX_OPERATOR_LEN)
        notes = _validate_text(notes, "Notes", MAX_NOTES_LEN)

        attempt = 0
        while True:
            try:
                return self._run(product_id, quantity, dims, width, height, manufactured_by, notes)
            except ConcurrencyConflictError:
                attempt += 1
                if attempt > self.conflict_retries:
                    raise
                logger.info("retrying manufacturing run product=%s after conflict (attempt %d)", product_id, attempt)

    def _run(
        self,
        product_id: str,
        quantity: int,
        dims: Dimensions,
        width,
        height,
        manufactured_by: str | None,
        notes: str | None,
    ) -> ManufacturingLog:
        with UnitOfWork(self.session_factory) as uow:
            db = uow.session
            ledger = StockLedger(uow)

            product = _load_product(db, product_id)
            requirements = resolve_bom(product, dims)
            if not requirements:
                raise ValidationError(f"Product {product.sku} has no bill of materials")

            stock = ledger.snapshot(r.inventory_item_id for r in requirements)
            report = check_sufficiency(requirements, quantity, stock)
            if not report.all_sufficient:
                shortages = [ln.as_shortage() for ln in report.insufficient_lines]
                logger.warning(
                    "manufacturing refused product=%s qty=%s short=%s",
                    product.sku, quantity, [s["name"] for s in shortages],
                )
                raise InsufficientStockError(shortages)

            # re-validated per row by the ledger; the check above is advisory
            movements = [ledger.deduct(ln.inventory_item_id, ln.total_required) for ln in report.lines]

            db.execute(
                update(Product)
                .where(Product.id == product.id)
                .values(total_manufactured=Product.total_manufactured + quantity)
                .execution_options(synchronize_session=False)
            )

            entry = ManufacturingLogBook(uow).append(
                product_id=product.id,
                quantity_produced=quantity,
                movements=movements,
                manufactured_by=manufactured_by,
                notes=notes,
                width=dims.width if width is not None else None,
                height=dims.height if height is not None else None,
            )
            publish(db, "manufacturing.run.completed", {
                "log_id": entry.id,
                "product_id": product.id,
                "quantity_produced": quantity,
                "deductions": [
                    {"inventory_item_id": m.inventory_item_id, "quantity": str(-m.quantity)} for m in movements
                ],
            })

            uow.commit()

            logger.info(
                "manufactured product=%s qty=%s log=%s lines=%d",
                product.sku, quantity, entry.id, len(movements),
            )
            # fully loaded so callers can read it after the session closes
            return ManufacturingLogBook(uow).get(entry.id)
