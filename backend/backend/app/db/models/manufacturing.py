"""
MODULE: MANUFACTURING LOG
Immutable audit trail of committed manufacturing runs
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, utcnow
from app.db.models.inventory import InventoryItem
from app.db.models.product import Product
from sqlalchemy import String, DateTime, Integer, Numeric, ForeignKey, Text, CheckConstraint, Index, event
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship, Session


class AppendOnlyViolation(Exception):
    """Raised when a flush would modify or delete a manufacturing log record."""


class ManufacturingLog(Base, HasId, HasCreatedAt):
    __tablename__ = "mfg_manufacturing_log"
    __table_args__ = (
        CheckConstraint("quantity_produced >= 1", name="ck_mfg_log_quantity_positive"),
    )

    product_id: Mapped[str] = mapped_column(ForeignKey("mfg_product.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity_produced: Mapped[int] = mapped_column(Integer, nullable=False)

    manufactured_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Dimensions the BOM was resolved with
    width: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    height: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    product: Mapped[Product] = relationship()
    deductions: Mapped[list["ManufacturingDeduction"]] = relationship(
        back_populates="log",
        order_by="ManufacturingDeduction.position",
        collection_class=ordering_list("position"),
    )

Index("ix_mfg_log_product_time", ManufacturingLog.product_id, ManufacturingLog.timestamp)


class ManufacturingDeduction(Base, HasId):
    __tablename__ = "mfg_manufacturing_deduction"

    log_id: Mapped[str] = mapped_column(ForeignKey("mfg_manufacturing_log.id", ondelete="RESTRICT"), nullable=False, index=True)
    inventory_item_id: Mapped[str] = mapped_column(ForeignKey("inv_item.id", ondelete="RESTRICT"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    quantity_deducted: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    stock_before: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    stock_after: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)

    log: Mapped[ManufacturingLog] = relationship(back_populates="deductions")
    inventory_item: Mapped[InventoryItem] = relationship()


@event.listens_for(Session, "before_flush")
def _guard_append_only(session: Session, flush_context, instances) -> None:
    for obj in list(session.dirty) + list(session.deleted):
        if isinstance(obj, (ManufacturingLog, ManufacturingDeduction)):
            if obj in session.deleted or session.is_modified(obj, include_collections=False):
                raise AppendOnlyViolation(f"{type(obj).__name__} {obj.id} is append-only")
