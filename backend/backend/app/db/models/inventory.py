"""
MODULE: INVENTORY
Raw-material item master and current on-hand quantity
"""

from __future__ import annotations

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, HasUpdatedAt
from decimal import Decimal
from sqlalchemy import String, Numeric, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

# ============= ITEM MASTER =============

class InventoryItem(Base, HasId, HasCreatedAt, HasUpdatedAt):
    """
    Raw material or component consumed by manufacturing runs.
    current_stock is owned by the stock ledger (services.inventory.ledger);
    nothing else writes it.
    """
    __tablename__ = "inv_item"
    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_inv_item_stock_non_negative"),
        CheckConstraint("reorder_level >= 0", name="ck_inv_item_reorder_non_negative"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    sku: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)

    unit: Mapped[str] = mapped_column(String(20), nullable=False)  # e.g. pcs, kg, m

    current_stock: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=Decimal("0"), nullable=False)
    reorder_level: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=Decimal("0"), nullable=False)

    @property
    def is_low_stock(self) -> bool:
        return Decimal(self.current_stock) <= Decimal(self.reorder_level)

Index("ix_inv_item_current_stock", InventoryItem.current_stock)
