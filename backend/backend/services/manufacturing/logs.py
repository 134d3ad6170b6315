from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.core import config
from app.core.errors import NotFoundError
from app.db.models.manufacturing import ManufacturingDeduction, ManufacturingLog
from app.db.uow import UnitOfWork
from services.inventory.ledger import StockMovement


def _with_relations(stmt):
    return stmt.options(
        selectinload(ManufacturingLog.product),
        selectinload(ManufacturingLog.deductions).selectinload(ManufacturingDeduction.inventory_item),
    )


@dataclass(frozen=True)
class LogFilters:
    product_id: str | None = None
    inventory_item_id: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    limit: int | None = None

    @property
    def effective_limit(self) -> int:
        if self.limit is None:
            return config.LOG_QUERY_DEFAULT_LIMIT
        return max(1, min(int(self.limit), config.LOG_QUERY_MAX_LIMIT))


class ManufacturingLogBook:
    """Append-only store of committed runs. There is no update or delete."""

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    @property
    def db(self):
        return self.uow.session

    def append(
        self,
        *,
        product_id: str,
        quantity_produced: int,
        movements: Sequence[StockMovement],
        manufactured_by: str | None = None,
        notes: str | None = None,
        width: Decimal | None = None,
        height: Decimal | None = None,
    ) -> ManufacturingLog:
        entry = ManufacturingLog(
            product_id=product_id,
            quantity_produced=quantity_produced,
            manufactured_by=manufactured_by,
            notes=notes,
            width=width,
            height=height,
        )
        for m in movements:
            entry.deductions.append(
                ManufacturingDeduction(
                    inventory_item_id=m.inventory_item_id,
                    quantity_deducted=-m.quantity,
                    stock_before=m.stock_before,
                    stock_after=m.stock_after,
                )
            )
        self.db.add(entry)
        self.db.flush()
        return entry

    def get(self, log_id: str) -> ManufacturingLog:
        entry = self.db.execute(
            _with_relations(select(ManufacturingLog).where(ManufacturingLog.id == log_id))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entry is None:
            raise NotFoundError("Manufacturing log", log_id)
        return entry

    def query(self, filters: LogFilters | None = None) -> list[ManufacturingLog]:
        """Entries matching ``filters``, newest first. Date bounds are inclusive."""
        f = filters or LogFilters()
        stmt = _with_relations(select(ManufacturingLog))
        if f.product_id:
            stmt = stmt.where(ManufacturingLog.product_id == f.product_id)
        if f.inventory_item_id:
            stmt = stmt.where(
                ManufacturingLog.deductions.any(ManufacturingDeduction.inventory_item_id == f.inventory_item_id)
            )
        if f.start is not None:
            stmt = stmt.where(ManufacturingLog.timestamp >= f.start)
        if f.end is not None:
            stmt = stmt.where(ManufacturingLog.timestamp <= f.end)
        stmt = stmt.order_by(ManufacturingLog.timestamp.desc(), ManufacturingLog.created_at.desc()).limit(f.effective_limit)
        return list(self.db.execute(stmt).scalars().all())
