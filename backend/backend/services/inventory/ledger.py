from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from sqlalchemy import func, select, update

from app.core.audit import audit
from app.core.errors import InsufficientStockError, NotFoundError, ValidationError
from app.db.models.inventory import InventoryItem
from app.db.uow import UnitOfWork

logger = logging.getLogger(__name__)


# matches the Numeric(18, 6) stock columns
STOCK_SCALE = 6
_QUANTUM = Decimal(1).scaleb(-STOCK_SCALE)


def _dec(x) -> Decimal:
    return Decimal(str(x))


def _qty(x) -> Decimal:
    return _dec(x).quantize(_QUANTUM)


def _scaled(expr):
    # SQLite computes in REAL, so guard and stored value are rounded to column scale
    return func.round(expr, STOCK_SCALE, type_=InventoryItem.current_stock.type)


@dataclass(frozen=True)
class StockMovement:
    inventory_item_id: str
    quantity: Decimal  # signed: negative for deductions
    stock_before: Decimal
    stock_after: Decimal


class StockLedger:
    """Sole writer of InventoryItem.current_stock.

    Every mutation is one conditional UPDATE, so the non-negative check and
    the write cannot be separated by a concurrent transaction.
    """

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    @property
    def db(self):
        return self.uow.session

    def snapshot(self, item_ids: Iterable[str], *, lock: bool = True) -> dict[str, InventoryItem]:
        """Load items inside the current transaction, locking rows where supported.

        Rows are locked in id order so overlapping runs cannot deadlock on each other.
        """
        ids = sorted(set(item_ids))
        if not ids:
            return {}
        stmt = (
            select(InventoryItem)
            .where(InventoryItem.id.in_(ids))
            .order_by(InventoryItem.id)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        rows = self.db.execute(stmt).scalars().all()
        found = {r.id: r for r in rows}
        for item_id in ids:
            if item_id not in found:
                raise NotFoundError("Inventory item", item_id)
        return found

    def deduct(self, item_id: str, quantity) -> StockMovement:
        qty = _qty(quantity)
        if qty <= 0:
            raise ValidationError("Deduction quantity must be greater than 0")
        after = self._apply(item_id, -qty)
        if after is None:
            self._raise_for_missing_or_short(item_id, qty)
        return StockMovement(inventory_item_id=item_id, quantity=-qty, stock_before=after + qty, stock_after=after)

    def adjust(self, item_id: str, delta, *, actor: str = "system", reason: str | None = None) -> StockMovement:
        """Manual correction path. Positive delta receives stock, negative removes it."""
        d = _qty(delta)
        if d == 0:
            raise ValidationError("Adjustment cannot be zero")
        after = self._apply(item_id, d)
        if after is None:
            self._raise_for_missing_or_short(item_id, -d)
        movement = StockMovement(inventory_item_id=item_id, quantity=d, stock_before=after - d, stock_after=after)
        audit(
            self.db,
            actor=actor,
            action="inventory.stock.adjusted",
            entity_type="inventory_item",
            entity_id=item_id,
            payload={
                "adjustment": d,
                "stock_before": movement.stock_before,
                "stock_after": movement.stock_after,
                "reason": reason,
            },
        )
        logger.info("stock adjusted item=%s delta=%s after=%s actor=%s", item_id, d, after, actor)
        return movement

    def _apply(self, item_id: str, delta: Decimal) -> Decimal | None:
        # decrement-if-result-non-negative; None when no row qualified
        stmt = (
            update(InventoryItem)
            .where(InventoryItem.id == item_id)
            .where(_scaled(InventoryItem.current_stock + delta) >= 0)
            .values(current_stock=_scaled(InventoryItem.current_stock + delta))
            .returning(InventoryItem.current_stock)
            .execution_options(synchronize_session=False)
        )
        after = self.db.execute(stmt).scalar_one_or_none()
        if after is None:
            return None
        # keep any already-loaded instance consistent with the row
        loaded = self.db.identity_map.get(self.db.identity_key(InventoryItem, item_id))
        if loaded is not None:
            self.db.expire(loaded, ["current_stock"])
        return _dec(after)

    def _raise_for_missing_or_short(self, item_id: str, required: Decimal) -> None:
        row = self.db.execute(
            select(InventoryItem.name, InventoryItem.current_stock).where(InventoryItem.id == item_id)
        ).first()
        if row is None:
            raise NotFoundError("Inventory item", item_id)
        available = _dec(row.current_stock)
        logger.warning("ledger refused to overdraw item=%s required=%s available=%s", item_id, required, available)
        raise InsufficientStockError(
            [
                {
                    "inventory_item_id": item_id,
                    "name": row.name,
                    "required": required,
                    "available": available,
                    "shortage": max(Decimal("0"), required - available),
                }
            ],
            message="Stock change would result in negative stock",
        )
