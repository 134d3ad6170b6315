from __future__ import annotations
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, sessionmaker
from app.db.session import get_db, get_session_factory
from app.db.models.inventory import InventoryItem
from app.db.uow import UnitOfWork
from services.inventory.ledger import StockLedger

router = APIRouter(prefix="/inventory", tags=["inventory"])


class StockAdjustmentIn(BaseModel):
    adjustment: Decimal
    reason: str | None = Field(default=None, max_length=500)
    actor: str | None = Field(default=None, max_length=128)


def _item_out(i: InventoryItem) -> dict:
    return {
        "id": i.id,
        "name": i.name,
        "sku": i.sku,
        "unit": i.unit,
        "current_stock": float(i.current_stock),
        "reorder_level": float(i.reorder_level),
        "is_low_stock": i.is_low_stock,
    }


@router.get("/{item_id}")
def get_item(item_id: str, db: Session = Depends(get_db)):
    i = db.query(InventoryItem).filter(InventoryItem.id == item_id).first()
    if not i:
        raise HTTPException(404, "Inventory item not found")
    return {"success": True, "data": _item_out(i)}


@router.patch("/{item_id}/stock")
def adjust_stock(item_id: str, payload: StockAdjustmentIn, session_factory: sessionmaker = Depends(get_session_factory)):
    """Manual stock correction. Refused if the result would be negative."""
    with UnitOfWork(session_factory) as uow:
        movement = StockLedger(uow).adjust(
            item_id,
            payload.adjustment,
            actor=payload.actor or "anonymous",
            reason=payload.reason,
        )
        uow.commit()
        item = uow.session.get(InventoryItem, item_id, populate_existing=True)
        return {
            "success": True,
            "data": _item_out(item),
            "adjustment": {
                "quantity": float(movement.quantity),
                "stock_before": float(movement.stock_before),
                "stock_after": float(movement.stock_after),
            },
        }
