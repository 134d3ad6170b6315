from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field

from app.db.models.manufacturing import ManufacturingLog
from services.manufacturing.service import AvailabilityReport


# ---- Input ----
class ManufactureIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity_produced: int = Field(..., ge=1)
    width: Decimal | None = Field(default=None, ge=0)
    height: Decimal | None = Field(default=None, ge=0)
    manufactured_by: str | None = Field(default=None, max_length=100)
    notes: str | None = Field(default=None, max_length=1000)


# ---- Output ----
def _num(x) -> float | None:
    return float(x) if x is not None else None


def log_out(entry: ManufacturingLog) -> dict:
    return {
        "id": entry.id,
        "product": {"id": entry.product.id, "name": entry.product.name, "sku": entry.product.sku},
        "quantity_produced": entry.quantity_produced,
        "manufactured_by": entry.manufactured_by,
        "notes": entry.notes,
        "width": _num(entry.width),
        "height": _num(entry.height),
        "timestamp": entry.timestamp.isoformat() if entry.timestamp else None,
        "inventory_deductions": [
            {
                "inventory_item": {
                    "id": d.inventory_item.id,
                    "name": d.inventory_item.name,
                    "sku": d.inventory_item.sku,
                    "unit": d.inventory_item.unit,
                },
                "quantity_deducted": float(d.quantity_deducted),
                "stock_before": float(d.stock_before),
                "stock_after": float(d.stock_after),
            }
            for d in entry.deductions
        ],
    }


def availability_out(a: AvailabilityReport) -> dict:
    lines = [
        {
            "inventory_item_id": ln.inventory_item_id,
            "name": ln.name,
            "sku": ln.sku,
            "unit": ln.unit,
            "required_per_unit": float(ln.required_per_unit),
            "total_required": float(ln.total_required),
            "available": float(ln.available),
            "sufficient": ln.sufficient,
            "shortage": float(ln.shortage),
        }
        for ln in a.report.lines
    ]
    return {
        "product_id": a.product_id,
        "product_name": a.product_name,
        "product_sku": a.product_sku,
        "quantity_to_manufacture": a.quantity,
        "width": float(a.dimensions.width),
        "height": float(a.dimensions.height),
        "conditional_rule_id": a.rule_id,
        "can_manufacture": a.can_manufacture,
        "stock_check": lines,
        "insufficient_items": [ln for ln in lines if not ln["sufficient"]],
    }

