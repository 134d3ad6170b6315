from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Sequence

from app.db.models.inventory import InventoryItem
from services.manufacturing.bom import BOMRequirement

ZERO = Decimal("0")


@dataclass(frozen=True)
class SufficiencyLine:
    inventory_item_id: str
    name: str
    sku: str
    unit: str
    required_per_unit: Decimal
    total_required: Decimal
    available: Decimal
    sufficient: bool
    shortage: Decimal

    def as_shortage(self) -> dict:
        return {
            "inventory_item_id": self.inventory_item_id,
            "name": self.name,
            "required": self.total_required,
            "available": self.available,
            "shortage": self.shortage,
        }


@dataclass(frozen=True)
class SufficiencyReport:
    multiplier: int
    lines: list[SufficiencyLine] = field(default_factory=list)

    @property
    def all_sufficient(self) -> bool:
        return all(ln.sufficient for ln in self.lines)

    @property
    def insufficient_lines(self) -> list[SufficiencyLine]:
        return [ln for ln in self.lines if not ln.sufficient]


def check_sufficiency(
    requirements: Sequence[BOMRequirement],
    multiplier: int,
    stock: Mapping[str, InventoryItem],
) -> SufficiencyReport:
    """Compare required against available quantities. Read-only.

    ``stock`` must hold every item referenced by ``requirements``.
    """
    lines: list[SufficiencyLine] = []
    for req in requirements:
        item = stock[req.inventory_item_id]
        total = req.quantity_required * multiplier
        available = Decimal(str(item.current_stock))
        sufficient = available >= total
        lines.append(
            SufficiencyLine(
                inventory_item_id=req.inventory_item_id,
                name=item.name,
                sku=item.sku,
                unit=item.unit,
                required_per_unit=req.quantity_required,
                total_required=total,
                available=available,
                sufficient=sufficient,
                shortage=max(ZERO, total - available),
            )
        )
    return SufficiencyReport(multiplier=multiplier, lines=lines)
