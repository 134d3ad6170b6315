"""Bill-of-materials resolution.

Which BOM applies to a run depends on the product's conditional rules and
the physical dimensions of what is being made. Rules are evaluated in
declaration order; the first one that matches replaces the default BOM
wholesale. Nothing here touches the database beyond attributes that are
already loaded (or lazily loadable) on the product.
"""

from __future__ import annotations

import operator as op
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable

from app.db.models.product import ComparisonOperator, ConditionalRule, ConditionType, Product

ZERO = Decimal("0")

_COMPARATORS: dict[ComparisonOperator, Callable[[Decimal, Decimal], bool]] = {
    ComparisonOperator.GREATER_THAN: op.gt,
    ComparisonOperator.LESS_THAN: op.lt,
    ComparisonOperator.EQUAL_TO: op.eq,
}


def _dec(x) -> Decimal:
    return Decimal(str(x))


@dataclass(frozen=True)
class Dimensions:
    width: Decimal = ZERO
    height: Decimal = ZERO

    @classmethod
    def of(cls, width=None, height=None) -> "Dimensions":
        """Build from optional inputs; missing values count as 0."""
        return cls(
            width=_dec(width) if width is not None else ZERO,
            height=_dec(height) if height is not None else ZERO,
        )

    @property
    def is_empty(self) -> bool:
        return self.width == ZERO and self.height == ZERO


@dataclass(frozen=True)
class BOMRequirement:
    inventory_item_id: str
    quantity_required: Decimal  # per unit produced


def _compare(value: Decimal, threshold, operator: ComparisonOperator) -> bool:
    if threshold is None:
        return False
    return _COMPARATORS[operator](value, _dec(threshold))


def rule_matches(rule: ConditionalRule, dimensions: Dimensions) -> bool:
    """A rule missing the threshold it needs never matches."""
    ctype = ConditionType(rule.condition_type)
    operator = ComparisonOperator(rule.operator)
    if ctype is ConditionType.WIDTH:
        return _compare(dimensions.width, rule.width_threshold, operator)
    if ctype is ConditionType.HEIGHT:
        return _compare(dimensions.height, rule.height_threshold, operator)
    # BOTH: same operator applied to each dimension against its own threshold
    return (
        _compare(dimensions.width, rule.width_threshold, operator)
        and _compare(dimensions.height, rule.height_threshold, operator)
    )


def matching_rule(product: Product, dimensions: Dimensions | None = None) -> ConditionalRule | None:
    dims = dimensions or Dimensions()
    if not product.has_conditional_utilization or not product.conditional_rules:
        return None
    if dims.is_empty:
        return None
    for rule in product.conditional_rules:
        if rule_matches(rule, dims):
            return rule
    return None


def _requirements(lines: Iterable) -> list[BOMRequirement]:
    return [BOMRequirement(inventory_item_id=ln.inventory_item_id, quantity_required=_dec(ln.quantity_required)) for ln in lines]


def resolve_bom(product: Product, dimensions: Dimensions | None = None) -> list[BOMRequirement]:
    """Effective per-unit BOM for a run of ``product`` at ``dimensions``."""
    rule = matching_rule(product, dimensions)
    if rule is not None:
        return _requirements(rule.components)
    return _requirements(product.components)
