"""
MODULE: PRODUCTS
Finished products, their default bill of materials and
dimension-conditional BOM overrides
"""

from __future__ import annotations

import enum
from decimal import Decimal

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, HasUpdatedAt
from app.db.models.inventory import InventoryItem
from sqlalchemy import String, Integer, Numeric, ForeignKey, Enum, Boolean, CheckConstraint, Index
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship


class ConditionType(str, enum.Enum):
    WIDTH = "width"
    HEIGHT = "height"
    BOTH = "both"


class ComparisonOperator(str, enum.Enum):
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EQUAL_TO = "equal_to"


def _enum_values(e):
    return [m.value for m in e]


# ============= PRODUCT =============

class Product(Base, HasId, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "mfg_product"
    __table_args__ = (
        CheckConstraint("total_manufactured >= 0", name="ck_mfg_product_total_non_negative"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    sku: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Conditional rules are only evaluated while this flag is set
    has_conditional_utilization: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Written only by the manufacturing coordinator
    total_manufactured: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    components: Mapped[list["ProductComponent"]] = relationship(
        back_populates="product",
        order_by="ProductComponent.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )
    conditional_rules: Mapped[list["ConditionalRule"]] = relationship(
        back_populates="product",
        order_by="ConditionalRule.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )


class ProductComponent(Base, HasId, HasCreatedAt):
    """Default BOM line: quantity of one inventory item consumed per unit produced."""
    __tablename__ = "mfg_product_component"
    __table_args__ = (
        CheckConstraint("quantity_required > 0", name="ck_mfg_product_component_qty_positive"),
    )

    product_id: Mapped[str] = mapped_column(ForeignKey("mfg_product.id", ondelete="CASCADE"), nullable=False, index=True)
    inventory_item_id: Mapped[str] = mapped_column(ForeignKey("inv_item.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity_required: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    product: Mapped[Product] = relationship(back_populates="components")
    inventory_item: Mapped[InventoryItem] = relationship()

Index("ix_mfg_product_component_order", ProductComponent.product_id, ProductComponent.position)


# ============= CONDITIONAL UTILIZATION =============

class ConditionalRule(Base, HasId, HasCreatedAt):
    """
    Dimension-triggered BOM override.
    When it matches, its components replace the product's default BOM entirely.
    """
    __tablename__ = "mfg_conditional_rule"

    product_id: Mapped[str] = mapped_column(ForeignKey("mfg_product.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    condition_type: Mapped[ConditionType] = mapped_column(
        Enum(ConditionType, name="mfg_condition_type", values_callable=_enum_values),
        nullable=False,
    )
    operator: Mapped[ComparisonOperator] = mapped_column(
        Enum(ComparisonOperator, name="mfg_comparison_operator", values_callable=_enum_values),
        nullable=False,
    )

    width_threshold: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    height_threshold: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)

    product: Mapped[Product] = relationship(back_populates="conditional_rules")
    components: Mapped[list["ConditionalRuleComponent"]] = relationship(
        back_populates="rule",
        order_by="ConditionalRuleComponent.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )

Index("ix_mfg_conditional_rule_order", ConditionalRule.product_id, ConditionalRule.position)


class ConditionalRuleComponent(Base, HasId, HasCreatedAt):
    __tablename__ = "mfg_conditional_rule_component"
    __table_args__ = (
        CheckConstraint("quantity_required > 0", name="ck_mfg_rule_component_qty_positive"),
    )

    rule_id: Mapped[str] = mapped_column(ForeignKey("mfg_conditional_rule.id", ondelete="CASCADE"), nullable=False, index=True)
    inventory_item_id: Mapped[str] = mapped_column(ForeignKey("inv_item.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity_required: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    rule: Mapped[ConditionalRule] = relationship(back_populates="components")
    inventory_item: Mapped[InventoryItem] = relationship()
