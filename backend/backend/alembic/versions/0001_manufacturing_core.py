"""manufacturing core: inventory items, products + BOMs, manufacturing log, audit, outbox

Revision ID: 0001_manufacturing_core
Revises:
Create Date: 2026-10-19T09:00:00.000000Z
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_manufacturing_core"
down_revision = None
branch_labels = None
depends_on = None


condition_type = sa.Enum("width", "height", "both", name="mfg_condition_type")
comparison_operator = sa.Enum("greater_than", "less_than", "equal_to", name="mfg_comparison_operator")


def _id():
    return sa.Column("id", sa.String(length=36), primary_key=True)


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _updated_at():
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade():
    op.create_table(
        "inv_item",
        _id(),
        _created_at(),
        _updated_at(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("sku", sa.String(length=50), nullable=False),
        sa.Column("unit", sa.String(length=20), nullable=False),
        sa.Column("current_stock", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("reorder_level", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.CheckConstraint("current_stock >= 0", name="ck_inv_item_stock_non_negative"),
        sa.CheckConstraint("reorder_level >= 0", name="ck_inv_item_reorder_non_negative"),
    )
    op.create_index("ix_inv_item_sku", "inv_item", ["sku"], unique=True)
    op.create_index("ix_inv_item_current_stock", "inv_item", ["current_stock"], unique=False)

    op.create_table(
        "mfg_product",
        _id(),
        _created_at(),
        _updated_at(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("sku", sa.String(length=50), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("has_conditional_utilization", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("total_manufactured", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("total_manufactured >= 0", name="ck_mfg_product_total_non_negative"),
    )
    op.create_index("ix_mfg_product_sku", "mfg_product", ["sku"], unique=True)

    op.create_table(
        "mfg_product_component",
        _id(),
        _created_at(),
        sa.Column("product_id", sa.String(length=36), sa.ForeignKey("mfg_product.id", ondelete="CASCADE"), nullable=False),
        sa.Column("inventory_item_id", sa.String(length=36), sa.ForeignKey("inv_item.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity_required", sa.Numeric(18, 6), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("quantity_required > 0", name="ck_mfg_product_component_qty_positive"),
    )
    op.create_index("ix_mfg_product_component_product_id", "mfg_product_component", ["product_id"])
    op.create_index("ix_mfg_product_component_inventory_item_id", "mfg_product_component", ["inventory_item_id"])
    op.create_index("ix_mfg_product_component_order", "mfg_product_component", ["product_id", "position"])

    op.create_table(
        "mfg_conditional_rule",
        _id(),
        _created_at(),
        sa.Column("product_id", sa.String(length=36), sa.ForeignKey("mfg_product.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("condition_type", condition_type, nullable=False),
        sa.Column("operator", comparison_operator, nullable=False),
        sa.Column("width_threshold", sa.Numeric(18, 6), nullable=True),
        sa.Column("height_threshold", sa.Numeric(18, 6), nullable=True),
    )
    op.create_index("ix_mfg_conditional_rule_product_id", "mfg_conditional_rule", ["product_id"])
    op.create_index("ix_mfg_conditional_rule_order", "mfg_conditional_rule", ["product_id", "position"])

    op.create_table(
        "mfg_conditional_rule_component",
        _id(),
        _created_at(),
        sa.Column("rule_id", sa.String(length=36), sa.ForeignKey("mfg_conditional_rule.id", ondelete="CASCADE"), nullable=False),
        sa.Column("inventory_item_id", sa.String(length=36), sa.ForeignKey("inv_item.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity_required", sa.Numeric(18, 6), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("quantity_required > 0", name="ck_mfg_rule_component_qty_positive"),
    )
    op.create_index("ix_mfg_conditional_rule_component_rule_id", "mfg_conditional_rule_component", ["rule_id"])
    op.create_index("ix_mfg_conditional_rule_component_inventory_item_id", "mfg_conditional_rule_component", ["inventory_item_id"])

    op.create_table(
        "mfg_manufacturing_log",
        _id(),
        _created_at(),
        sa.Column("product_id", sa.String(length=36), sa.ForeignKey("mfg_product.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity_produced", sa.Integer(), nullable=False),
        sa.Column("manufactured_by", sa.String(length=100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("width", sa.Numeric(18, 6), nullable=True),
        sa.Column("height", sa.Numeric(18, 6), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity_produced >= 1", name="ck_mfg_log_quantity_positive"),
    )
    op.create_index("ix_mfg_manufacturing_log_product_id", "mfg_manufacturing_log", ["product_id"])
    op.create_index("ix_mfg_manufacturing_log_timestamp", "mfg_manufacturing_log", ["timestamp"])
    op.create_index("ix_mfg_log_product_time", "mfg_manufacturing_log", ["product_id", "timestamp"])

    op.create_table(
        "mfg_manufacturing_deduction",
        _id(),
        sa.Column("log_id", sa.String(length=36), sa.ForeignKey("mfg_manufacturing_log.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("inventory_item_id", sa.String(length=36), sa.ForeignKey("inv_item.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_deducted", sa.Numeric(18, 6), nullable=False),
        sa.Column("stock_before", sa.Numeric(18, 6), nullable=False),
        sa.Column("stock_after", sa.Numeric(18, 6), nullable=False),
    )
    op.create_index("ix_mfg_manufacturing_deduction_log_id", "mfg_manufacturing_deduction", ["log_id"])
    op.create_index("ix_mfg_manufacturing_deduction_inventory_item_id", "mfg_manufacturing_deduction", ["inventory_item_id"])

    op.create_table(
        "sys_audit_log",
        _id(),
        _created_at(),
        sa.Column("actor", sa.String(length=128), nullable=False),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("payload", sa.JSON(), nullable=False),
    )
    op.create_index("ix_sys_audit_log_actor", "sys_audit_log", ["actor"])
    op.create_index("ix_sys_audit_log_action", "sys_audit_log", ["action"])
    op.create_index("ix_sys_audit_log_entity_type", "sys_audit_log", ["entity_type"])
    op.create_index("ix_sys_audit_log_entity_id", "sys_audit_log", ["entity_id"])
    op.create_index("ix_audit_entity_time", "sys_audit_log", ["entity_type", "entity_id", "created_at"])

    op.create_table(
        "outbox_event",
        _id(),
        _created_at(),
        sa.Column("topic", sa.String(length=128), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("delivered", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_outbox_event_topic", "outbox_event", ["topic"])
    op.create_index("ix_outbox_topic_created", "outbox_event", ["topic", "created_at"])
    op.create_index("ix_outbox_delivery", "outbox_event", ["delivered", "created_at"])


def downgrade():
    op.drop_table("outbox_event")
    op.drop_table("sys_audit_log")
    op.drop_table("mfg_manufacturing_deduction")
    op.drop_table("mfg_manufacturing_log")
    op.drop_table("mfg_conditional_rule_component")
    op.drop_table("mfg_conditional_rule")
    op.drop_table("mfg_product_component")
    op.drop_table("mfg_product")
    op.drop_table("inv_item")
    comparison_operator.drop(op.get_bind(), checkfirst=True)
    condition_type.drop(op.get_bind(), checkfirst=True)
