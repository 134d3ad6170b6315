"""
Pytest configuration and shared fixtures for the manufacturing engine tests.
"""
import os

# The module-level engine in app.db.session must not reach for PostgreSQL
os.environ["DATABASE_URL"] = "sqlite://"

from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from app.db.base import Base
from app.db import models  # noqa: F401
from app.db.models.inventory import InventoryItem
from app.db.models.product import (
    ComparisonOperator,
    ConditionalRule,
    ConditionalRuleComponent,
    ConditionType,
    Product,
    ProductComponent,
)
from app.db.session import make_engine
from services.manufacturing.service import ManufacturingService


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so separate sessions see each other's commits."""
    eng = make_engine(f"sqlite:///{tmp_path / 'manufacturing.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


@pytest.fixture
def service(session_factory):
    return ManufacturingService(session_factory)


@pytest.fixture
def create_item(session_factory):
    counter = {"n": 0}

    def _create(name="Steel sheet", stock=0, unit="pcs", reorder_level=0, sku=None):
        counter["n"] += 1
        with session_factory() as db:
            item = InventoryItem(
                name=name,
                sku=sku or f"RM-{counter['n']:04d}",
                unit=unit,
                current_stock=Decimal(str(stock)),
                reorder_level=Decimal(str(reorder_level)),
            )
            db.add(item)
            db.commit()
            return item.id

    return _create


@pytest.fixture
def create_product(session_factory):
    """Create a product.

    ``components`` is a list of (item_id, qty_per_unit). Each rule is a dict with
    condition_type, operator, optional width/height thresholds and components.
    """
    counter = {"n": 0}

    def _create(components, rules=None, name="Window frame", sku=None, conditional=None):
        counter["n"] += 1
        rules = rules or []
        with session_factory() as db:
            product = Product(
                name=name,
                sku=sku or f"FG-{counter['n']:04d}",
                has_conditional_utilization=bool(rules) if conditional is None else conditional,
                total_manufactured=0,
            )
            for item_id, qty in components:
                product.components.append(ProductComponent(inventory_item_id=item_id, quantity_required=Decimal(str(qty))))
            for r in rules:
                rule = ConditionalRule(
                    condition_type=ConditionType(r["condition_type"]),
                    operator=ComparisonOperator(r["operator"]),
                    width_threshold=_opt_dec(r.get("width_threshold")),
                    height_threshold=_opt_dec(r.get("height_threshold")),
                )
                for item_id, qty in r["components"]:
                    rule.components.append(ConditionalRuleComponent(inventory_item_id=item_id, quantity_required=Decimal(str(qty))))
                product.conditional_rules.append(rule)
            db.add(product)
            db.commit()
            return product.id

    return _create


@pytest.fixture
def stock_of(session_factory):
    def _get(item_id):
        with session_factory() as db:
            return db.get(InventoryItem, item_id).current_stock

    return _get


@pytest.fixture
def product_of(session_factory):
    def _get(product_id):
        with session_factory() as db:
            return db.get(Product, product_id)

    return _get


def _opt_dec(x):
    return Decimal(str(x)) if x is not None else None
