"""
Manufacturing runs end to end: resolve, check, deduct, count, log. All or nothing.
"""
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.errors import ConcurrencyConflictError, InsufficientStockError, NotFoundError, ValidationError
from app.db.models.inventory import InventoryItem
from app.db.models.manufacturing import AppendOnlyViolation, ManufacturingDeduction, ManufacturingLog
from app.db.models.product import Product
from app.events.bus import pending
from services.manufacturing.logs import ManufacturingLogBook
from services.manufacturing.service import ManufacturingService


def _log_count(session_factory):
    with session_factory() as db:
        return len(db.execute(select(ManufacturingLog)).scalars().all())


WIDE_RULE = {
    "condition_type": "width",
    "operator": "greater_than",
    "width_threshold": 10,
}


# ══════════════════════════════════════════════════════════════
# SUCCESSFUL RUNS
# ══════════════════════════════════════════════════════════════

def test_default_bom_run_deducts_counts_and_logs(service, create_item, create_product, stock_of, product_of):
    x = create_item(name="Aluminium profile", stock=20)
    p = create_product([(x, 2)])

    entry = service.manufacture(p, 5, manufactured_by="bob", notes="first batch")

    assert stock_of(x) == Decimal("10")
    assert product_of(p).total_manufactured == 5

    assert entry.product_id == p
    assert entry.product.id == p
    assert entry.quantity_produced == 5
    assert entry.manufactured_by == "bob"
    assert entry.notes == "first batch"
    assert entry.width is None and entry.height is None
    assert entry.timestamp is not None

    [d] = entry.deductions
    assert d.inventory_item_id == x
    assert d.inventory_item.name == "Aluminium profile"
    assert d.quantity_deducted == Decimal("10")
    assert d.stock_before == Decimal("20")
    assert d.stock_after == Decimal("10")


def test_deductions_follow_bom_order_and_balance(service, create_item, create_product, stock_of):
    a = create_item(stock=100)
    b = create_item(stock="7.5")
    p = create_product([(a, 3), (b, "0.5")])

    entry = service.manufacture(p, 4)

    assert [d.inventory_item_id for d in entry.deductions] == [a, b]
    for d in entry.deductions:
        assert d.quantity_deducted > 0
        assert d.stock_before - d.quantity_deducted == d.stock_after
        assert d.stock_after >= 0
    assert stock_of(a) == Decimal("88")
    assert stock_of(b) == Decimal("5.5")


def test_counter_accumulates_over_runs(service, create_item, create_product, product_of):
    x = create_item(stock=100)
    p = create_product([(x, 1)])

    service.manufacture(p, 3)
    service.manufacture(p, 4)

    assert product_of(p).total_manufactured == 7


def test_conditional_bom_is_used_and_dimensions_logged(service, create_item, create_product, stock_of):
    x = create_item(stock=20)
    y = create_item(stock=20)
    p = create_product([(x, 2)], rules=[dict(WIDE_RULE, components=[(y, 1)])])

    entry = service.manufacture(p, 3, width=15)

    assert stock_of(x) == Decimal("20")
    assert stock_of(y) == Decimal("17")
    assert entry.width == Decimal("15")
    assert entry.height is None
    assert [d.inventory_item_id for d in entry.deductions] == [y]


def test_narrow_run_uses_default_bom(service, create_item, create_product, stock_of):
    x = create_item(stock=20)
    y = create_item(stock=20)
    p = create_product([(x, 2)], rules=[dict(WIDE_RULE, components=[(y, 1)])])

    service.manufacture(p, 3, width=8, height=4)

    assert stock_of(x) == Decimal("14")
    assert stock_of(y) == Decimal("20")


def test_success_publishes_outbox_event(service, session_factory, create_item, create_product):
    x = create_item(stock=10)
    p = create_product([(x, 2)])

    entry = service.manufacture(p, 2)

    with session_factory() as db:
        [evt] = pending(db, topic="manufacturing.run.completed")
    assert evt.payload["log_id"] == entry.id
    assert evt.payload["product_id"] == p
    assert evt.payload["quantity_produced"] == 2
    [moved] = evt.payload["deductions"]
    assert moved["inventory_item_id"] == x
    assert Decimal(moved["quantity"]) == Decimal("4")


# ══════════════════════════════════════════════════════════════
# AVAILABILITY CHECK
# ══════════════════════════════════════════════════════════════

def test_check_availability_reports_without_mutating(service, create_item, create_product, stock_of):
    x = create_item(name="Glass pane", stock=5, unit="m2")
    p = create_product([(x, 2)], name="Window", sku="WIN-1")

    report = service.check_availability(p, 5)

    assert report.product_name == "Window"
    assert report.product_sku == "WIN-1"
    assert report.quantity == 5
    assert report.rule_id is None
    assert not report.can_manufacture
    [line] = report.report.lines
    assert line.unit == "m2"
    assert line.total_required == Decimal("10")
    assert line.shortage == Decimal("5")
    assert stock_of(x) == Decimal("5")


def test_check_availability_applies_conditional_rule(service, create_item, create_product):
    x = create_item(stock=0)
    y = create_item(stock=3)
    p = create_product([(x, 2)], rules=[dict(WIDE_RULE, components=[(y, 1)])])

    report = service.check_availability(p, 3, width=15)

    assert report.rule_id is not None
    assert [ln.inventory_item_id for ln in report.report.lines] == [y]
    assert report.can_manufacture


def test_check_agrees_with_manufacture(service, create_item, create_product):
    x = create_item(stock=9)
    p = create_product([(x, 3)])

    assert service.check_availability(p, 3).can_manufacture
    assert not service.check_availability(p, 4).can_manufacture

    with pytest.raises(InsufficientStockError):
        service.manufacture(p, 4)
    service.manufacture(p, 3)


def test_check_unknown_product(service):
    with pytest.raises(NotFoundError):
        service.check_availability("missing", 1)


def test_check_and_manufacture_agree_on_fractional_stock(service, create_item, create_product, stock_of):
    x = create_item(stock="0.3")
    p = create_product([(x, "0.1")])

    for _ in range(3):
        assert service.check_availability(p, 1).can_manufacture
        service.manufacture(p, 1)

    assert stock_of(x) == Decimal("0")
    report = service.check_availability(p, 1)
    assert not report.can_manufacture
    assert report.report.lines[0].shortage == Decimal("0.1")
    with pytest.raises(InsufficientStockError):
        service.manufacture(p, 1)


def test_fractional_run_logs_exact_deductions(service, create_item, create_product, stock_of):
    x = create_item(stock="2.5")
    p = create_product([(x, "0.25")])

    entry = service.manufacture(p, 10)

    [d] = entry.deductions
    assert d.quantity_deducted == Decimal("2.5")
    assert d.stock_before == Decimal("2.5")
    assert d.stock_after == Decimal("0")
    assert stock_of(x) == Decimal("0")


# ══════════════════════════════════════════════════════════════
# REFUSALS AND ROLLBACK
# ══════════════════════════════════════════════════════════════

def test_insufficient_stock_changes_nothing(service, session_factory, create_item, create_product, stock_of, product_of):
    x = create_item(name="Seal", stock=5)
    p = create_product([(x, 2)])

    with pytest.raises(InsufficientStockError) as exc:
        service.manufacture(p, 5)

    [short] = exc.value.shortages
    assert short["inventory_item_id"] == x
    assert short["name"] == "Seal"
    assert short["required"] == Decimal("10")
    assert short["available"] == Decimal("5")
    assert short["shortage"] == Decimal("5")
    assert exc.value.to_dict()["insufficient_items"][0]["shortage"] == 5.0

    assert stock_of(x) == Decimal("5")
    assert product_of(p).total_manufactured == 0
    assert _log_count(session_factory) == 0


def test_all_short_items_are_reported(service, create_item, create_product):
    a = create_item(stock=1)
    b = create_item(stock=100)
    c = create_item(stock=0)
    p = create_product([(a, 1), (b, 1), (c, 1)])

    with pytest.raises(InsufficientStockError) as exc:
        service.manufacture(p, 2)

    assert [s["inventory_item_id"] for s in exc.value.shortages] == [a, c]


def test_unknown_product(service):
    with pytest.raises(NotFoundError):
        service.manufacture("missing", 1)


@pytest.mark.parametrize("qty", [0, -3, 1.5, True, "2", None])
def test_quantity_must_be_positive_integer(service, create_item, create_product, qty):
    p = create_product([(create_item(stock=10), 1)])
    with pytest.raises(ValidationError):
        service.manufacture(p, qty)


@pytest.mark.parametrize("dims", [
    {"width": -1},
    {"height": Decimal("-0.1")},
    {"width": float("nan")},
    {"width": float("inf")},
    {"height": Decimal("Infinity")},
    {"width": Decimal("1e12")},
    {"width": "10"},
])
def test_dimensions_must_be_non_negative_numbers(service, create_item, create_product, dims):
    p = create_product([(create_item(stock=10), 1)])
    with pytest.raises(ValidationError):
        service.manufacture(p, 1, **dims)


def test_text_fields_are_length_limited(service, create_item, create_product):
    p = create_product([(create_item(stock=10), 1)])
    with pytest.raises(ValidationError):
        service.manufacture(p, 1, manufactured_by="x" * 101)
    with pytest.raises(ValidationError):
        service.manufacture(p, 1, notes="x" * 1001)


def test_blank_text_is_stored_as_null(service, create_item, create_product):
    p = create_product([(create_item(stock=10), 1)])
    entry = service.manufacture(p, 1, manufactured_by="  ", notes="")
    assert entry.manufactured_by is None
    assert entry.notes is None


def test_empty_bom_is_rejected(service, create_product, session_factory):
    p = create_product([])
    with pytest.raises(ValidationError):
        service.manufacture(p, 1)
    assert _log_count(session_factory) == 0


def test_second_line_failure_rolls_back_first(service, session_factory, create_item, create_product, stock_of, product_of):
    # the same item listed twice passes the per-line check but not the ledger
    x = create_item(stock=10)
    p = create_product([(x, 3), (x, 3)])

    with pytest.raises(InsufficientStockError):
        service.manufacture(p, 2)

    assert stock_of(x) == Decimal("10")
    assert product_of(p).total_manufactured == 0
    assert _log_count(session_factory) == 0


def test_log_failure_rolls_back_deductions(service, session_factory, create_item, create_product, stock_of, product_of, monkeypatch):
    x = create_item(stock=10)
    p = create_product([(x, 2)])

    def boom(self, **kwargs):
        raise RuntimeError("log store unavailable")

    monkeypatch.setattr(ManufacturingLogBook, "append", boom)

    with pytest.raises(RuntimeError):
        service.manufacture(p, 2)

    assert stock_of(x) == Decimal("10")
    assert product_of(p).total_manufactured == 0
    with session_factory() as db:
        assert pending(db) == []


# ══════════════════════════════════════════════════════════════
# CONFLICT RETRY
# ══════════════════════════════════════════════════════════════

def test_conflict_is_retried(session_factory, create_item, create_product, stock_of, monkeypatch):
    x = create_item(stock=10)
    p = create_product([(x, 2)])
    svc = ManufacturingService(session_factory, conflict_retries=2)
    real_run = ManufacturingService._run
    calls = {"n": 0}

    def flaky(self, *args):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConcurrencyConflictError("serialization failure")
        return real_run(self, *args)

    monkeypatch.setattr(ManufacturingService, "_run", flaky)

    svc.manufacture(p, 1)

    assert calls["n"] == 2
    assert stock_of(x) == Decimal("8")


def test_conflict_retries_are_bounded(session_factory, create_item, create_product, monkeypatch):
    p = create_product([(create_item(stock=10), 2)])
    svc = ManufacturingService(session_factory, conflict_retries=2)
    calls = {"n": 0}

    def always_conflict(self, *args):
        calls["n"] += 1
        raise ConcurrencyConflictError("serialization failure")

    monkeypatch.setattr(ManufacturingService, "_run", always_conflict)

    with pytest.raises(ConcurrencyConflictError):
        svc.manufacture(p, 1)
    assert calls["n"] == 3


def test_business_failures_are_not_retried(session_factory, create_item, create_product, monkeypatch):
    p = create_product([(create_item(stock=1), 2)])
    svc = ManufacturingService(session_factory, conflict_retries=5)
    real_run = ManufacturingService._run
    calls = {"n": 0}

    def counting(self, *args):
        calls["n"] += 1
        return real_run(self, *args)

    monkeypatch.setattr(ManufacturingService, "_run", counting)

    with pytest.raises(InsufficientStockError):
        svc.manufacture(p, 1)
    assert calls["n"] == 1


# ══════════════════════════════════════════════════════════════
# LOG IMMUTABILITY AND REFERENTIAL INTEGRITY
# ══════════════════════════════════════════════════════════════

def test_log_entries_cannot_be_modified(service, session_factory, create_item, create_product):
    p = create_product([(create_item(stock=10), 1)])
    entry = service.manufacture(p, 1, notes="original")

    with session_factory() as db:
        row = db.get(ManufacturingLog, entry.id)
        row.notes = "rewritten"
        with pytest.raises(AppendOnlyViolation):
            db.flush()

    with session_factory() as db:
        assert db.get(ManufacturingLog, entry.id).notes == "original"


def test_log_entries_cannot_be_deleted(service, session_factory, create_item, create_product):
    p = create_product([(create_item(stock=10), 1)])
    entry = service.manufacture(p, 1)

    with session_factory() as db:
        db.delete(db.get(ManufacturingLog, entry.id))
        with pytest.raises(AppendOnlyViolation):
            db.flush()


def test_deductions_cannot_be_modified(service, session_factory, create_item, create_product):
    p = create_product([(create_item(stock=10), 1)])
    entry = service.manufacture(p, 1)

    with session_factory() as db:
        d = db.get(ManufacturingDeduction, entry.deductions[0].id)
        d.stock_after = Decimal("999")
        with pytest.raises(AppendOnlyViolation):
            db.flush()


def test_item_in_a_bom_cannot_be_deleted(session_factory, create_item, create_product):
    x = create_item(stock=1)
    create_product([(x, 1)])

    with session_factory() as db:
        db.delete(db.get(InventoryItem, x))
        with pytest.raises(IntegrityError):
            db.commit()


def test_product_with_history_cannot_be_deleted(service, session_factory, create_item, create_product):
    p = create_product([(create_item(stock=10), 1)])
    service.manufacture(p, 1)

    with session_factory() as db:
        db.delete(db.get(Product, p))
        with pytest.raises(IntegrityError):
            db.commit()
