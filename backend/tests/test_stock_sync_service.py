"""
POS -> catalog stock reconciliation.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from storefront.clients import PosUnavailableError
from storefront.extensions import db
from storefront.models import Product, ProductVariant
from storefront.services import stock_sync_service
from storefront.services.concurrency import BatchWriter, describe_backend_error
from storefront.services.stock_sync_service import stock_status_for


@pytest.mark.parametrize("quantity,expected", [
    (-2, "OUT"),
    (0, "OUT"),
    (1, "LOW"),
    (4, "LOW"),
    (5, "IN_STOCK"),
    (120, "IN_STOCK"),
])
def test_stock_status_thresholds(app, quantity, expected):
    assert stock_status_for(quantity) == expected


def test_sync_updates_stock_only(db_session, make_product, pos):
    product = make_product(
        "KAY-1",
        name="Admin Name",
        description="Admin copy",
        web_price=Decimal("999.00"),
        images=["https://cdn/kayak.jpg"],
        stock_quantity=0,
        stock_status="OUT",
    )
    pos.add_item("item-1", "POS Name", [("var-1", "kay-1")], stock={"var-1": 3})

    stats = stock_sync_service.sync_stock_from_pos(pos)

    assert stats["success"] is True
    assert stats["updated"] == 1
    product = db_session.get(Product, product.id)
    assert product.stock_status == "LOW"
    assert product.stock_quantity == 3
    assert product.loyverse_variant_id == "var-1"
    assert product.loyverse_item_id == "item-1"
    assert product.last_stock_sync is not None
    assert product.name == "Admin Name"
    assert product.description == "Admin copy"
    assert product.web_price == Decimal("999.00")
    assert product.images == ["https://cdn/kayak.jpg"]


def test_sync_sums_stock_across_stores(db_session, make_product, pos):
    product = make_product("KAY-1", stock_quantity=0)
    pos.add_item("item-1", "Kayak", [("var-1", "KAY-1")], stock={"var-1": 2})
    pos.levels.append(pos.levels[0].model_copy(update={"store_id": "store-2", "in_stock": 4}))

    stock_sync_service.sync_stock_from_pos(pos)

    product = db_session.get(Product, product.id)
    assert product.stock_quantity == 6
    assert product.stock_status == "IN_STOCK"


def test_sync_preserves_admin_pinned_status(db_session, make_product, pos):
    product = make_product("OLD-1", stock_status="ARCHIVED")
    pos.add_item("item-1", "Old", [("var-1", "OLD-1")], stock={"var-1": 50})

    stock_sync_service.sync_stock_from_pos(pos)

    product = db_session.get(Product, product.id)
    assert product.stock_status == "ARCHIVED"
    assert product.stock_quantity == 50


def test_unknown_sku_becomes_draft(db_session, pos):
    pos.add_item("item-9", "Dry Bag", [("var-9a", "BAG-20L"), ("var-9b", "BAG-30L")], stock={"var-9a": 7})
    pos.items[0].variants[0].option1_value = "20L"

    stats = stock_sync_service.sync_stock_from_pos(pos)

    assert stats["created"] == 2
    draft = db_session.query(Product).filter_by(sku="BAG-20L").one()
    assert draft.is_draft is True
    assert draft.name == "Dry Bag - 20L"
    assert draft.web_price == Decimal("0")
    assert draft.category_slug == "uncategorized"
    assert draft.description == ""
    assert draft.stock_status == "IN_STOCK"
    other = db_session.query(Product).filter_by(sku="BAG-30L").one()
    assert other.stock_status == "OUT"


def test_blank_sku_is_skipped(db_session, pos):
    pos.add_item("item-1", "No SKU", [("var-1", "   ")], stock={"var-1": 3})
    stats = stock_sync_service.sync_stock_from_pos(pos)
    assert stats["skipped"] == 1
    assert db_session.query(Product).count() == 0


def test_variant_sync_rolls_up_to_parent(db_session, make_product, pos):
    product = make_product(
        "PFD-1",
        stock_quantity=0,
        variants=[
            {"sku": "PFD-1-S", "options": {"size": "S"}, "stock_quantity": 0},
            {"sku": "PFD-1-M", "options": {"size": "M"}, "stock_quantity": 0},
        ],
    )
    pos.add_item("item-p", "Vest", [("var-s", "PFD-1-S"), ("var-m", "PFD-1-M")], stock={"var-s": 2, "var-m": 8})

    stock_sync_service.sync_stock_from_pos(pos)

    product = db_session.get(Product, product.id)
    assert product.stock_quantity == 10
    assert product.stock_status == "IN_STOCK"
    small = db_session.query(ProductVariant).filter_by(sku="PFD-1-S").one()
    assert (small.stock_quantity, small.stock_status, small.loyverse_variant_id) == (2, "LOW", "var-s")


def test_sync_commits_in_batches(db_session, pos):
    for n in range(5):
        pos.add_item(f"item-{n}", f"Item {n}", [(f"var-{n}", f"SKU-{n}")], stock={f"var-{n}": 1})

    stats = stock_sync_service.sync_stock_from_pos(pos, batch_writer=BatchWriter(limit=3, margin=1))

    assert stats["created"] == 5
    assert stats["batches"] == 3
    assert db_session.query(Product).count() == 5


def test_failed_batch_keeps_earlier_batches_committed(db_session, pos):
    for n in range(5):
        pos.add_item(f"item-{n}", f"Item {n}", [(f"var-{n}", f"SKU-{n}")], stock={f"var-{n}": 1})
    locked = OperationalError("COMMIT", {}, Exception("database is locked"))
    calls = []

    def flaky_commit():
        calls.append(1)
        if len(calls) == 2:
            raise locked
        db.session.commit()

    writer = BatchWriter(limit=3, margin=1, commit=flaky_commit)
    stats = stock_sync_service.sync_stock_from_pos(pos, batch_writer=writer)

    assert stats["success"] is False
    assert stats["error"] == describe_backend_error(locked)
    assert stats["batches"] == 1
    assert sorted(p.sku for p in db_session.query(Product)) == ["SKU-0", "SKU-1"]


def test_pos_failure_is_reported_not_raised(db_session, pos):
    pos.read_error = PosUnavailableError("Loyverse unreachable")
    stats = stock_sync_service.sync_stock_from_pos(pos)
    assert stats["success"] is False
    assert stats["error"] == "Loyverse unreachable"
