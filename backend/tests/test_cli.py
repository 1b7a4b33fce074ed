"""
Flask CLI commands, run through the app's CLI runner.
"""

from conftest import days_old
from storefront.clients import PosUnavailableError
from storefront.models import Order, Product


def test_sync_stock_command(app, db_session, pos, make_product):
    make_product("KAY-1", stock_quantity=0, stock_status="OUT")
    pos.add_item("item-1", "Kayak", [("var-1", "KAY-1")], stock={"var-1": 7})
    pos.add_item("item-2", "Dry Bag", [("var-2", "BAG-1")], stock={"var-2": 1})

    result = app.test_cli_runner().invoke(args=["pos", "sync-stock"])

    assert result.exit_code == 0, result.output
    assert "1 updated, 1 drafts created" in result.output


def test_sync_stock_command_fails_loudly(app, db_session, pos):
    pos.read_error = PosUnavailableError("Loyverse unreachable")

    result = app.test_cli_runner().invoke(args=["pos", "sync-stock"])

    assert result.exit_code == 1
    assert "Stock sync failed: Loyverse unreachable" in result.output


def test_cleanup_stale_command(app, db_session, make_order, make_product):
    product = make_product()
    make_order([(product, 1)], created_at=days_old(10))
    make_order([(product, 1)], created_at=days_old(1))

    result = app.test_cli_runner().invoke(args=["orders", "cleanup-stale", "--days", "7"])

    assert result.exit_code == 0, result.output
    assert "Deleted 1 orders" in result.output
    assert db_session.query(Order).count() == 1


def test_cleanup_stale_rejects_zero_days(app, db_session):
    result = app.test_cli_runner().invoke(args=["orders", "cleanup-stale", "--days", "0"])
    assert result.exit_code == 2


def test_process_command(app, db_session, make_order, make_product, fake_clients):
    product = make_product("KAY-1", loyverse_variant_id="var-1")
    order = make_order([(product, 1)], status="PAID")

    result = app.test_cli_runner().invoke(args=["orders", "process", order.id])

    assert result.exit_code == 0, result.output
    assert "POS SYNCED" in result.output
    assert len(fake_clients["pos"].receipts) == 1


def test_process_command_unknown_order(app, db_session, fake_clients):
    result = app.test_cli_runner().invoke(args=["orders", "process", "ORD-404"])
    assert result.exit_code == 1


def test_reset_reservations_requires_confirmation(app, db_session, make_product):
    product = make_product(reserved_quantity=3)
    runner = app.test_cli_runner()

    refused = runner.invoke(args=["reservations", "reset"])
    assert refused.exit_code == 2
    assert db_session.get(Product, product.id).reserved_quantity == 3

    done = runner.invoke(args=["reservations", "reset", "--yes"])
    assert done.exit_code == 0, done.output
    assert "Reset 1 products" in done.output
    assert db_session.get(Product, product.id).reserved_quantity == 0
