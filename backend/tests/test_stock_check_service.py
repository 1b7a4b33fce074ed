"""
Live POS stock checks ahead of checkout.
"""

import pytest

from storefront.clients import PosUnavailableError
from storefront.services.stock_check_service import UNAVAILABLE_MESSAGE, check_cart_stock, check_stock
from storefront.validation import ValidationError


@pytest.fixture
def stocked_pos(pos):
    pos.add_item("item-1", "Kayak", [("var-1", "KAY-1")], stock={"var-1": 3})
    pos.add_item("item-2", "Paddle", [("var-2", "PAD-1")], stock={"var-2": 20})
    return pos


def test_single_check_within_stock(app, stocked_pos):
    assert check_stock("KAY-1", 2, pos=stocked_pos) == {"available": True, "current_stock": 3}


def test_single_check_reports_shortage(app, stocked_pos):
    result = check_stock("kay-1", 5, pos=stocked_pos)
    assert result == {"available": False, "current_stock": 3, "error": "Only 3 units available"}


def test_unknown_sku(app, stocked_pos):
    result = check_stock("NOPE", 1, pos=stocked_pos)
    assert result["available"] is False
    assert result["error"] == "Product not found in POS"


def test_known_variant_id_skips_item_lookup(app, stocked_pos):
    result = check_stock("ignored", 1, pos=stocked_pos, variant_id="var-2")
    assert result["current_stock"] == 20
    assert stocked_pos.get_items_calls == 0


def test_pos_outage_gives_customer_safe_message(app, stocked_pos):
    stocked_pos.read_error = PosUnavailableError("timeout")
    result = check_stock("KAY-1", 1, pos=stocked_pos)
    assert result == {"available": False, "current_stock": 0, "error": UNAVAILABLE_MESSAGE}


def test_cart_check_collects_every_problem(app, stocked_pos):
    result = check_cart_stock([
        {"sku": "KAY-1", "name": "Kayak", "quantity": 4},
        {"sku": "PAD-1", "name": "Paddle", "quantity": 2},
        {"sku": "GONE", "name": "Old Helmet", "quantity": 1},
    ], pos=stocked_pos)

    assert result["available"] is False
    assert result["errors"] == [
        "Kayak: Only 3 available (requested 4)",
        "Old Helmet: Not found in inventory",
    ]
    assert result["stocks"] == {"KAY-1": 3, "PAD-1": 20}
    # The item catalog is read once per cart, not once per line
    assert stocked_pos.get_items_calls == 1


def test_cart_check_all_available(app, stocked_pos):
    result = check_cart_stock([{"sku": "PAD-1", "quantity": 20}], pos=stocked_pos)
    assert result == {"available": True, "errors": [], "stocks": {"PAD-1": 20}}


def test_cart_check_outage(app, stocked_pos):
    stocked_pos.read_error = PosUnavailableError("timeout")
    result = check_cart_stock([{"sku": "PAD-1", "quantity": 1}], pos=stocked_pos)
    assert result["available"] is False
    assert result["errors"] == [UNAVAILABLE_MESSAGE]


@pytest.mark.parametrize("items", [[], None, "KAY-1", [{"sku": "KAY-1", "quantity": 0}]])
def test_cart_check_rejects_bad_input(app, stocked_pos, items):
    with pytest.raises(ValidationError):
        check_cart_stock(items, pos=stocked_pos)
