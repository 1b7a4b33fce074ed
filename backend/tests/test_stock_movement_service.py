"""
Manual stock movements against the local stock mirror.
"""

import pytest

from storefront.models import Product, ProductVariant, StockMovement
from storefront.services import stock_movement_service
from storefront.validation import NotFoundError, ValidationError


def test_receive_adds_stock_and_records_before_and_after(db_session, make_product):
    product = make_product("KAY-1", name="Kayak", stock_quantity=2, stock_status="LOW")

    movement = stock_movement_service.record_stock_movement(
        product_id=product.id,
        movement_type="receive",
        quantity=8,
        reason="Supplier delivery",
        reference="PO-7",
        created_by="ops",
    )

    assert (movement.movement_type, movement.quantity) == ("RECEIVE", 8)
    assert (movement.previous_quantity, movement.new_quantity) == (2, 10)
    assert movement.sku == "KAY-1"
    product = db_session.get(Product, product.id)
    assert product.stock_quantity == 10
    assert product.stock_status == "IN_STOCK"


def test_cannot_go_below_zero(db_session, make_product):
    product = make_product(stock_quantity=3)

    with pytest.raises(ValidationError) as exc_info:
        stock_movement_service.record_stock_movement(product_id=product.id, movement_type="DAMAGE", quantity=-4)

    assert str(exc_info.value) == "Cannot reduce stock below 0. Current: 3, Adjustment: -4"
    db_session.rollback()
    assert db_session.get(Product, product.id).stock_quantity == 3
    assert db_session.query(StockMovement).count() == 0


@pytest.mark.parametrize("movement_type,quantity", [
    ("RECEIVE", -1),
    ("RETURN", -2),
    ("DAMAGE", 1),
    ("SALE", 3),
    ("ADJUST", 0),
    ("TRANSFER_IN", 1),
])
def test_rejects_wrong_direction_or_type(db_session, make_product, movement_type, quantity):
    product = make_product()
    with pytest.raises(ValidationError):
        stock_movement_service.record_stock_movement(
            product_id=product.id, movement_type=movement_type, quantity=quantity
        )


def test_adjust_may_go_down(db_session, make_product):
    product = make_product(stock_quantity=6)
    movement = stock_movement_service.record_stock_movement(product_id=product.id, movement_type="ADJUST", quantity="-5")
    assert movement.new_quantity == 1
    assert db_session.get(Product, product.id).stock_status == "LOW"


def test_variant_movement_updates_parent_total(db_session, make_product):
    product = make_product("PFD-1", name="Life Vest", stock_quantity=5, variants=[
        {"sku": "PFD-1-S", "options": {"Size": "S"}, "stock_quantity": 2},
        {"sku": "PFD-1-M", "options": {"Size": "M"}, "stock_quantity": 3},
    ])

    movement = stock_movement_service.record_stock_movement(
        product_id=product.id, variant_sku="pfd-1-s", movement_type="RECEIVE", quantity=4
    )

    assert (movement.sku, movement.variant_label) == ("PFD-1-S", "S")
    assert (movement.previous_quantity, movement.new_quantity) == (2, 6)
    small = db_session.query(ProductVariant).filter_by(sku="PFD-1-S").one()
    assert small.stock_quantity == 6
    assert db_session.get(Product, product.id).stock_quantity == 9


def test_pinned_status_is_left_alone(db_session, make_product):
    product = make_product(stock_quantity=0, stock_status="CONTACT_US")
    stock_movement_service.record_stock_movement(product_id=product.id, movement_type="RECEIVE", quantity=10)
    assert db_session.get(Product, product.id).stock_status == "CONTACT_US"


def test_unknown_product_or_variant(db_session, make_product):
    product = make_product()
    with pytest.raises(NotFoundError):
        stock_movement_service.record_stock_movement(product_id=99999, movement_type="RECEIVE", quantity=1)
    with pytest.raises(NotFoundError):
        stock_movement_service.record_stock_movement(
            product_id=product.id, variant_sku="NOPE", movement_type="RECEIVE", quantity=1
        )


def test_list_movements_newest_first_with_filters(db_session, make_product):
    kayak = make_product("KAY-1")
    paddle = make_product("PAD-1")
    stock_movement_service.record_stock_movement(product_id=kayak.id, movement_type="RECEIVE", quantity=1)
    stock_movement_service.record_stock_movement(product_id=paddle.id, movement_type="DAMAGE", quantity=-1)
    stock_movement_service.record_stock_movement(product_id=kayak.id, movement_type="ADJUST", quantity=2)

    everything = stock_movement_service.list_movements()
    assert [m.movement_type for m in everything] == ["ADJUST", "DAMAGE", "RECEIVE"]

    kayak_only = stock_movement_service.list_movements(product_id=kayak.id)
    assert [m.sku for m in kayak_only] == ["KAY-1", "KAY-1"]

    damage = stock_movement_service.list_movements(movement_type="damage")
    assert [m.sku for m in damage] == ["PAD-1"]
