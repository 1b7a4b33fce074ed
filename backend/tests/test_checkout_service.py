"""
Checkout: server-side pricing, reservation, order creation and gateway hand-off.
"""

from decimal import Decimal

import pytest

from storefront.clients import GatewayError
from storefront.models import Order, Product, PromoCode
from storefront.services import settings_service


CUSTOMER = {
    "name": "Alice Tan",
    "email": "Alice@Example.com",
    "phone": "012-345 6789",
    "address": "1 Jalan Test",
    "postcode": "50000",
}


@pytest.fixture
def kayak(make_product):
    return make_product("KAY-1", name="Sit-on-top Kayak", web_price=Decimal("100.00"), stock_quantity=3)


def _checkout(client, items, **extra):
    return client.post("/api/checkout", json={"customer": CUSTOMER, "items": items, **extra})


def test_checkout_redirects_to_chip(client, db_session, kayak, fake_clients):
    response = _checkout(client, [{"product_id": kayak.id, "quantity": 2, "web_price": 1}])

    assert response.status_code == 201
    body = response.json
    assert body["redirect_url"] == "https://gate.test/checkout"
    assert body["status"] == "PENDING"

    order = db_session.get(Order, body["order_id"])
    # Client-sent prices are ignored
    assert order.subtotal == Decimal("200.00")
    assert order.shipping_cost == Decimal("10.00")
    assert order.total_amount == Decimal("210.00")
    assert order.customer_email == "alice@example.com"
    assert order.gateway_bill_id == "pur_1"
    assert order.lines[0].web_price == Decimal("100.00")
    assert db_session.get(Product, kayak.id).reserved_quantity == 2

    purchase = fake_clients["chip"].purchases[0]
    assert purchase["reference"] == order.id
    assert {"name": "Shipping Fee", "price": 1000, "quantity": 1} in purchase["purchase"]["products"]


def test_checkout_applies_promo(client, db_session, kayak):
    db_session.add(PromoCode(code="TENOFF", promo_type="fixed", value=Decimal("10"), usage_count=0, active=True))
    db_session.commit()

    response = _checkout(client, [{"product_id": kayak.id, "quantity": 1}], promo_code="tenoff")

    order = db_session.get(Order, response.json["order_id"])
    assert order.discount_amount == Decimal("10.00")
    assert order.total_amount == Decimal("100.00")
    assert order.promo_code == "TENOFF"


def test_checkout_rejects_invalid_promo(client, db_session, kayak):
    response = _checkout(client, [{"product_id": kayak.id, "quantity": 1}], promo_code="NOPE")
    assert response.status_code == 400
    assert response.json["error"] == "Invalid promo code"
    assert db_session.query(Order).count() == 0


def test_checkout_reports_every_shortage(client, db_session, kayak, make_product):
    paddle = make_product("PAD-1", name="Paddle", stock_quantity=0)

    response = _checkout(client, [
        {"product_id": kayak.id, "quantity": 5},
        {"product_id": paddle.id, "quantity": 1},
    ])

    assert response.status_code == 409
    assert response.json["errors"] == [
        "Sit-on-top Kayak: Only 3 available (you requested 5)",
        "Paddle: Only 0 available (you requested 1)",
    ]
    assert db_session.query(Order).count() == 0
    assert db_session.get(Product, kayak.id).reserved_quantity == 0


def test_gateway_failure_fails_order_and_releases_stock(client, db_session, kayak, fake_clients):
    fake_clients["chip"].error = GatewayError("CHIP API error: 500")

    response = _checkout(client, [{"product_id": kayak.id, "quantity": 1}])

    assert response.status_code == 502
    assert response.json["error"] == "Unable to process payment right now. Please try again."
    order = db_session.get(Order, response.json["order_id"])
    assert order.status == "FAILED"
    assert order.reservation_status == "RELEASED"
    assert db_session.get(Product, kayak.id).reserved_quantity == 0


def test_manual_transfer_waits_for_approval(client, db_session, kayak):
    settings_service.switch_payment_gateway("manual")
    settings_service.update_settings("payment", {"manual_payment": {"instructions": "Maybank 123"}})

    response = _checkout(client, [{"product_id": kayak.id, "quantity": 1}])

    assert response.status_code == 201
    assert response.json["status"] == "PENDING_PAYMENT"
    assert "/checkout/manual-payment?order_id=" in response.json["redirect_url"]
    order = db_session.get(Order, response.json["order_id"])
    assert order.payment_instructions == "Maybank 123"
    assert order.requires_approval is True


def test_self_collection_uses_collection_fee(client, db_session, kayak):
    settings_service.update_settings("collection", {"enabled": True})
    point = settings_service.add_collection_point({"name": "Warehouse", "address": "Lot 5", "fee": 2})

    response = _checkout(
        client,
        [{"product_id": kayak.id, "quantity": 1}],
        delivery_method="self_collection",
        collection_point_id=point["id"],
    )

    order = db_session.get(Order, response.json["order_id"])
    assert order.shipping_cost == Decimal("0.00")
    assert order.collection_fee == Decimal("2.00")
    assert order.total_amount == Decimal("102.00")
    assert order.collection_point_name == "Warehouse"


def test_checkout_validation_errors(client, db_session, kayak):
    assert _checkout(client, []).status_code == 400
    response = client.post("/api/checkout", json={
        "customer": {**CUSTOMER, "email": "not-an-email"},
        "items": [{"product_id": kayak.id, "quantity": 1}],
    })
    assert response.status_code == 400
    assert _checkout(client, [{"product_id": kayak.id, "quantity": 0}]).status_code == 400


def test_draft_products_cannot_be_bought(client, db_session, make_product):
    draft = make_product("DRAFT-1", is_draft=True)
    response = _checkout(client, [{"product_id": draft.id, "quantity": 1}])
    assert response.status_code == 409
