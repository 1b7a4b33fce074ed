"""
HTTP surface: status codes, auth, caching headers and response shapes.
"""

from decimal import Decimal

import pytest

from conftest import auth_headers, days_old
from storefront.models import Order, Product, PromoCode


# =============================================================================
# STOCK
# =============================================================================

def test_stock_lookup_is_cacheable(client, db_session, make_product):
    make_product("KAY-1", stock_quantity=10, reserved_quantity=4)

    response = client.get("/api/stock?skus=KAY-1,UNKNOWN")

    assert response.status_code == 200
    assert response.headers["Cache-Control"] == "public, s-maxage=30, stale-while-revalidate=300"
    assert response.json["stocks"] == {"KAY-1": 6, "UNKNOWN": 0}
    assert response.json["cached_at"].endswith("Z")


def test_stock_lookup_requires_skus(client, db_session):
    response = client.get("/api/stock")
    assert response.status_code == 400


def test_stock_lookup_limits_sku_count(client, db_session):
    skus = ",".join(f"SKU-{n}" for n in range(101))
    assert client.get(f"/api/stock?skus={skus}").status_code == 400


def test_live_stock_check_single_and_cart(client, db_session, pos):
    pos.add_item("item-1", "Kayak", [("var-1", "KAY-1")], stock={"var-1": 2})

    single = client.post("/api/stock/check", json={"sku": "KAY-1", "quantity": 3})
    assert single.status_code == 200
    assert single.json == {"available": False, "current_stock": 2, "error": "Only 2 units available"}

    cart = client.post("/api/stock/check", json={"items": [{"sku": "KAY-1", "name": "Kayak", "quantity": 1}]})
    assert cart.json["available"] is True


def test_live_stock_check_validation(client, db_session, pos):
    assert client.post("/api/stock/check", json={}).status_code == 400
    assert client.post("/api/stock/check", json={"sku": "KAY-1", "quantity": -1}).status_code == 400
    assert client.post("/api/stock/check", json={"items": []}).status_code == 400


# =============================================================================
# ORDERS (PUBLIC)
# =============================================================================

def test_order_status_hides_internal_fields(client, db_session, make_order, make_product):
    order = make_order([(make_product(), 1)], gateway_bill_id="pur_secret", loyverse_error="boom")

    response = client.get(f"/api/orders/{order.id}/status")

    assert response.status_code == 200
    body = response.json
    assert body["id"] == order.id
    assert body["status"] == "PENDING"
    assert body["items"][0]["quantity"] == 1
    assert "gateway_bill_id" not in body
    assert "loyverse_error" not in body
    assert "customer" not in body


def test_order_status_rejects_malformed_id(client, db_session):
    assert client.get("/api/orders/ORD.1/status").status_code == 400


def test_order_status_unknown_id(client, db_session):
    assert client.get("/api/orders/ORD-404/status").status_code == 404


def test_verify_unknown_order(client, db_session):
    assert client.post("/api/orders/ORD-404/verify").status_code == 404


def test_checkout_returns_redirect(client, db_session, make_product, fake_clients):
    product = make_product("KAY-1", web_price=Decimal("100.00"))

    response = client.post("/api/checkout", json={
        "customer": {"name": "Alice", "email": "alice@example.com", "address": "1 Jalan", "postcode": "50000"},
        "items": [{"product_id": product.id, "quantity": 1}],
    })

    assert response.status_code == 201
    assert response.json["redirect_url"] == "https://gate.test/checkout"
    assert response.json["order_id"].startswith("ORD-")
    assert response.json["status"] == "PENDING"


def test_checkout_gateway_failure_is_502(client, db_session, make_product, fake_clients):
    from storefront.clients import GatewayError

    product = make_product("KAY-1")
    fake_clients["chip"].error = GatewayError("CHIP down")

    response = client.post("/api/checkout", json={
        "customer": {"name": "Alice", "email": "alice@example.com", "address": "1 Jalan", "postcode": "50000"},
        "items": [{"product_id": product.id, "quantity": 1}],
    })

    assert response.status_code == 502
    assert response.json["success"] is False
    assert db_session.get(Order, response.json["order_id"]).status == "FAILED"


def test_checkout_shortage_is_409(client, db_session, make_product):
    product = make_product("KAY-1", stock_quantity=1)

    response = client.post("/api/checkout", json={
        "customer": {"name": "Alice", "email": "alice@example.com", "address": "1 Jalan", "postcode": "50000"},
        "items": [{"product_id": product.id, "quantity": 3}],
    })

    assert response.status_code == 409
    assert response.json["errors"]


def test_promo_validate(client, db_session):
    db_session.add(PromoCode(code="SAVE10", promo_type="percentage", value=Decimal("10")))
    db_session.commit()

    ok = client.post("/api/promos/validate", json={"code": "save10", "subtotal": 200})
    assert ok.status_code == 200
    assert ok.json["valid"] is True
    assert ok.json["discount"] == 20.0

    bad = client.post("/api/promos/validate", json={"code": "NOPE", "subtotal": 200})
    assert bad.json == {"valid": False, "error": "Invalid promo code"}

    assert client.post("/api/promos/validate", json={}).status_code == 400


def test_shipping_quote_uses_flat_rate(client, db_session, make_product):
    product = make_product("KAY-1", web_price=Decimal("50.00"))

    response = client.post("/api/shipping/quote", json={"items": [{"product_id": product.id, "quantity": 2}]})

    assert response.status_code == 200
    assert response.json["subtotal"] == 100.0
    assert response.json["shipping_cost"] == 10.0
    assert response.json["free_shipping"] is False


def test_public_catalog_hides_drafts(client, db_session, make_product):
    live = make_product("KAY-1")
    draft = make_product("KAY-2", is_draft=True)

    listed = client.get("/api/products")
    assert [p["sku"] for p in listed.json] == ["KAY-1"]
    assert client.get(f"/api/products/{live.id}").status_code == 200
    assert client.get(f"/api/products/{draft.id}").status_code == 404


# =============================================================================
# ADMIN
# =============================================================================

@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "Basic x"}])
def test_admin_requires_token(client, db_session, headers):
    assert client.get("/api/admin/orders", headers=headers).status_code == 401


def test_admin_disabled_without_configured_token(app, client, db_session):
    app.config["ADMIN_API_TOKEN"] = ""
    try:
        assert client.get("/api/admin/orders", headers=auth_headers()).status_code == 503
    finally:
        app.config["ADMIN_API_TOKEN"] = "test-admin-token"


def test_admin_lists_orders_with_internal_fields(client, db_session, make_order, make_product):
    make_order([(make_product(), 1)], status="PAID", reserved=False, gateway_bill_id="pur_1")

    response = client.get("/api/admin/orders?status=PAID", headers=auth_headers())

    assert response.status_code == 200
    assert response.json[0]["gateway_bill_id"] == "pur_1"


def test_admin_get_unknown_order(client, db_session):
    assert client.get("/api/admin/orders/ORD-404", headers=auth_headers()).status_code == 404


def test_admin_approve_manual_transfer(client, db_session, make_order, make_product, fake_clients):
    order = make_order([(make_product(loyverse_variant_id="var-1"), 1)], status="PENDING_PAYMENT",
                       payment_gateway="manual", requires_approval=True)

    response = client.post(
        f"/api/admin/orders/{order.id}/approve",
        headers={**auth_headers(), "X-Admin-User": "siti"},
    )

    assert response.status_code == 200
    order = db_session.get(Order, order.id)
    assert order.status == "PAID"
    assert order.payment_approved_by == "siti"


def test_admin_approve_wrong_state_is_409(client, db_session, make_order, make_product):
    order = make_order([(make_product(), 1)], status="PENDING")
    response = client.post(f"/api/admin/orders/{order.id}/approve", headers=auth_headers())
    assert response.status_code == 409


def test_admin_reject_releases_hold(client, db_session, make_order, make_product):
    product = make_product(stock_quantity=5)
    order = make_order([(product, 2)], status="PENDING_PAYMENT")

    response = client.post(
        f"/api/admin/orders/{order.id}/reject",
        json={"reason": "No transfer received"},
        headers=auth_headers(),
    )

    assert response.status_code == 200
    assert response.json["status"] == "CANCELLED"
    assert response.json["rejection_reason"] == "No transfer received"
    assert db_session.get(Product, product.id).reserved_quantity == 0


def test_admin_stale_cleanup(client, db_session, make_order, make_product):
    product = make_product()
    make_order([(product, 1)], created_at=days_old(10))
    make_order([(product, 1)], created_at=days_old(3))

    response = client.post("/api/admin/cleanup?action=stale-orders", json={"days": 7}, headers=auth_headers())

    assert response.status_code == 200
    assert response.json["deleted"] == 1
    assert db_session.query(Order).count() == 1


@pytest.mark.parametrize("days", [0, -3, "7", True])
def test_admin_stale_cleanup_rejects_bad_days(client, db_session, days):
    response = client.post("/api/admin/cleanup?action=stale-orders", json={"days": days}, headers=auth_headers())
    assert response.status_code == 400


def test_admin_cleanup_unknown_action(client, db_session):
    assert client.post("/api/admin/cleanup?action=explode", headers=auth_headers()).status_code == 400
    assert client.delete("/api/admin/cleanup?action=stock", headers=auth_headers()).status_code == 400


def test_admin_delete_all_orders(client, db_session, make_order, make_product):
    make_order([(make_product(), 1)], reserved=False)
    response = client.delete("/api/admin/cleanup?action=orders", headers=auth_headers())
    assert response.status_code == 200
    assert response.json["deleted"] == 1


def test_admin_sync_pos(client, db_session, make_product, pos):
    product = make_product("KAY-1", stock_quantity=0, stock_status="OUT")
    pos.add_item("item-1", "Kayak", [("var-1", "KAY-1")], stock={"var-1": 9})

    response = client.post("/api/admin/cleanup?action=sync-pos", headers=auth_headers())

    assert response.status_code == 200
    assert response.json["updated"] == 1
    assert db_session.get(Product, product.id).stock_status == "IN_STOCK"


def test_admin_reprocess_pos_unknown_order(client, db_session):
    response = client.post("/api/admin/orders/ORD-404/reprocess-pos", headers=auth_headers())
    assert response.status_code == 404


def test_admin_partial_refund_with_restock(client, db_session, make_order, make_product):
    product = make_product("PAD-1", stock_quantity=5)
    order = make_order([(product, 3)], status="PAID", reserved=False)

    refundable = client.get(f"/api/admin/orders/{order.id}/refundable", headers=auth_headers())
    line_id = refundable.json["items"][0]["line_id"]
    response = client.post(
        f"/api/admin/orders/{order.id}/refund",
        json={"reason": "Damaged", "items": [{"line_id": line_id, "quantity": 1, "return_to_stock": True}]},
        headers={**auth_headers(), "X-Admin-User": "siti"},
    )

    assert response.status_code == 200
    assert response.json["status"] == "PARTIAL_REFUND"
    assert response.json["refund"]["refunded_by"] == "siti"
    assert db_session.get(Product, product.id).stock_quantity == 6


@pytest.mark.parametrize("status,body,expected", [
    ("PENDING", {}, 409),
    ("PAID", {"items": [{"line_id": 99999, "quantity": 1}]}, 404),
    ("PAID", {"amount": "-5"}, 400),
])
def test_admin_refund_errors(client, db_session, make_order, make_product, status, body, expected):
    order = make_order([(make_product(), 1)], status=status, reserved=False)
    response = client.post(f"/api/admin/orders/{order.id}/refund", json=body, headers=auth_headers())
    assert response.status_code == expected


def test_admin_refund_unknown_order(client, db_session):
    response = client.post("/api/admin/orders/ORD-404/refund", json={}, headers=auth_headers())
    assert response.status_code == 404


def test_admin_stock_movements(client, db_session, make_product):
    product = make_product("KAY-1", stock_quantity=1)

    created = client.post(
        "/api/admin/stock/movements",
        json={"product_id": product.id, "movement_type": "RECEIVE", "quantity": 5, "reference": "PO-7"},
        headers={**auth_headers(), "X-Admin-User": "siti"},
    )
    too_much = client.post(
        "/api/admin/stock/movements",
        json={"product_id": product.id, "movement_type": "DAMAGE", "quantity": -10},
        headers=auth_headers(),
    )
    unknown = client.post(
        "/api/admin/stock/movements",
        json={"product_id": 99999, "movement_type": "RECEIVE", "quantity": 1},
        headers=auth_headers(),
    )
    listed = client.get("/api/admin/stock/movements?type=receive", headers=auth_headers())

    assert created.status_code == 201
    assert (created.json["previous_quantity"], created.json["new_quantity"]) == (1, 6)
    assert created.json["created_by"] == "siti"
    assert too_much.status_code == 400
    assert unknown.status_code == 404
    assert [m["reference"] for m in listed.json] == ["PO-7"]
    assert db_session.get(Product, product.id).stock_quantity == 6


def test_admin_category_create_and_duplicate(client, db_session):
    first = client.post("/api/admin/categories", json={"name": "Sea Kayaks"}, headers=auth_headers())
    assert first.status_code == 201
    assert first.json["slug"] == "sea-kayaks"

    again = client.post("/api/admin/categories", json={"name": "Sea Kayaks"}, headers=auth_headers())
    assert again.status_code == 409


def test_admin_category_update_unknown_is_404(client, db_session):
    response = client.put("/api/admin/categories/999", json={"name": "X"}, headers=auth_headers())
    assert response.status_code == 404


def test_admin_switch_gateway(client, db_session):
    response = client.post("/api/admin/settings/payment/gateway", json={"gateway": "manual"}, headers=auth_headers())
    assert response.status_code == 200

    bad = client.post("/api/admin/settings/payment/gateway", json={"gateway": "paypal"}, headers=auth_headers())
    assert bad.status_code == 400


# =============================================================================
# SYSTEM
# =============================================================================

def test_health(client, db_session, pos):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json["status"] == "healthy"
    assert response.json["checks"]["database"]["status"] == "healthy"


def test_health_degrades_when_pos_unreachable(client, db_session, pos):
    from storefront.clients import PosUnavailableError

    pos.read_error = PosUnavailableError("timeout")

    shallow = client.get("/health")
    deep = client.get("/health?deep=1")

    assert shallow.json["status"] == "healthy"
    assert deep.status_code == 200
    assert deep.json["status"] == "degraded"
    assert deep.json["checks"]["pos"]["warning"] == "POS unreachable"


def test_deep_health_with_empty_pos_catalogue(client, db_session, pos):
    response = client.get("/health?deep=1")
    assert response.json["checks"]["pos"]["status"] == "healthy"


def test_health_degrades_without_pos_token(client, db_session, pos):
    pos.configured = False
    response = client.get("/health")
    assert response.json["status"] == "degraded"


def test_cors_only_for_allowed_origins(client, db_session):
    allowed = client.get("/health", headers={"Origin": "http://localhost:5173"})
    other = client.get("/health", headers={"Origin": "https://evil.example"})

    assert allowed.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
    assert "Access-Control-Allow-Origin" not in other.headers
