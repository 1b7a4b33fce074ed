"""
Pytest fixtures for storefront backend tests.

Provides the in-memory app, a fresh database per test, and fake POS /
gateway / courier clients injected in place of the real adapters.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from storefront import create_app
from storefront.clients import GatewayError, PosUnavailableError, ShipmentError
from storefront.clients.schemas import InventoryLevel, PosItem, PosReceipt, PosVariant
from storefront.config import TestConfig
from storefront.extensions import db, CLIENTS_KEY
from storefront.models import Order, OrderLine, Product, ProductVariant
from storefront.time_utils import utcnow


ADMIN_TOKEN = TestConfig.ADMIN_API_TOKEN


class FakePosClient:
    """In-memory POS: items by SKU, stock by variant id, receipts recorded."""

    def __init__(self):
        self.items = []
        self.levels = []
        self.receipts = []
        self.idempotency_keys = []
        self.configured = True
        self.receipt_error = None
        self.read_error = None
        self.get_items_calls = 0

    def add_item(self, item_id, name, variants, stock=None):
        """variants: [(variant_id, sku), ...]; stock: {variant_id: qty}."""
        self.items.append(PosItem(
            id=item_id,
            item_name=name,
            variants=[PosVariant(variant_id=vid, item_id=item_id, sku=sku) for vid, sku in variants],
        ))
        for variant_id, qty in (stock or {}).items():
            self.levels.append(InventoryLevel(variant_id=variant_id, store_id="store-1", in_stock=qty))

    def iter_items(self):
        if self.read_error is not None:
            raise self.read_error
        yield from self.items

    def get_items(self):
        self.get_items_calls += 1
        return list(self.iter_items())

    def get_inventory(self):
        if self.read_error is not None:
            raise self.read_error
        return list(self.levels)

    def create_receipt(self, payload, *, idempotency_key=None):
        self.idempotency_keys.append(idempotency_key)
        if self.receipt_error is not None:
            raise self.receipt_error
        self.receipts.append(payload)
        return PosReceipt(receipt_number=payload.receipt_number)

    def close(self):
        pass


class FakeShippingClient:
    def __init__(self):
        self.shipments = []
        self.error = None

    def create_shipment(self, order):
        if self.error is not None:
            raise self.error
        self.shipments.append(order.id)
        return f"SHP-{len(self.shipments)}"

    def close(self):
        pass


class FakeChipClient:
    def __init__(self):
        self.purchases = []
        self.status = "created"
        self.error = None

    def create_purchase(self, purchase, *, environment="test"):
        if self.error is not None:
            raise self.error
        self.purchases.append(purchase)
        return {"id": f"pur_{len(self.purchases)}", "checkout_url": "https://gate.test/checkout"}

    def get_purchase(self, purchase_id, *, environment="test"):
        if self.error is not None:
            raise self.error
        return {"id": purchase_id, "status": self.status}

    def close(self):
        pass


class FakeBizAppayClient:
    def __init__(self):
        self.bills = []

    def create_bill(self, **kwargs):
        self.bills.append(kwargs)
        return {"url": "https://bizappay.test/pay", "billCode": f"bill_{len(self.bills)}"}

    def close(self):
        pass


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def fake_clients(app):
    """Fresh fakes for every test, swapped in where create_app put the real adapters."""
    clients = {
        "pos": FakePosClient(),
        "chip": FakeChipClient(),
        "bizappay": FakeBizAppayClient(),
        "shipping": FakeShippingClient(),
    }
    real = app.extensions[CLIENTS_KEY]
    app.extensions[CLIENTS_KEY] = clients
    yield clients
    app.extensions[CLIENTS_KEY] = real


@pytest.fixture(scope='function')
def pos(fake_clients):
    return fake_clients["pos"]


@pytest.fixture(scope='function')
def client(app, fake_clients):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory for catalog products (stock 10, price 25.00 unless overridden)."""
    def _make(sku="SKU-1", **fields):
        fields.setdefault("name", f"Product {sku}")
        fields.setdefault("web_price", Decimal("25.00"))
        fields.setdefault("stock_quantity", 10)
        fields.setdefault("reserved_quantity", 0)
        fields.setdefault("stock_status", "IN_STOCK")
        fields.setdefault("category_slug", "general")
        variants = fields.pop("variants", [])
        product = Product(sku=sku, **fields)
        for variant in variants:
            variant.setdefault("reserved_quantity", 0)
            variant.setdefault("stock_status", "IN_STOCK")
            product.variants.append(ProductVariant(**variant))
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_order(db_session):
    """
    Factory for orders with lines.

    lines: [(product, quantity), ...]; reserved=True also applies the hold
    to the products, as checkout would.
    """
    counter = {"n": 0}

    def _make(lines=(), *, status="PENDING", reserved=True, **fields):
        counter["n"] += 1
        order_id = fields.pop("id", f"ORD-TEST-{counter['n']}")
        subtotal = sum((Decimal(p.web_price) * q for p, q in lines), Decimal("0"))
        fields.setdefault("subtotal", subtotal)
        fields.setdefault("total_amount", subtotal + Decimal(fields.get("shipping_cost", 0)))
        fields.setdefault("customer", {
            "name": "Alice Tan",
            "email": "alice@example.com",
            "phone": "012-345 6789",
            "address": "1 Jalan Test",
            "postcode": "50000",
        })
        fields.setdefault("customer_name", "Alice Tan")
        fields.setdefault("customer_email", "alice@example.com")
        fields.setdefault("delivery_method", "delivery")
        fields.setdefault("payment_gateway", "chip")
        fields.setdefault("shipping_status", "PENDING")
        fields.setdefault("loyverse_failed_items", [])
        order = Order(id=order_id, status=status, reservation_status="HELD" if reserved else "RELEASED", **fields)
        for product, quantity in lines:
            order.lines.append(OrderLine(
                product_id=product.id,
                sku=product.sku,
                name=product.name,
                quantity=quantity,
                web_price=product.web_price,
                selected_options={},
                category_slug=product.category_slug,
                loyverse_variant_id=product.loyverse_variant_id,
            ))
            if reserved:
                product.reserved_quantity = (product.reserved_quantity or 0) + quantity
        db_session.add(order)
        db_session.commit()
        return order
    return _make


def days_old(days: int):
    return utcnow() - timedelta(days=days)


def auth_headers(token: str = ADMIN_TOKEN) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
