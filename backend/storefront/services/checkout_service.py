# Overview: Service-layer operations for checkout; encapsulates business logic and database work.

"""
Checkout

Turns a cart into a PENDING order with stock reserved, then hands the
customer to the active payment gateway.

Prices come from the catalog, never from the client. Reservation and order
creation commit together; if the gateway then fails the order is marked
FAILED and its hold is released.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from flask import current_app

from ..clients import GatewayError
from ..extensions import db
from ..models import Order, OrderLine, Product
from ..validation import ValidationError, normalize_promo_code, quantize_money, require_text, to_quantity
from storefront.time_utils import epoch_millis
from . import fee_service, order_service, payment_service, promotions_service, reservation_service, settings_service
from .order_service import DELIVERY, ORDER_PENDING, RESERVATION_HELD, SELF_COLLECTION
from .payment_service import PaymentRedirect
from .reservation_service import StockReservationError, match_variant


class CheckoutError(Exception):
    """Checkout could not be completed; carries customer-safe detail."""

    def __init__(self, message: str, errors: list[str] | None = None, status_code: int = 400):
        super().__init__(message)
        self.errors = errors or []
        self.status_code = status_code


ZERO = Decimal("0")
CUSTOMER_FIELDS = ("name", "email", "phone", "address", "city", "state", "postcode")


def new_order_id() -> str:
    ms = epoch_millis()
    order_id = f"ORD-{ms}"
    while db.session.get(Order, order_id) is not None:
        ms += 1
        order_id = f"ORD-{ms}"
    return order_id


def _customer(data: dict, delivery_method: str) -> dict:
    raw = data.get("customer") or {}
    if not isinstance(raw, dict):
        raise ValidationError("customer must be an object")
    customer = {field: str(raw.get(field) or "").strip() for field in CUSTOMER_FIELDS}
    require_text(customer, "name")
    if "@" not in require_text(customer, "email"):
        raise ValidationError("email is invalid")
    if delivery_method == DELIVERY:
        require_text(customer, "address")
        require_text(customer, "postcode")
    return customer


def resolve_cart(items: Any) -> list[dict]:
    """Cart lines -> priced lines with product/variant snapshot fields."""
    if not isinstance(items, list) or not items:
        raise ValidationError("Cart is empty")

    resolved = []
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("Invalid cart item")
        qty = to_quantity(raw.get("quantity"))
        product = None
        if raw.get("product_id") is not None:
            product = db.session.get(Product, raw["product_id"])
        elif raw.get("sku"):
            product = db.session.query(Product).filter(Product.sku == str(raw["sku"]).strip()).first()
        if product is None or product.is_draft or product.stock_status == "ARCHIVED":
            raise CheckoutError(f"{raw.get('name') or raw.get('sku') or 'Item'}: Product not available", status_code=409)

        selected = raw.get("selected_options") or {}
        variant = match_variant(product, selected)
        price = product.selling_price
        if variant is not None and variant.price is not None:
            price = variant.price

        resolved.append({
            "product_id": product.id,
            "variant_id": variant.id if variant is not None else None,
            "sku": variant.sku if variant is not None else product.sku,
            "name": product.name,
            "quantity": qty,
            "unit_price": Decimal(price),
            "selected_options": selected,
            "category_slug": product.category_slug,
            "handling_fee": product.handling_fee,
            "shipping_markup_percent": product.shipping_markup_percent,
            "loyverse_variant_id": (variant.loyverse_variant_id if variant is not None else product.loyverse_variant_id),
            "weight": product.weight,
        })
    return resolved


def create_checkout(data: dict, *, clients: dict) -> dict:
    """
    Place an order and start payment.

    Raises PaymentRedirect on success (the redirect target for the customer),
    CheckoutError / ValidationError for rejected carts. Returns a result dict
    only when the order was created but the gateway failed.
    """
    delivery_method = data.get("delivery_method") or DELIVERY
    if delivery_method not in (DELIVERY, SELF_COLLECTION):
        raise ValidationError("delivery_method must be 'delivery' or 'self_collection'")
    customer = _customer(data, delivery_method)
    lines = resolve_cart(data.get("items"))

    subtotal = quantize_money(sum((line["unit_price"] * line["quantity"] for line in lines), ZERO))

    promo_code = normalize_promo_code(data.get("promo_code"))
    discount = ZERO
    if promo_code:
        promo = promotions_service.validate_promo(promo_code, subtotal)
        if not promo["valid"]:
            raise ValidationError(promo["error"])
        discount = promo["discount"]

    shipping_cost = ZERO
    collection_fee = ZERO
    collection_point = None
    if delivery_method == SELF_COLLECTION:
        if not settings_service.get_collection_settings().get("enabled"):
            raise ValidationError("Self-collection is not available")
        collection_point = settings_service.find_collection_point(data.get("collection_point_id") or "")
        if collection_point is None:
            raise ValidationError("Collection point not found")
        collection_fee = quantize_money(Decimal(str(collection_point.get("fee") or 0)))
    else:
        quote = fee_service.calculate_shipping(lines, subtotal, base_rate=data.get("shipping_rate"))
        shipping_cost = quote["shipping_cost"]

    total = max(ZERO, subtotal + shipping_cost + collection_fee - discount)

    try:
        reserved = reservation_service.reserve_items(lines)
    except StockReservationError as exc:
        db.session.rollback()
        raise CheckoutError("Some items are no longer available", errors=exc.errors, status_code=409)

    payment_settings = settings_service.get_payment_settings()
    gateway_name = payment_service.active_gateway_name(payment_settings)

    order = Order(
        id=new_order_id(),
        status=ORDER_PENDING,
        customer=customer,
        customer_name=customer["name"],
        customer_email=customer["email"].lower(),
        customer_phone=customer["phone"],
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        discount_amount=discount,
        total_amount=quantize_money(total),
        promo_code=promo_code or None,
        delivery_method=delivery_method,
        collection_point_id=collection_point["id"] if collection_point else None,
        collection_point_name=collection_point.get("name") if collection_point else None,
        collection_point_address=collection_point.get("address") if collection_point else None,
        collection_fee=collection_fee,
        shipping_provider=(data.get("shipping_provider") or None) if delivery_method == DELIVERY else None,
        shipping_status="PENDING",
        payment_gateway=gateway_name,
        reservation_status=RESERVATION_HELD,
        loyverse_failed_items=[],
    )
    for line, stock_line in zip(lines, reserved):
        order.lines.append(OrderLine(
            product_id=line["product_id"],
            variant_id=stock_line.variant_id,
            sku=line["sku"],
            name=line["name"],
            quantity=line["quantity"],
            web_price=line["unit_price"],
            selected_options=line["selected_options"],
            category_slug=line["category_slug"],
            loyverse_variant_id=line["loyverse_variant_id"],
            weight=line["weight"],
        ))
    db.session.add(order)
    db.session.commit()
    current_app.logger.info("Order %s created (%s, total %s)", order.id, gateway_name, order.total_amount)

    gateway = payment_service.get_gateway(gateway_name, clients, payment_settings)
    try:
        gateway.create_payment(order)
    except PaymentRedirect:
        raise
    except GatewayError as exc:
        current_app.logger.exception("Payment creation failed for order %s", order.id)
        order_service.fail_order(order.id, str(exc))
        return {
            "success": False,
            "order_id": order.id,
            "error": "Unable to process payment right now. Please try again.",
        }

    return {"success": True, "order_id": order.id, "redirect_url": None}
