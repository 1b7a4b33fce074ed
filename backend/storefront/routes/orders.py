# Overview: Public checkout and order endpoints used by the storefront.

from decimal import Decimal

from flask import Blueprint, current_app, jsonify, request

from ..extensions import CLIENTS_KEY
from ..services import checkout_service, fee_service, order_service, payment_service, promotions_service
from ..services.checkout_service import CheckoutError
from ..services.order_service import OrderNotFoundError
from ..services.payment_service import PaymentRedirect
from ..validation import ValidationError, quantize_money, to_money

orders_bp = Blueprint("orders", __name__, url_prefix="/api")


def _clients() -> dict:
    return current_app.extensions[CLIENTS_KEY]


@orders_bp.post("/checkout")
def checkout():
    """
    Place an order and start payment.

    Request body:
    {
        "customer": {"name", "email", "phone", "address", "city", "state", "postcode"},
        "items": [{"product_id" | "sku", "quantity", "selected_options"?}],
        "delivery_method": "delivery" | "self_collection",
        "collection_point_id"?: str,
        "promo_code"?: str,
        "shipping_rate"?: number,
        "shipping_provider"?: str
    }

    Returns:
    - 201 {order_id, status, redirect_url} when payment was started
    - 400 validation failure
    - 409 {error, errors[]} when stock could not be reserved
    - 502 order created but the gateway failed (order is FAILED)
    """
    data = request.get_json(silent=True) or {}
    try:
        result = checkout_service.create_checkout(data, clients=_clients())
    except PaymentRedirect as redirect:
        order = order_service.find_order(redirect.order_id)
        return jsonify({
            "order_id": redirect.order_id,
            "status": order.status if order is not None else None,
            "redirect_url": redirect.url,
        }), 201
    except CheckoutError as e:
        return jsonify({"error": str(e), "errors": e.errors}), e.status_code
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Checkout failed")
        return jsonify({"error": "Checkout failed"}), 500

    if not result["success"]:
        return jsonify(result), 502
    return jsonify(result), 201


@orders_bp.post("/orders/<order_id>/verify")
def verify_payment(order_id):
    """Return-page poll: confirms payment with the gateway when the webhook is late."""
    try:
        result = payment_service.verify_order_payment(order_id, clients=_clients())
    except OrderNotFoundError:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(result)


@orders_bp.get("/orders/<order_id>/status")
def order_status(order_id):
    """Customer-safe order view. Ids outside [A-Za-z0-9-_] are rejected."""
    try:
        return jsonify(order_service.get_public_order(order_id))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderNotFoundError:
        return jsonify({"error": "Order not found"}), 404


@orders_bp.post("/promos/validate")
def validate_promo():
    data = request.get_json(silent=True) or {}
    code = data.get("code")
    if not code:
        return jsonify({"valid": False, "error": "Promo code is required"}), 400
    try:
        subtotal = to_money(data.get("subtotal", 0), "subtotal")
    except ValidationError as e:
        return jsonify({"valid": False, "error": str(e)}), 400

    result = promotions_service.validate_promo(code, subtotal)
    if not result["valid"]:
        return jsonify(result)
    return jsonify({**result, "value": float(result["value"]), "discount": float(result["discount"])})


@orders_bp.post("/shipping/quote")
def shipping_quote():
    """
    Quote delivery for a cart using server-side prices.

    Request body: {"items": [...same shape as checkout...], "shipping_rate"?: number}
    """
    data = request.get_json(silent=True) or {}
    try:
        lines = checkout_service.resolve_cart(data.get("items"))
        subtotal = quantize_money(sum((l["unit_price"] * l["quantity"] for l in lines), Decimal("0")))
        quote = fee_service.calculate_shipping(lines, subtotal, base_rate=data.get("shipping_rate"))
    except CheckoutError as e:
        return jsonify({"error": str(e)}), e.status_code
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({**quote, "subtotal": float(subtotal), "shipping_cost": float(quote["shipping_cost"])})
