# Overview: Admin order management and maintenance endpoints, including refunds and the stock movement ledger.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin
from ..extensions import CLIENTS_KEY
from ..services import (
    fulfillment_service,
    maintenance_service,
    order_service,
    payment_service,
    refund_service,
    stock_movement_service,
    stock_sync_service,
)
from ..services.order_service import OrderNotFoundError, OrderStateError
from ..validation import NotFoundError, ValidationError

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _clients() -> dict:
    return current_app.extensions[CLIENTS_KEY]


def _order_error(e: Exception):
    if isinstance(e, (OrderNotFoundError, NotFoundError)):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, ValidationError):
        return jsonify({"error": str(e)}), 400
    return jsonify({"error": str(e)}), 409


# =============================================================================
# ORDERS
# =============================================================================

@admin_bp.get("/orders")
@require_admin
def list_orders():
    """
    Query: ?status=PAID&search=alice&limit=100
    """
    limit = request.args.get("limit", 100, type=int)
    orders = order_service.list_orders(
        status=request.args.get("status"),
        search=request.args.get("search"),
        limit=limit,
    )
    return jsonify([o.to_dict() for o in orders])


@admin_bp.get("/orders/<order_id>")
@require_admin
def get_order(order_id):
    try:
        return jsonify(order_service.get_order(order_id).to_dict())
    except OrderNotFoundError as e:
        return _order_error(e)


@admin_bp.post("/orders/<order_id>/approve")
@require_admin
def approve_order(order_id):
    """Confirm a manual bank transfer; runs fulfillment."""
    try:
        result = payment_service.approve_manual_payment(order_id, approved_by=g.admin_actor, clients=_clients())
    except (OrderNotFoundError, OrderStateError) as e:
        return _order_error(e)
    return jsonify(result), 200 if result["success"] else 409


@admin_bp.post("/orders/<order_id>/reject")
@require_admin
def reject_order(order_id):
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.reject_order(order_id, reason=data.get("reason") or "", rejected_by=g.admin_actor)
    except (OrderNotFoundError, OrderStateError) as e:
        return _order_error(e)
    return jsonify(order.to_dict())


@admin_bp.post("/orders/<order_id>/reprocess")
@require_admin
def reprocess_order(order_id):
    """Push an unpaid order to PAID, or re-run fulfillment for a paid one."""
    try:
        result = payment_service.reprocess_order(order_id, processed_by=g.admin_actor, clients=_clients())
    except (OrderNotFoundError, OrderStateError) as e:
        return _order_error(e)
    return jsonify(result), 200 if result["success"] else 409


@admin_bp.post("/orders/<order_id>/reprocess-pos")
@require_admin
def reprocess_pos(order_id):
    result = fulfillment_service.reprocess_pos_sync(order_id, pos=_clients()["pos"])
    if result["success"]:
        return jsonify(result)
    if result.get("error") == "Order not found":
        return jsonify(result), 404
    return jsonify(result), 409 if "loyverse_status" not in result else 502


@admin_bp.post("/orders/<order_id>/collected")
@require_admin
def mark_collected(order_id):
    try:
        order = order_service.mark_collected(order_id)
    except (OrderNotFoundError, OrderStateError) as e:
        return _order_error(e)
    return jsonify(order.to_dict())


# =============================================================================
# REFUNDS
# =============================================================================

@admin_bp.get("/orders/<order_id>/refundable")
@require_admin
def refundable_items(order_id):
    try:
        return jsonify(refund_service.get_refundable_items(order_id))
    except OrderNotFoundError as e:
        return _order_error(e)


@admin_bp.post("/orders/<order_id>/refund")
@require_admin
def refund_order(order_id):
    """
    Request body:
        {"reason": str, "items"?: [{"line_id", "quantity", "return_to_stock"?}],
         "return_to_stock"?: bool, "amount"?: number}

    No items refunds everything still refundable.
    """
    data = request.get_json(silent=True) or {}
    try:
        result = refund_service.process_refund(
            order_id,
            items=data.get("items"),
            amount=data.get("amount"),
            return_to_stock=bool(data.get("return_to_stock", False)),
            reason=str(data.get("reason") or ""),
            refunded_by=g.admin_actor,
        )
    except (OrderNotFoundError, OrderStateError, NotFoundError, ValidationError) as e:
        return _order_error(e)
    return jsonify(result)


# =============================================================================
# STOCK MOVEMENTS
# =============================================================================

@admin_bp.get("/stock/movements")
@require_admin
def list_stock_movements():
    """
    Query: ?product_id=1&type=RECEIVE&reference=PO-7&limit=50
    """
    movements = stock_movement_service.list_movements(
        product_id=request.args.get("product_id", type=int),
        movement_type=request.args.get("type"),
        reference=request.args.get("reference"),
        limit=request.args.get("limit", 50, type=int),
    )
    return jsonify([m.to_dict() for m in movements])


@admin_bp.post("/stock/movements")
@require_admin
def record_stock_movement():
    """
    Request body:
        {"product_id": int, "movement_type": str, "quantity": int (signed),
         "variant_sku"?: str, "reason"?: str, "reference"?: str}
    """
    data = request.get_json(silent=True) or {}
    try:
        movement = stock_movement_service.record_stock_movement(
            product_id=data.get("product_id"),
            movement_type=data.get("movement_type") or data.get("type"),
            quantity=data.get("quantity"),
            variant_sku=data.get("variant_sku"),
            reason=data.get("reason"),
            reference=data.get("reference"),
            created_by=g.admin_actor,
        )
    except (NotFoundError, ValidationError) as e:
        return _order_error(e)
    return jsonify(movement.to_dict()), 201


# =============================================================================
# MAINTENANCE)
# =============================================================================

@admin_bp.delete("/cleanup")
@require_admin
def delete_orders():
    """?action=orders deletes every order (reservations are not touched)."""
    if request.args.get("action") != "orders":
        return jsonify({"error": "Unknown action"}), 400
    result = maintenance_service.delete_all_orders()
    return jsonify(result), 200 if result["success"] else 500


@admin_bp.post("/cleanup")
@require_admin
def run_cleanup():
    """
    ?action=
      reset-stock   zero every reservation
      sync-pos      pull stock from the POS
      stale-orders  sweep old unpaid orders (body: {"days"?: int})
      full-cleanup  delete orders, reset reservations, resync
    """
    action = request.args.get("action")
    pos = _clients()["pos"]
    if action == "reset-stock":
        result = maintenance_service.reset_reserved_stock()
    elif action == "sync-pos":
        result = stock_sync_service.sync_stock_from_pos(pos)
    elif action == "stale-orders":
        days = (request.get_json(silent=True) or {}).get("days")
        if days is not None and (isinstance(days, bool) or not isinstance(days, int) or days < 1):
            return jsonify({"error": "days must be a positive integer"}), 400
        result = maintenance_service.cleanup_stale_orders(days=days)
    elif action == "full-cleanup":
        result = maintenance_service.run_full_cleanup(pos=pos)
    else:
        return jsonify({"error": "Unknown action"}), 400

    current_app.logger.info("Admin %s ran cleanup action %s", g.admin_actor, action)
    return jsonify(result), 200 if result["success"] else 500
