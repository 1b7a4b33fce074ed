# Overview: Public stock endpoints (cached availability and live POS checks).

from flask import Blueprint, current_app, jsonify, request

from ..extensions import get_client
from ..services import reservation_service, stock_check_service
from ..validation import ValidationError
from storefront.time_utils import utcnow, to_utc_z

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")

STOCK_CACHE_CONTROL = "public, s-maxage=30, stale-while-revalidate=300"
MAX_SKUS_PER_REQUEST = 100


@stock_bp.get("")
def get_stock():
    """
    Available quantity (stock minus reservations) per SKU.

    Query: ?skus=SKU-1,SKU-2
    Unknown SKUs report 0. Responses are CDN-cacheable for 30s.
    """
    raw = request.args.get("skus", "")
    skus = [s.strip() for s in raw.split(",") if s.strip()]
    if not skus:
        return jsonify({"error": "skus query parameter is required"}), 400
    if len(skus) > MAX_SKUS_PER_REQUEST:
        return jsonify({"error": f"At most {MAX_SKUS_PER_REQUEST} SKUs per request"}), 400

    try:
        stocks = reservation_service.get_available_stock(skus)
    except Exception:
        current_app.logger.exception("Stock lookup failed")
        return jsonify({"error": "Unable to load stock"}), 500

    response = jsonify({"stocks": stocks, "cached_at": to_utc_z(utcnow())})
    response.headers["Cache-Control"] = STOCK_CACHE_CONTROL
    return response


@stock_bp.post("/check")
def check_stock():
    """
    Live check against the POS.

    Request body, either:
        {"sku": str, "quantity": int, "loyverse_variant_id"?: str}
        {"items": [{"sku", "name", "quantity", "loyverse_variant_id"?}, ...]}
    """
    data = request.get_json(silent=True) or {}
    pos = get_client("pos")
    try:
        if "items" in data:
            return jsonify(stock_check_service.check_cart_stock(data["items"], pos=pos))
        sku = str(data.get("sku") or "").strip()
        if not sku:
            return jsonify({"error": "sku is required"}), 400
        result = stock_check_service.check_stock(
            sku, data.get("quantity", 1), pos=pos, variant_id=data.get("loyverse_variant_id")
        )
        return jsonify(result)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
