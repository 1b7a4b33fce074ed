# Overview: Catalog endpoints (public browse) and admin catalog, promo and settings management.

from flask import Blueprint, jsonify, request

from ..decorators import require_admin
from ..services import catalog_service, promotions_service, settings_service
from ..validation import ConflictError, NotFoundError, ValidationError

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")
catalog_admin_bp = Blueprint("catalog_admin", __name__, url_prefix="/api/admin")


def _error(e: Exception):
    if isinstance(e, NotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, ConflictError):
        return jsonify({"error": str(e)}), 409
    return jsonify({"error": str(e)}), 400


SERVICE_ERRORS = (ValidationError, ConflictError, NotFoundError)


# =============================================================================
# PUBLIC
# =============================================================================

@catalog_bp.get("/categories")
def list_categories():
    return jsonify([c.to_dict() for c in catalog_service.list_categories()])


@catalog_bp.get("/products")
def list_products():
    category = request.args.get("category")
    products = catalog_service.list_products(category_slug=category)
    return jsonify([p.to_dict() for p in products])


@catalog_bp.get("/products/<int:product_id>")
def get_product(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
    except NotFoundError as e:
        return _error(e)
    if product.is_draft or product.stock_status == "ARCHIVED":
        return jsonify({"error": "Product not found"}), 404
    return jsonify(product.to_dict())


# =============================================================================
# CATEGORIES
# =============================================================================

@catalog_admin_bp.post("/categories")
@require_admin
def create_category():
    try:
        category = catalog_service.create_category(request.get_json(silent=True) or {})
    except SERVICE_ERRORS as e:
        return _error(e)
    return jsonify(category.to_dict()), 201


@catalog_admin_bp.put("/categories/<int:category_id>")
@require_admin
def update_category(category_id: int):
    try:
        category = catalog_service.update_category(category_id, request.get_json(silent=True) or {})
    except SERVICE_ERRORS as e:
        return _error(e)
    return jsonify(category.to_dict())


@catalog_admin_bp.delete("/categories/<int:category_id>")
@require_admin
def delete_category(category_id: int):
    try:
        catalog_service.delete_category(category_id)
    except SERVICE_ERRORS as e:
        return _error(e)
    return jsonify({"success": True})


# =============================================================================
# PRODUCTS
# =============================================================================

@catalog_admin_bp.get("/products")
@require_admin
def admin_list_products():
    drafts = request.args.get("include_drafts", "true").lower() == "true"
    products = catalog_service.list_products(
        category_slug=request.args.get("category"), include_drafts=drafts
    )
    return jsonify([p.to_dict() for p in products])


@catalog_admin_bp.post("/products")
@require_admin
def create_product():
    try:
        product = catalog_service.create_product(request.get_json(silent=True) or {})
    except SERVICE_ERRORS as e:
        return _error(e)
    return jsonify(product.to_dict()), 201


@catalog_admin_bp.patch("/products/<int:product_id>")
@require_admin
def update_product(product_id: int):
    try:
        product = catalog_service.update_product(product_id, request.get_json(silent=True) or {})
    except SERVICE_ERRORS as e:
        return _error(e)
    return jsonify(product.to_dict())


# =============================================================================
# PROMO CODES
# =============================================================================

@catalog_admin_bp.get("/promos")
@require_admin
def list_promos():
    return jsonify([p.to_dict() for p in promotions_service.list_promos()])


@catalog_admin_bp.post("/promos")
@require_admin
def create_promo():
    try:
        promo = promotions_service.create_promo(request.get_json(silent=True) or {})
    except SERVICE_ERRORS as e:
        return _error(e)
    return jsonify(promo.to_dict()), 201


@catalog_admin_bp.put("/promos/<int:promo_id>")
@require_admin
def update_promo(promo_id: int):
    try:
        promo = promotions_service.update_promo(promo_id, request.get_json(silent=True) or {})
    except SERVICE_ERRORS as e:
        return _error(e)
    return jsonify(promo.to_dict())


@catalog_admin_bp.post("/promos/<int:promo_id>/toggle")
@require_admin
def toggle_promo(promo_id: int):
    try:
        promo = promotions_service.toggle_promo(promo_id)
    except SERVICE_ERRORS as e:
        return _error(e)
    return jsonify(promo.to_dict())


@catalog_admin_bp.delete("/promos/<int:promo_id>")
@require_admin
def delete_promo(promo_id: int):
    try:
        promotions_service.delete_promo(promo_id)
    except SERVICE_ERRORS as e:
        return _error(e)
    return jsonify({"success": True})


# =============================================================================
# SETTINGS
# =============================================================================

@catalog_admin_bp.get("/settings/<key>")
@require_admin
def get_settings(key: str):
    try:
        return jsonify(settings_service.get_settings(key))
    except SERVICE_ERRORS as e:
        return _error(e)


@catalog_admin_bp.put("/settings/<key>")
@require_admin
def update_settings(key: str):
    """Partial update; nested objects merge, lists replace."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be an object"}), 400
    try:
        return jsonify(settings_service.update_settings(key, data))
    except SERVICE_ERRORS as e:
        return _error(e)


@catalog_admin_bp.post("/settings/payment/gateway")
@require_admin
def switch_gateway():
    data = request.get_json(silent=True) or {}
    try:
        return jsonify(settings_service.switch_payment_gateway(data.get("gateway")))
    except SERVICE_ERRORS as e:
        return _error(e)


# =============================================================================
# COLLECTION POINTS
# =============================================================================

@catalog_admin_bp.post("/collection-points")
@require_admin
def add_collection_point():
    try:
        point = settings_service.add_collection_point(request.get_json(silent=True) or {})
    except SERVICE_ERRORS as e:
        return _error(e)
    return jsonify(point), 201


@catalog_admin_bp.put("/collection-points/<point_id>")
@require_admin
def update_collection_point(point_id: str):
    try:
        return jsonify(settings_service.update_collection_point(point_id, request.get_json(silent=True) or {}))
    except SERVICE_ERRORS as e:
        return _error(e)


@catalog_admin_bp.delete("/collection-points/<point_id>")
@require_admin
def delete_collection_point(point_id: str):
    try:
        settings_service.delete_collection_point(point_id)
    except SERVICE_ERRORS as e:
        return _error(e)
    return jsonify({"success": True})
