# backend/storefront/services/catalog_service.py
"""
Catalog Service

Categories and products as edited from the admin back-office.

- Category slugs derive from the name when not supplied; new categories are
  appended to the display order (max(order) + 1, or 0 for the first).
- SKUs are unique across products and variant SKUs together.
- stock_quantity, reserved_quantity and the POS ids are owned by the sync
  job and the reservation ledger; a patch can only set stock_status
  (typically ARCHIVED or CONTACT_US, which the sync leaves alone).
"""
from __future__ import annotations

from typing import Any

from sqlalchemy import func

from ..extensions import db
from ..models import Category, Product, ProductVariant
from ..validation import ConflictError, NotFoundError, ValidationError, require_text, slugify, to_money

STOCK_STATUSES = {"IN_STOCK", "LOW", "OUT", "ARCHIVED", "CONTACT_US"}

PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "images", "category_slug", "subcategory_slugs",
    "weight", "width", "length", "height",
}
PRODUCT_MONEY_FIELDS = {"web_price", "promo_price", "handling_fee", "shipping_markup_percent"}
CATEGORY_FEE_FIELDS = {"handling_fee", "shipping_markup_percent"}


# =============================================================================
# CATEGORIES
# =============================================================================

def _normalize_subcategories(raw: Any) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("subcategories must be a list")
    subs = []
    for entry in raw:
        name = entry.get("name") if isinstance(entry, dict) else entry
        if not name or not str(name).strip():
            raise ValidationError("subcategory name is required")
        slug = (entry.get("slug") if isinstance(entry, dict) else None) or slugify(str(name))
        subs.append({"name": str(name).strip(), "slug": slug})
    return subs


def _apply_category_fees(category: Category, data: dict) -> None:
    # Explicit null clears an override
    for field in CATEGORY_FEE_FIELDS:
        if field in data:
            setattr(category, field, to_money(data[field], field, allow_none=True))


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.order.asc(), Category.id.asc()).all()


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return category


def create_category(data: dict) -> Category:
    name = require_text(data, "name")
    slug = slugify(data.get("slug") or name)
    if not slug:
        raise ValidationError("slug cannot be empty")
    if db.session.query(Category).filter(Category.slug == slug).first() is not None:
        raise ConflictError(f"Category slug '{slug}' already exists")

    max_order = db.session.query(func.max(Category.order)).scalar()
    category = Category(
        name=name,
        slug=slug,
        order=0 if max_order is None else max_order + 1,
        subcategories=_normalize_subcategories(data.get("subcategories")),
    )
    _apply_category_fees(category, data)
    db.session.add(category)
    db.session.commit()
    return category


def update_category(category_id: int, data: dict) -> Category:
    category = get_category(category_id)
    if "name" in data:
        category.name = require_text(data, "name")
    if "slug" in data:
        slug = slugify(data["slug"] or category.name)
        clash = db.session.query(Category).filter(Category.slug == slug, Category.id != category.id).first()
        if clash is not None:
            raise ConflictError(f"Category slug '{slug}' already exists")
        category.slug = slug
    if "order" in data:
        if isinstance(data["order"], bool) or not isinstance(data["order"], int):
            raise ValidationError("order must be an integer")
        category.order = data["order"]
    if "subcategories" in data:
        category.subcategories = _normalize_subcategories(data["subcategories"])
    _apply_category_fees(category, data)
    db.session.commit()
    return category


def delete_category(category_id: int) -> None:
    category = get_category(category_id)
    db.session.delete(category)
    db.session.commit()


# =============================================================================
# PRODUCTS
# =============================================================================

def sku_in_use(sku: str, *, exclude_product_id: int | None = None, exclude_variant_id: int | None = None) -> bool:
    """SKU uniqueness spans products and variants."""
    q = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_product_id is not None:
        q = q.filter(Product.id != exclude_product_id)
    if q.first() is not None:
        return True
    vq = db.session.query(ProductVariant.id).filter(ProductVariant.sku == sku)
    if exclude_variant_id is not None:
        vq = vq.filter(ProductVariant.id != exclude_variant_id)
    return vq.first() is not None


def apply_product_patch(product: Product, patch: dict) -> None:
    for key, value in patch.items():
        if key in PRODUCT_MONEY_FIELDS:
            setattr(product, key, to_money(value, key, allow_none=key != "web_price"))
        elif key in PRODUCT_MUTABLE_FIELDS:
            setattr(product, key, value)
        elif key == "stock_status":
            # Admin may archive or switch to contact-us; numeric states come from sync
            if value not in STOCK_STATUSES:
                raise ValidationError(f"stock_status must be one of {sorted(STOCK_STATUSES)}")
            product.stock_status = value
        elif key == "is_draft":
            product.is_draft = bool(value)


def _build_variants(product: Product, raw: Any) -> None:
    if raw is None:
        return
    if not isinstance(raw, list):
        raise ValidationError("variants must be a list")
    seen = set()
    for entry in raw:
        sku = require_text(entry, "sku")
        if sku in seen or sku == product.sku or sku_in_use(sku):
            raise ConflictError(f"SKU {sku} already exists")
        seen.add(sku)
        product.variants.append(ProductVariant(
            sku=sku,
            name=entry.get("name"),
            options=entry.get("options") or {},
            price=to_money(entry.get("price"), "price", allow_none=True),
            stock_quantity=entry.get("stock_quantity"),
            stock_status=entry.get("stock_status") or "OUT",
            loyverse_variant_id=entry.get("loyverse_variant_id"),
        ))


def create_product(data: dict) -> Product:
    sku = require_text(data, "sku")
    if sku_in_use(sku):
        raise ConflictError(f"SKU {sku} already exists")

    product = Product(
        sku=sku,
        name=require_text(data, "name"),
        web_price=to_money(data.get("web_price"), "web_price"),
        stock_quantity=data.get("stock_quantity"),
        stock_status=data.get("stock_status") or "OUT",
        loyverse_item_id=data.get("loyverse_item_id"),
        loyverse_variant_id=data.get("loyverse_variant_id"),
        reserved_quantity=0,
    )
    apply_product_patch(product, {k: v for k, v in data.items() if k not in ("sku", "name", "web_price")})
    _build_variants(product, data.get("variants"))
    db.session.add(product)
    db.session.commit()
    return product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def update_product(product_id: int, patch: dict) -> Product:
    product = get_product(product_id)
    if "sku" in patch and patch["sku"] != product.sku:
        sku = require_text(patch, "sku")
        if sku_in_use(sku, exclude_product_id=product.id):
            raise ConflictError(f"SKU {sku} already exists")
        product.sku = sku
    if "name" in patch:
        product.name = require_text(patch, "name")
    apply_product_patch(product, {k: v for k, v in patch.items() if k not in ("sku", "name")})
    db.session.commit()
    return product


def list_products(*, category_slug: str | None = None, include_drafts: bool = False) -> list[Product]:
    q = db.session.query(Product)
    if not include_drafts:
        q = q.filter(Product.is_draft.is_(False), Product.stock_status != "ARCHIVED")
    if category_slug:
        q = q.filter(Product.category_slug == category_slug)
    return q.order_by(Product.name.asc()).all()
