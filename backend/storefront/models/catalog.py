from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


def _money(value):
    return float(value) if value is not None else None


class Category(db.Model):
    """
    Catalog category.

    Fee overrides (handling_fee, shipping_markup_percent) are nullable:
    NULL means "no override", products in the category then resolve to 0.
    """
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(128), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0, index=True)

    # [{"name": "...", "slug": "..."}]
    subcategories = db.Column(db.JSON, nullable=False, default=list)

    handling_fee = db.Column(db.Numeric(12, 2), nullable=True)
    shipping_markup_percent = db.Column(db.Numeric(6, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "order": self.order,
            "subcategories": self.subcategories or [],
            "handling_fee": _money(self.handling_fee),
            "shipping_markup_percent": _money(self.shipping_markup_percent),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Sellable catalog record.

    Stock fields mirror the POS (stock_quantity, stock_status) plus the local
    reservation ledger (reserved_quantity). When the product has variants its
    reserved_quantity is the sum of its variants' reservations.
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    images = db.Column(db.JSON, nullable=False, default=list)

    web_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    promo_price = db.Column(db.Numeric(12, 2), nullable=True)

    category_slug = db.Column(db.String(128), nullable=False, default="uncategorized", index=True)
    subcategory_slugs = db.Column(db.JSON, nullable=False, default=list)

    # IN_STOCK | LOW | OUT | ARCHIVED | CONTACT_US
    stock_status = db.Column(db.String(16), nullable=False, default="OUT", index=True)
    stock_quantity = db.Column(db.Integer, nullable=True)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)
    last_stock_sync = db.Column(db.DateTime(timezone=True), nullable=True)

    # Shipping attributes; NULL fee fields inherit from the category
    weight = db.Column(db.Numeric(8, 3), nullable=True)
    width = db.Column(db.Numeric(8, 2), nullable=True)
    length = db.Column(db.Numeric(8, 2), nullable=True)
    height = db.Column(db.Numeric(8, 2), nullable=True)
    handling_fee = db.Column(db.Numeric(12, 2), nullable=True)
    shipping_markup_percent = db.Column(db.Numeric(6, 2), nullable=True)

    loyverse_item_id = db.Column(db.String(64), nullable=True, index=True)
    loyverse_variant_id = db.Column(db.String(64), nullable=True, index=True)

    # Created by POS sync, awaiting admin completion
    is_draft = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    variants = db.relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.id",
    )

    @property
    def selling_price(self):
        return self.promo_price if self.promo_price is not None else self.web_price

    @property
    def available_quantity(self) -> int:
        return max(0, (self.stock_quantity or 0) - (self.reserved_quantity or 0))

    def to_dict(self, include_variants: bool = True):
        data = {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "images": self.images or [],
            "web_price": _money(self.web_price),
            "promo_price": _money(self.promo_price),
            "category_slug": self.category_slug,
            "subcategory_slugs": self.subcategory_slugs or [],
            "stock_status": self.stock_status,
            "stock_quantity": self.stock_quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "weight": _money(self.weight),
            "width": _money(self.width),
            "length": _money(self.length),
            "height": _money(self.height),
            "handling_fee": _money(self.handling_fee),
            "shipping_markup_percent": _money(self.shipping_markup_percent),
            "loyverse_item_id": self.loyverse_item_id,
            "loyverse_variant_id": self.loyverse_variant_id,
            "is_draft": self.is_draft,
            "last_stock_sync": to_utc_z(self.last_stock_sync),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_variants:
            data["variants"] = [v.to_dict() for v in self.variants]
        return data


class ProductVariant(db.Model):
    __tablename__ = "product_variants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=True)

    # {"Size": "M", "Colour": "Black"}
    options = db.Column(db.JSON, nullable=False, default=dict)

    price = db.Column(db.Numeric(12, 2), nullable=True)
    stock_status = db.Column(db.String(16), nullable=False, default="OUT")
    stock_quantity = db.Column(db.Integer, nullable=True)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)

    loyverse_variant_id = db.Column(db.String(64), nullable=True, index=True)

    product = db.relationship("Product", back_populates="variants")

    @property
    def available_quantity(self) -> int:
        return max(0, (self.stock_quantity or 0) - (self.reserved_quantity or 0))

    def to_dict(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "options": self.options or {},
            "price": _money(self.price),
            "stock_status": self.stock_status,
            "stock_quantity": self.stock_quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "loyverse_variant_id": self.loyverse_variant_id,
        }
