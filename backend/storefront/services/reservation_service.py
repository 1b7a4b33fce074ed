# Overview: Service-layer operations for the stock reservation ledger; encapsulates business logic and database work.

"""
Stock Reservation Ledger

WHY: Checkout places a provisional hold on stock before the customer pays,
so two carts cannot both buy the last unit.

DESIGN:
- reserve_items() is all-or-nothing: every line is checked first and the
  whole cart's shortages are reported together; nothing is written unless
  every line fits.
- Each increment is a conditional UPDATE (reserved + qty only where
  stock - reserved >= qty), so two concurrent checkouts cannot both pass
  the check on a stale read.
- Variant purchases reserve on the variant and on the parent, keeping the
  parent's reserved_quantity equal to the sum of its variants.
- release_items() returns a hold (cancel / sweep); finalize_items() turns a
  hold into real depletion after payment. Neither goes below zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import case, func

from ..extensions import db
from ..models import Product, ProductVariant
from .concurrency import lock_for_update


class StockReservationError(Exception):
    """Raised when one or more cart lines cannot be reserved."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


@dataclass(frozen=True)
class StockLine:
    product_id: int
    quantity: int
    variant_id: Optional[int] = None


def available_quantity(stock_quantity: Optional[int], reserved_quantity: Optional[int]) -> int:
    return max(0, (stock_quantity or 0) - (reserved_quantity or 0))


def match_variant(product: Product, selected_options: Optional[dict]) -> Optional[ProductVariant]:
    """Variant whose options contain every selected option, or None."""
    if not selected_options or not product.variants:
        return None
    for variant in product.variants:
        options = variant.options or {}
        if options and all(options.get(key) == value for key, value in selected_options.items()):
            return variant
    return None


def _option_label(selected_options: dict) -> str:
    return " / ".join(str(v) for v in selected_options.values())


def _floor_decrement(column, qty: int):
    return case((column > qty, column - qty), else_=0)


# =============================================================================
# RESERVE
# =============================================================================

def reserve_items(lines: Iterable[dict]) -> list[StockLine]:
    """
    Reserve stock for cart lines.

    Each line: {"product_id", "quantity", "selected_options"?, "name"?}.
    Does not commit; the caller commits together with the order it creates,
    or rolls back.

    Returns the resolved StockLines (variant ids filled in).
    Raises StockReservationError listing every shortage.
    """
    errors: list[str] = []
    plan: list[tuple[StockLine, str]] = []
    # Quantity already planned per row, so repeated lines are checked together
    claimed: dict[tuple[str, int], int] = {}

    for line in lines:
        name = line.get("name") or "Item"
        qty = int(line["quantity"])
        product = lock_for_update(
            db.session.query(Product).filter(Product.id == line.get("product_id"))
        ).first()
        if product is None:
            errors.append(f"{name}: Product not found")
            continue
        name = product.name

        selected = line.get("selected_options") or {}
        if selected and product.variants:
            variant = match_variant(product, selected)
            label = _option_label(selected)
            if variant is None:
                opts = ", ".join(f"{k}: {v}" for k, v in selected.items())
                errors.append(f"{name} ({opts}): Variant not found")
                continue
            key = ("variant", variant.id)
            wanted = claimed.get(key, 0) + qty
            available = (variant.stock_quantity or 0) - (variant.reserved_quantity or 0)
            if available < wanted:
                errors.append(f"{name} ({label}): Only {max(0, available)} available (you requested {wanted})")
                continue
            claimed[key] = wanted
            plan.append((StockLine(product.id, qty, variant.id), f"{name} ({label})"))
        else:
            key = ("product", product.id)
            wanted = claimed.get(key, 0) + qty
            available = (product.stock_quantity or 0) - (product.reserved_quantity or 0)
            if available < wanted:
                errors.append(f"{name}: Only {max(0, available)} available (you requested {wanted})")
                continue
            claimed[key] = wanted
            plan.append((StockLine(product.id, qty), name))

    if errors:
        raise StockReservationError(errors)

    for stock_line, label in plan:
        if stock_line.variant_id is not None:
            updated = db.session.query(ProductVariant).filter(
                ProductVariant.id == stock_line.variant_id,
                func.coalesce(ProductVariant.stock_quantity, 0) - ProductVariant.reserved_quantity >= stock_line.quantity,
            ).update(
                {ProductVariant.reserved_quantity: ProductVariant.reserved_quantity + stock_line.quantity},
                synchronize_session=False,
            )
            if updated != 1:
                raise StockReservationError([f"{label}: stock changed during checkout, please retry"])
            db.session.query(Product).filter(Product.id == stock_line.product_id).update(
                {Product.reserved_quantity: Product.reserved_quantity + stock_line.quantity},
                synchronize_session=False,
            )
        else:
            updated = db.session.query(Product).filter(
                Product.id == stock_line.product_id,
                func.coalesce(Product.stock_quantity, 0) - Product.reserved_quantity >= stock_line.quantity,
            ).update(
                {Product.reserved_quantity: Product.reserved_quantity + stock_line.quantity},
                synchronize_session=False,
            )
            if updated != 1:
                raise StockReservationError([f"{label}: stock changed during checkout, please retry"])

    db.session.expire_all()
    return [stock_line for stock_line, _ in plan]


# =============================================================================
# RELEASE / FINALIZE
# =============================================================================

def release_items(lines: Iterable[StockLine]) -> None:
    """Give a hold back. Does not commit."""
    for line in lines:
        if line.variant_id is not None:
            db.session.query(ProductVariant).filter(ProductVariant.id == line.variant_id).update(
                {ProductVariant.reserved_quantity: _floor_decrement(ProductVariant.reserved_quantity, line.quantity)},
                synchronize_session=False,
            )
        db.session.query(Product).filter(Product.id == line.product_id).update(
            {Product.reserved_quantity: _floor_decrement(Product.reserved_quantity, line.quantity)},
            synchronize_session=False,
        )
    db.session.expire_all()


def finalize_items(lines: Iterable[StockLine]) -> None:
    """
    Convert a hold into depletion of the local stock mirror. Does not commit.

    The POS deducts its own stock when the receipt is created; this keeps
    the local mirror consistent until the next sync.
    """
    for line in lines:
        if line.variant_id is not None:
            db.session.query(ProductVariant).filter(ProductVariant.id == line.variant_id).update(
                {
                    ProductVariant.reserved_quantity: _floor_decrement(ProductVariant.reserved_quantity, line.quantity),
                    ProductVariant.stock_quantity: _floor_decrement(
                        func.coalesce(ProductVariant.stock_quantity, 0), line.quantity
                    ),
                },
                synchronize_session=False,
            )
        db.session.query(Product).filter(Product.id == line.product_id).update(
            {
                Product.reserved_quantity: _floor_decrement(Product.reserved_quantity, line.quantity),
                Product.stock_quantity: _floor_decrement(func.coalesce(Product.stock_quantity, 0), line.quantity),
            },
            synchronize_session=False,
        )
    db.session.expire_all()


def lines_for_order(order) -> list[StockLine]:
    return [
        StockLine(product_id=line.product_id, quantity=line.quantity, variant_id=line.variant_id)
        for line in order.lines
        if line.product_id is not None
    ]


# =============================================================================
# QUERIES
# =============================================================================

def get_available_stock(skus: list[str]) -> dict[str, int]:
    """
    Map each requested SKU (product or variant) to its available quantity.
    Unknown SKUs report 0.
    """
    wanted = [s for s in dict.fromkeys(s.strip() for s in skus) if s]
    stocks = {sku: 0 for sku in wanted}
    if not wanted:
        return stocks

    for product in db.session.query(Product).filter(Product.sku.in_(wanted)).all():
        stocks[product.sku] = available_quantity(product.stock_quantity, product.reserved_quantity)
    for variant in db.session.query(ProductVariant).filter(ProductVariant.sku.in_(wanted)).all():
        stocks[variant.sku] = available_quantity(variant.stock_quantity, variant.reserved_quantity)
    return stocks


def reset_reserved_stock() -> dict:
    """Zero every reservation on products and variants. Commits."""
    products = db.session.query(Product).filter(Product.reserved_quantity != 0).update(
        {Product.reserved_quantity: 0}, synchronize_session=False
    )
    variants = db.session.query(ProductVariant).filter(ProductVariant.reserved_quantity != 0).update(
        {ProductVariant.reserved_quantity: 0}, synchronize_session=False
    )
    db.session.commit()
    return {"products_reset": products, "variants_reset": variants}
