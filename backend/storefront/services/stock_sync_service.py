# Overview: Service-layer operations for POS stock reconciliation; encapsulates business logic and database work.

"""
POS -> catalog stock sync.

Mirrors stock state from the POS onto catalog records, matched by SKU
(case-insensitive). Only stock fields and POS linkage are written on
existing records; names, descriptions, prices and images belong to the
admin. Unknown SKUs become draft products for the admin to complete.

Writes go through BatchWriter: each chunk of at most 450 writes is its own
commit. A failure stops the run; chunks already committed stay committed.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..clients import PosError
from ..extensions import db
from ..models import Product, ProductVariant
from storefront.time_utils import utcnow
from .concurrency import BatchWriter, describe_backend_error

STOCK_IN = "IN_STOCK"
STOCK_LOW = "LOW"
STOCK_OUT = "OUT"

# Admin-chosen states that a sync must not overwrite
PINNED_STATUSES = {"ARCHIVED", "CONTACT_US"}

DRAFT_CATEGORY = "uncategorized"


def stock_status_for(quantity: float, low_threshold: Optional[int] = None) -> str:
    """OUT if <= 0, LOW if 0 < q < threshold (default 5), else IN_STOCK."""
    if low_threshold is None:
        low_threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 5)
    if quantity <= 0:
        return STOCK_OUT
    if quantity < low_threshold:
        return STOCK_LOW
    return STOCK_IN


def _stock_by_variant(levels) -> dict[str, float]:
    totals: dict[str, float] = defaultdict(float)
    for level in levels:
        totals[level.variant_id] += level.in_stock
    return totals


def _draft_name(item, variant) -> str:
    if len(item.variants) > 1:
        options = " / ".join(v for v in (variant.option1_value, variant.option2_value, variant.option3_value) if v)
        if options:
            return f"{item.item_name} - {options}"
    return item.item_name or variant.sku


def sync_stock_from_pos(pos, *, batch_writer: Optional[BatchWriter] = None) -> dict:
    """
    Returns {"success", "updated", "created", "skipped", "batches", "error"?}.
    """
    logger = current_app.logger
    stats = {"success": True, "total_items_fetched": 0, "updated": 0, "created": 0, "skipped": 0, "batches": 0}
    writer = batch_writer or BatchWriter()

    try:
        items = pos.get_items()
        stock = _stock_by_variant(pos.get_inventory())
        stats["total_items_fetched"] = len(items)

        products = {p.sku.upper(): p for p in db.session.query(Product).all()}
        variants = {v.sku.upper(): v for v in db.session.query(ProductVariant).all()}
        touched_parents: set[int] = set()
        now = utcnow()

        for item in items:
            for pos_variant in item.variants:
                if not pos_variant.sku:
                    stats["skipped"] += 1
                    continue
                quantity = stock.get(pos_variant.variant_id, 0)
                status = stock_status_for(quantity)
                key = pos_variant.sku.upper()

                product = products.get(key)
                variant = variants.get(key) if product is None else None
                if product is not None:
                    if product.stock_status not in PINNED_STATUSES:
                        product.stock_status = status
                    product.stock_quantity = int(quantity)
                    product.loyverse_variant_id = pos_variant.variant_id
                    product.loyverse_item_id = item.id
                    product.last_stock_sync = now
                    product.updated_at = now
                    stats["updated"] += 1
                elif variant is not None:
                    variant.stock_status = status
                    variant.stock_quantity = int(quantity)
                    variant.loyverse_variant_id = pos_variant.variant_id
                    touched_parents.add(variant.product_id)
                    stats["updated"] += 1
                else:
                    product = Product(
                        sku=pos_variant.sku,
                        name=_draft_name(item, pos_variant),
                        description="",
                        images=[],
                        web_price=0,
                        category_slug=DRAFT_CATEGORY,
                        stock_status=status,
                        stock_quantity=int(quantity),
                        reserved_quantity=0,
                        loyverse_variant_id=pos_variant.variant_id,
                        loyverse_item_id=item.id,
                        last_stock_sync=now,
                        is_draft=True,
                    )
                    db.session.add(product)
                    products[key] = product
                    stats["created"] += 1
                writer.add()

        # Parent totals follow their variants
        for product_id in touched_parents:
            parent = db.session.get(Product, product_id)
            if parent is None or not parent.variants:
                continue
            total = sum(v.stock_quantity or 0 for v in parent.variants)
            parent.stock_quantity = total
            if parent.stock_status not in PINNED_STATUSES:
                parent.stock_status = stock_status_for(total)
            parent.last_stock_sync = now
            writer.add()

        writer.flush()
    except PosError as exc:
        db.session.rollback()
        logger.exception("POS stock sync failed")
        stats.update(success=False, error=str(exc))
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("POS stock sync failed while writing")
        stats.update(success=False, error=describe_backend_error(exc))

    stats["batches"] = writer.commits
    if stats["success"]:
        logger.info(
            "POS stock sync: %s updated, %s created, %s skipped in %s batches",
            stats["updated"], stats["created"], stats["skipped"], stats["batches"],
        )
    return stats
