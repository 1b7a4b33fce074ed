# Overview: Service-layer operations for the stock movement ledger; encapsulates business logic and database work.

"""
Stock Movement Ledger

WHY: Goods arrive, get damaged or come back from customers between POS
syncs. Each manual change to the local stock mirror is recorded with the
quantity before and after, so the admin can see who moved what and why.

DESIGN:
- quantity is signed. RECEIVE and RETURN must add stock, DAMAGE and SALE
  must remove it, ADJUST may go either way.
- A movement on a variant also rewrites the parent total as the sum of its
  variants, the same rule the POS sync follows.
- Stock never goes below zero; such a movement is rejected and nothing is
  written.
- stock_status follows the new quantity unless the admin pinned it
  (ARCHIVED / CONTACT_US).
"""

from __future__ import annotations

from typing import Any, Optional

from flask import current_app

from ..extensions import db
from ..models import Product, StockMovement
from ..validation import NotFoundError, ValidationError
from storefront.time_utils import utcnow
from .concurrency import lock_for_update
from .stock_sync_service import PINNED_STATUSES, stock_status_for

MOVEMENT_RECEIVE = "RECEIVE"
MOVEMENT_ADJUST = "ADJUST"
MOVEMENT_DAMAGE = "DAMAGE"
MOVEMENT_SALE = "SALE"
MOVEMENT_RETURN = "RETURN"

MOVEMENT_TYPES = {MOVEMENT_RECEIVE, MOVEMENT_ADJUST, MOVEMENT_DAMAGE, MOVEMENT_SALE, MOVEMENT_RETURN}
INBOUND_TYPES = {MOVEMENT_RECEIVE, MOVEMENT_RETURN}
OUTBOUND_TYPES = {MOVEMENT_DAMAGE, MOVEMENT_SALE}


def _signed_quantity(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError("quantity must be an integer")
    if isinstance(value, int):
        qty = value
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        qty = int(value.strip())
    else:
        raise ValidationError("quantity must be an integer")
    if qty == 0:
        raise ValidationError("quantity cannot be zero")
    return qty


def _check_direction(movement_type: str, qty: int) -> None:
    if movement_type in INBOUND_TYPES and qty < 0:
        raise ValidationError(f"{movement_type} movements must add stock")
    if movement_type in OUTBOUND_TYPES and qty > 0:
        raise ValidationError(f"{movement_type} movements must remove stock")


def _variant_label(variant) -> str:
    return " / ".join(str(v) for v in (variant.options or {}).values()) or variant.sku


def record_stock_movement(
    *,
    product_id: Any,
    movement_type: str,
    quantity: Any,
    variant_id: Optional[int] = None,
    variant_sku: Optional[str] = None,
    reason: Optional[str] = None,
    reference: Optional[str] = None,
    created_by: Optional[str] = None,
    commit: bool = True,
) -> StockMovement:
    """
    Apply a signed stock change to a product or one of its variants and
    record it.

    Pass commit=False to fold the movement into the caller's transaction.
    Raises ValidationError for a bad type, a zero quantity or a change that
    would leave negative stock; NotFoundError for an unknown product or
    variant.
    """
    movement_type = str(movement_type or "").strip().upper()
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"movement_type must be one of {', '.join(sorted(MOVEMENT_TYPES))}")
    qty = _signed_quantity(quantity)
    _check_direction(movement_type, qty)

    product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
    if product is None:
        raise NotFoundError("Product not found")

    variant = None
    if variant_id is not None or variant_sku:
        wanted_sku = (variant_sku or "").strip().upper()
        for candidate in product.variants:
            if candidate.id == variant_id or (wanted_sku and candidate.sku.upper() == wanted_sku):
                variant = candidate
                break
        if variant is None:
            raise NotFoundError(f"Variant {variant_sku or variant_id} not found")

    target = variant if variant is not None else product
    previous = target.stock_quantity or 0
    new = previous + qty
    if new < 0:
        raise ValidationError(f"Cannot reduce stock below 0. Current: {previous}, Adjustment: {qty}")

    target.stock_quantity = new
    if variant is not None:
        variant.stock_status = stock_status_for(new)
        product.stock_quantity = sum(v.stock_quantity or 0 for v in product.variants)
    if product.stock_status not in PINNED_STATUSES:
        product.stock_status = stock_status_for(product.stock_quantity or 0)
    product.updated_at = utcnow()

    movement = StockMovement(
        product_id=product.id,
        variant_id=variant.id if variant is not None else None,
        sku=variant.sku if variant is not None else product.sku,
        product_name=product.name,
        variant_label=_variant_label(variant) if variant is not None else None,
        movement_type=movement_type,
        quantity=qty,
        previous_quantity=previous,
        new_quantity=new,
        reason=(reason or "").strip() or None,
        reference=(str(reference).strip()[:64] if reference else None),
        created_by=created_by,
    )
    db.session.add(movement)
    if commit:
        db.session.commit()

    current_app.logger.info(
        "Stock %s %+d on %s (%s -> %s) by %s",
        movement_type, qty, movement.sku, previous, new, created_by or "system",
    )
    return movement


def list_movements(
    *,
    product_id: Optional[int] = None,
    movement_type: Optional[str] = None,
    reference: Optional[str] = None,
    limit: int = 50,
) -> list[StockMovement]:
    """Newest first."""
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if movement_type:
        q = q.filter(StockMovement.movement_type == movement_type.strip().upper())
    if reference:
        q = q.filter(StockMovement.reference == reference.strip())
    return q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(max(1, min(limit, 500))).all()
