# Overview: Service-layer operations for promo codes; encapsulates business logic and database work.

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import PromoCode
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    normalize_promo_code,
    quantize_money,
    to_money,
)


PROMO_PERCENTAGE = "percentage"
PROMO_FIXED = "fixed"
VALID_PROMO_TYPES = {PROMO_PERCENTAGE, PROMO_FIXED}


def calculate_discount(promo_type: str, value: Decimal, subtotal: Decimal) -> Decimal:
    """Discount for a subtotal, never more than the subtotal and never negative."""
    subtotal = Decimal(subtotal)
    if promo_type == PROMO_PERCENTAGE:
        discount = subtotal * Decimal(value) / Decimal(100)
    else:
        discount = Decimal(value)
    discount = min(discount, subtotal)
    return quantize_money(max(discount, Decimal("0")))


def find_promo(code: str) -> PromoCode | None:
    normalized = normalize_promo_code(code)
    if not normalized:
        return None
    return db.session.query(PromoCode).filter(PromoCode.code == normalized).first()


def validate_promo(code: str, subtotal: Decimal) -> dict:
    """
    Check a code against a cart subtotal.

    Returns {"valid": False, "error": ...} or
    {"valid": True, "code", "type", "value", "discount"}.
    """
    promo = find_promo(code)
    if promo is None:
        return {"valid": False, "error": "Invalid promo code"}
    if not promo.active:
        return {"valid": False, "error": "This promo code is no longer active"}
    if promo.usage_limit and promo.usage_limit > 0 and promo.usage_count >= promo.usage_limit:
        return {"valid": False, "error": "This promo code has reached its usage limit"}
    if promo.min_spend is not None and Decimal(subtotal) < promo.min_spend:
        return {"valid": False, "error": f"Minimum spend of {promo.min_spend:.2f} required"}

    return {
        "valid": True,
        "code": promo.code,
        "type": promo.promo_type,
        "value": promo.value,
        "discount": calculate_discount(promo.promo_type, promo.value, subtotal),
    }


def increment_usage(code: str) -> bool:
    """Atomic usage_count + 1. Does not commit."""
    normalized = normalize_promo_code(code)
    if not normalized:
        return False
    updated = db.session.query(PromoCode).filter(PromoCode.code == normalized).update(
        {PromoCode.usage_count: PromoCode.usage_count + 1},
        synchronize_session=False,
    )
    return updated == 1


# =============================================================================
# ADMIN CRUD
# =============================================================================

def _apply_fields(promo: PromoCode, data: dict[str, Any], *, creating: bool) -> None:
    if "type" in data or creating:
        promo_type = str(data.get("type") or "").strip().lower()
        if promo_type not in VALID_PROMO_TYPES:
            raise ValidationError("type must be 'percentage' or 'fixed'")
        promo.promo_type = promo_type
    if "value" in data or creating:
        promo.value = to_money(data.get("value"), "value")
        if promo.value <= 0:
            raise ValidationError("value must be greater than zero")
    if promo.promo_type == PROMO_PERCENTAGE and promo.value is not None and promo.value > 100:
        raise ValidationError("percentage value cannot exceed 100")
    if "min_spend" in data:
        promo.min_spend = to_money(data.get("min_spend"), "min_spend", allow_none=True)
    if "usage_limit" in data:
        limit = data.get("usage_limit")
        if limit in (None, ""):
            promo.usage_limit = None
        elif isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            raise ValidationError("usage_limit must be a non-negative integer")
        else:
            promo.usage_limit = limit
    if "active" in data:
        promo.active = bool(data["active"])


def create_promo(data: dict[str, Any]) -> PromoCode:
    code = normalize_promo_code(data.get("code"))
    if not code:
        raise ValidationError("code is required")
    if find_promo(code) is not None:
        raise ConflictError(f"Promo code {code} already exists")

    promo = PromoCode(code=code, usage_count=0, active=True)
    _apply_fields(promo, data, creating=True)
    promo.usage_count = 0
    db.session.add(promo)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Promo code {code} already exists")
    return promo


def get_promo(promo_id: int) -> PromoCode:
    promo = db.session.get(PromoCode, promo_id)
    if promo is None:
        raise NotFoundError("Promo code not found")
    return promo


def update_promo(promo_id: int, data: dict[str, Any]) -> PromoCode:
    promo = get_promo(promo_id)
    if "code" in data:
        code = normalize_promo_code(data["code"])
        if not code:
            raise ValidationError("code cannot be empty")
        existing = find_promo(code)
        if existing is not None and existing.id != promo.id:
            raise ConflictError(f"Promo code {code} already exists")
        promo.code = code
    _apply_fields(promo, data, creating=False)
    db.session.commit()
    return promo


def toggle_promo(promo_id: int) -> PromoCode:
    promo = get_promo(promo_id)
    promo.active = not promo.active
    db.session.commit()
    return promo


def delete_promo(promo_id: int) -> None:
    promo = get_promo(promo_id)
    db.session.delete(promo)
    db.session.commit()


def list_promos() -> list[PromoCode]:
    return db.session.query(PromoCode).order_by(PromoCode.created_at.desc(), PromoCode.id.desc()).all()
