# Overview: Service-layer operations for shipping fee resolution; encapsulates business logic and database work.

"""
Fee Resolver

Per-item shipping attributes resolve through an explicit ordered fallback:
product value (if not NULL) -> category value (if not NULL) -> 0.

Shipping cost for a cart:
    base_rate * (1 + max(markup%) / 100) + sum(handling_fee * quantity)
Free shipping zeroes the whole amount.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Optional

from ..extensions import db
from ..models import Category
from ..validation import quantize_money, to_money
from . import settings_service


DEFAULT_FEE = Decimal("0")
FEE_FIELDS = ("shipping_markup_percent", "handling_fee")


def first_non_null(*values, default=DEFAULT_FEE):
    """Ordered fallback: the first value that is not None, else default."""
    for value in values:
        if value is not None:
            return value
    return default


def _get(item: Any, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def load_categories(slugs: Iterable[str]) -> dict[str, Category]:
    """One query for every distinct slug referenced by the cart."""
    distinct = sorted({s for s in slugs if s})
    if not distinct:
        return {}
    rows = db.session.query(Category).filter(Category.slug.in_(distinct)).all()
    return {c.slug: c for c in rows}


def resolve_item_fees(items: list) -> list[dict]:
    """
    Resolve shipping_markup_percent and handling_fee for each cart item.

    Items may be dicts or objects carrying category_slug and the optional
    product-level fee fields.
    """
    categories = load_categories(_get(item, "category_slug") for item in items)
    resolved = []
    for item in items:
        category = categories.get(_get(item, "category_slug"))
        fees = {}
        for field in FEE_FIELDS:
            value = first_non_null(
                _get(item, field),
                getattr(category, field, None) if category is not None else None,
            )
            fees[field] = Decimal(str(value))
        resolved.append({
            "sku": _get(item, "sku"),
            "category_slug": _get(item, "category_slug"),
            "quantity": int(_get(item, "quantity") or 1),
            **fees,
        })
    return resolved


def qualifies_for_free_shipping(subtotal: Decimal, items: list, settings: Optional[dict] = None) -> bool:
    """
    Enabled + subtotal >= threshold, and when a category allow-list is set,
    every item must be in it. One item outside the list voids it for the cart.
    """
    settings = settings or settings_service.get_shipping_settings()
    if not settings.get("free_shipping_enabled"):
        return False
    threshold = Decimal(str(settings.get("free_shipping_threshold") or 0))
    if Decimal(subtotal) < threshold:
        return False
    allowed = settings.get("free_shipping_categories") or []
    if allowed:
        return all(_get(item, "category_slug") in allowed for item in items)
    return True


def calculate_shipping(
    items: list,
    subtotal: Decimal,
    *,
    base_rate: Any = None,
    settings: Optional[dict] = None,
) -> dict:
    settings = settings or settings_service.get_shipping_settings()
    if base_rate is None:
        base_rate = settings.get("flat_rate", 0)
    base = to_money(base_rate, "base_rate")

    resolved = resolve_item_fees(items)
    free = qualifies_for_free_shipping(subtotal, items, settings)

    markup = max((r["shipping_markup_percent"] for r in resolved), default=DEFAULT_FEE)
    handling = sum((r["handling_fee"] * r["quantity"] for r in resolved), DEFAULT_FEE)
    cost = DEFAULT_FEE if free else quantize_money(base * (1 + markup / 100) + handling)

    return {
        "items": [
            {**r, "shipping_markup_percent": float(r["shipping_markup_percent"]), "handling_fee": float(r["handling_fee"])}
            for r in resolved
        ],
        "base_rate": float(base),
        "markup_percent": float(markup),
        "handling_total": float(handling),
        "free_shipping": free,
        "shipping_cost": cost,
    }
