# Overview: Service-layer operations for live POS stock checks before checkout.

from __future__ import annotations

from typing import Optional

from flask import current_app

from ..clients import PosError
from ..validation import ValidationError, to_quantity


UNAVAILABLE_MESSAGE = "Unable to verify stock right now. Please try again."


class _PosStockView:
    """SKU -> variant and variant -> on-hand maps, each built once per check."""

    def __init__(self, pos):
        self.pos = pos
        self._variant_by_sku: Optional[dict[str, str]] = None
        self._stock: Optional[dict[str, float]] = None

    def variant_id(self, sku: str, known: Optional[str] = None) -> Optional[str]:
        if known:
            return known
        if self._variant_by_sku is None:
            self._variant_by_sku = {}
            for item in self.pos.get_items():
                for variant in item.variants:
                    if variant.sku:
                        self._variant_by_sku.setdefault(variant.sku.upper(), variant.variant_id)
        return self._variant_by_sku.get((sku or "").strip().upper())

    def on_hand(self, variant_id: str) -> int:
        if self._stock is None:
            self._stock = {}
            for level in self.pos.get_inventory():
                self._stock[level.variant_id] = self._stock.get(level.variant_id, 0) + level.in_stock
        return int(self._stock.get(variant_id, 0))


def check_stock(sku: str, quantity, *, pos, variant_id: Optional[str] = None) -> dict:
    """
    Single-line check: {"available": bool, "current_stock": int, "error"?}.
    """
    qty = to_quantity(quantity)
    view = _PosStockView(pos)
    try:
        resolved = view.variant_id(sku, variant_id)
        if not resolved:
            return {"available": False, "current_stock": 0, "error": "Product not found in POS"}
        current = view.on_hand(resolved)
    except PosError:
        current_app.logger.exception("POS stock check failed for %s", sku)
        return {"available": False, "current_stock": 0, "error": UNAVAILABLE_MESSAGE}

    if qty > current:
        return {"available": False, "current_stock": current, "error": f"Only {current} units available"}
    return {"available": True, "current_stock": current}


def check_cart_stock(items: list, *, pos) -> dict:
    """
    Whole-cart check. Every shortage is collected; nothing fails fast.

    Returns {"available": bool, "errors": [...], "stocks": {sku: on_hand}}.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    view = _PosStockView(pos)
    errors: list[str] = []
    stocks: dict[str, int] = {}
    try:
        for item in items:
            if not isinstance(item, dict):
                raise ValidationError("Invalid cart item")
            sku = str(item.get("sku") or "").strip()
            name = item.get("name") or sku or "Item"
            qty = to_quantity(item.get("quantity"))
            resolved = view.variant_id(sku, item.get("loyverse_variant_id"))
            if not resolved:
                errors.append(f"{name}: Not found in inventory")
                continue
            current = view.on_hand(resolved)
            stocks[sku] = current
            if qty > current:
                errors.append(f"{name}: Only {current} available (requested {qty})")
    except PosError:
        current_app.logger.exception("POS cart stock check failed")
        return {"available": False, "errors": [UNAVAILABLE_MESSAGE], "stocks": stocks}

    return {"available": not errors, "errors": errors, "stocks": stocks}
