from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


# Maximum price per unit: 9,999,999.99
# Guards Numeric(12, 2) columns from overflow and nonsensical prices
MAX_PRICE = Decimal("9999999.99")

CENT = Decimal("0.01")

_SLUG_STRIP = re.compile(r"[^\w-]")
_ORDER_ID_STRIP = re.compile(r"[^a-zA-Z0-9\-_]")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate promo code)."""


class NotFoundError(ValueError):
    """404-level missing record (category, product, promo, collection point)."""


def to_money(value: Any, field: str = "amount", *, allow_none: bool = False) -> Decimal | None:
    """
    Coerce a JSON number/string into a 2dp Decimal.

    Floats are converted through str() so 0.1 stays 0.10, not 0.1000000000000000055.
    """
    if value is None or value == "":
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    if amount > MAX_PRICE:
        raise ValidationError(f"{field} exceeds maximum allowed value")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def quantize_money(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def to_quantity(value: Any, field: str = "quantity") -> int:
    # Reject floats and bools, accept plain digit strings
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        qty = value
    elif isinstance(value, str) and value.strip().isdigit():
        qty = int(value.strip())
    else:
        raise ValidationError(f"{field} must be an integer")
    if qty <= 0:
        raise ValidationError(f"{field} must be positive")
    return qty


def slugify(name: str) -> str:
    """Lowercase, spaces to hyphens, strip non-word characters."""
    slug = (name or "").strip().lower().replace(" ", "-")
    return _SLUG_STRIP.sub("", slug)


def normalize_promo_code(code: Any) -> str:
    return str(code or "").strip().upper()


def sanitize_order_id(order_id: str) -> str:
    return _ORDER_ID_STRIP.sub("", order_id or "")


def require_text(data: dict, field: str) -> str:
    value = data.get(field)
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()
