# Overview: Service-layer operations for settings documents; encapsulates business logic and database work.

"""
Settings documents (payment, shipping, collection).

Each concern is a single keyed JSON document. Reads deep-merge what is
stored over the hardcoded default, so a missing document or a missing field
always resolves to a value. Writes merge into what is stored; fields not
named in an update are kept.
"""

from __future__ import annotations

import copy
from typing import Any

from ..extensions import db
from ..models import SettingsDocument
from ..validation import NotFoundError, ValidationError, require_text, to_money
from storefront.time_utils import epoch_millis


# =============================================================================
# KEYS & DEFAULTS
# =============================================================================

PAYMENT = "payment"
SHIPPING = "shipping"
COLLECTION = "collection"

GATEWAY_MANUAL = "manual"
GATEWAY_CHIP = "chip"
GATEWAY_BIZAPPAY = "bizappay"
VALID_GATEWAYS = {GATEWAY_MANUAL, GATEWAY_CHIP, GATEWAY_BIZAPPAY}

DEFAULTS: dict[str, dict] = {
    PAYMENT: {
        "enabled_gateway": GATEWAY_CHIP,
        "chip": {
            "enabled": True,
            "environment": "test",
            "brand_id": "",
        },
        "bizappay": {
            "enabled": False,
        },
        "manual_payment": {
            "enabled": False,
            "require_admin_approval": True,
            "instructions": "",
            "allowed_methods": ["bank_transfer"],
        },
    },
    SHIPPING: {
        "free_shipping_enabled": False,
        "free_shipping_threshold": 100,
        "free_shipping_applies_to": "all",
        "free_shipping_regions": [],
        "free_shipping_categories": [],
        "flat_rate": 10,
    },
    COLLECTION: {
        "enabled": False,
        "collection_points": [],
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    """Return base updated recursively with override; neither input is mutated."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _check_key(key: str) -> None:
    if key not in DEFAULTS:
        raise ValidationError(f"Unknown settings document: {key}")


# =============================================================================
# READ / MERGE-UPDATE
# =============================================================================

def get_settings(key: str) -> dict:
    _check_key(key)
    doc = db.session.get(SettingsDocument, key)
    return deep_merge(DEFAULTS[key], doc.value if doc else {})


def update_settings(key: str, changes: dict[str, Any]) -> dict:
    """Merge changes into the stored document and return the resolved settings."""
    _check_key(key)
    if not isinstance(changes, dict):
        raise ValidationError("Settings update must be an object")
    if key == PAYMENT:
        _validate_payment_changes(changes)

    doc = db.session.get(SettingsDocument, key)
    if doc is None:
        doc = SettingsDocument(key=key, value={})
        db.session.add(doc)
    # Reassign so the JSON column is flagged dirty
    doc.value = deep_merge(doc.value or {}, changes)
    db.session.commit()
    return deep_merge(DEFAULTS[key], doc.value)


def _validate_payment_changes(changes: dict) -> None:
    gateway = changes.get("enabled_gateway")
    if gateway is not None and gateway not in VALID_GATEWAYS:
        raise ValidationError(f"enabled_gateway must be one of {sorted(VALID_GATEWAYS)}")
    chip = changes.get("chip") or {}
    if "environment" in chip and chip["environment"] not in ("test", "live"):
        raise ValidationError("chip.environment must be 'test' or 'live'")


def get_payment_settings() -> dict:
    return get_settings(PAYMENT)


def get_shipping_settings() -> dict:
    return get_settings(SHIPPING)


def get_collection_settings() -> dict:
    return get_settings(COLLECTION)


def switch_payment_gateway(gateway: str) -> dict:
    if gateway not in VALID_GATEWAYS:
        raise ValidationError(f"gateway must be one of {sorted(VALID_GATEWAYS)}")
    return update_settings(PAYMENT, {"enabled_gateway": gateway})


# =============================================================================
# COLLECTION POINTS
# =============================================================================

def _save_points(points: list[dict]) -> dict:
    # Lists replace rather than merge
    return update_settings(COLLECTION, {"collection_points": points})


def _point_fields(data: dict, *, partial: bool) -> dict:
    fields = {}
    for name in ("name", "address"):
        if name in data or not partial:
            fields[name] = require_text(data, name)
    if "fee" in data or not partial:
        fields["fee"] = float(to_money(data.get("fee", 0), "fee"))
    for name in ("operating_hours", "contact"):
        if name in data:
            fields[name] = str(data[name] or "").strip()
    if "active" in data:
        fields["active"] = bool(data["active"])
    return fields


def add_collection_point(data: dict) -> dict:
    point = {"id": f"cp_{epoch_millis()}", "active": True}
    point.update(_point_fields(data, partial=False))
    points = list(get_collection_settings()["collection_points"])
    while any(p.get("id") == point["id"] for p in points):
        point["id"] = f"cp_{epoch_millis() + len(points)}"
    points.append(point)
    _save_points(points)
    return point


def update_collection_point(point_id: str, data: dict) -> dict:
    points = [dict(p) for p in get_collection_settings()["collection_points"]]
    for point in points:
        if point.get("id") == point_id:
            point.update(_point_fields(data, partial=True))
            _save_points(points)
            return point
    raise NotFoundError(f"Collection point {point_id} not found")


def delete_collection_point(point_id: str) -> None:
    points = get_collection_settings()["collection_points"]
    remaining = [p for p in points if p.get("id") != point_id]
    if len(remaining) == len(points):
        raise NotFoundError(f"Collection point {point_id} not found")
    _save_points(remaining)


def find_collection_point(point_id: str) -> dict | None:
    settings = get_collection_settings()
    for point in settings["collection_points"]:
        if point.get("id") == point_id and point.get("active", True):
            return point
    return None
