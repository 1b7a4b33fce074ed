# Overview: Service-layer operations for post-payment fulfillment; encapsulates business logic and database work.

"""
Fulfillment Orchestrator

WHY: Once an order is PAID three things must happen against three systems:
a sales receipt in the POS, the reservation turning into real depletion,
and (for delivery) a courier booking. Any of them can fail independently,
and none of them may undo the payment.

DESIGN:
- Each step records its own outcome on the order and is skipped when that
  outcome already says "done": loyverse_status SYNCED/PARTIAL_SYNC,
  reservation_status no longer HELD, shipment_id present.
- External failures are caught here and become order fields
  (loyverse_error, shipping_error); callers get a result dict.
- Before calling the POS a receipt attempt id is persisted and sent as the
  Idempotency-Key. If the outcome of a call is unknown (timeout, 5xx) the
  id is kept and reused on the next attempt; a definite rejection clears it.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Optional

from flask import current_app

from ..clients import PosApiError, PosConfigurationError, PosError, ShipmentError
from ..clients.schemas import Money, ReceiptLine, ReceiptPayload, ReceiptPayment
from ..extensions import db
from ..models import Order, Product, ProductVariant
from storefront.time_utils import utcnow
from . import order_service
from .order_service import (
    DELIVERY,
    LOYVERSE_FAILED,
    LOYVERSE_PARTIAL_SYNC,
    LOYVERSE_PENDING,
    LOYVERSE_SYNCED,
    ORDER_PAID,
    SELF_COLLECTION,
    SHIPPING_COLLECTED,
    SHIPPING_FAILED,
    SHIPPING_READY_FOR_COLLECTION,
    SHIPPING_READY_TO_SHIP,
)


MAX_ERROR_LENGTH = 500

# The POS certainly did not record a receipt for these; any other PosError
# (timeout, 5xx, unreadable response) leaves the outcome unknown
_DEFINITE_POS_ERRORS = (PosApiError, PosConfigurationError)


def process_successful_order(order_id: str, *, pos, shipping=None) -> dict:
    """
    Run fulfillment for a PAID order. Safe to call any number of times.

    Returns {"success": bool, "order_id", "loyverse_status", "shipping_status",
    "error"?}. success reflects whether the workflow ran, not whether every
    external step succeeded; step failures are recorded on the order.
    """
    order = order_service.find_order(order_id)
    if order is None:
        return {"success": False, "order_id": order_id, "error": "Order not found"}
    if order.status != ORDER_PAID:
        return {
            "success": False,
            "order_id": order_id,
            "error": f"Order is {order.status}, expected PAID",
        }

    logger = current_app.logger

    # 1-3. POS receipt
    if order.loyverse_status in (LOYVERSE_SYNCED, LOYVERSE_PARTIAL_SYNC):
        logger.info("Order %s already has a POS receipt (%s), skipping", order.id, order.loyverse_status)
    else:
        sync_receipt(order, pos)

    # 4. Reservation -> depletion
    if order_service.finalize_order_reservations(order):
        logger.info("Order %s reservations finalized", order.id)
    db.session.commit()

    # 5. Shipment / collection
    book_shipment(order, shipping)

    if order.processed_at is None:
        order.processed_at = utcnow()
    db.session.commit()

    return {
        "success": True,
        "order_id": order.id,
        "loyverse_status": order.loyverse_status,
        "loyverse_error": order.loyverse_error,
        "shipping_status": order.shipping_status,
    }


# =============================================================================
# POS RECEIPT
# =============================================================================

class _VariantResolver:
    """SKU -> POS variant id, fetching the POS item list at most once per run."""

    def __init__(self, pos):
        self.pos = pos
        self._by_sku: Optional[dict[str, str]] = None

    def resolve(self, sku: str) -> Optional[str]:
        if not sku:
            return None
        if self._by_sku is None:
            self._by_sku = {}
            for item in self.pos.get_items():
                for variant in item.variants:
                    if variant.sku:
                        self._by_sku.setdefault(variant.sku.upper(), variant.variant_id)
        return self._by_sku.get(sku.strip().upper())


def _backfill_variant_id(line, variant_id: str) -> None:
    """Remember a resolved POS variant id on the line and the catalog record."""
    line.loyverse_variant_id = variant_id
    if line.variant_id is not None:
        variant = db.session.get(ProductVariant, line.variant_id)
        if variant is not None and not variant.loyverse_variant_id:
            variant.loyverse_variant_id = variant_id
    elif line.product_id is not None:
        product = db.session.get(Product, line.product_id)
        if product is not None and not product.loyverse_variant_id:
            product.loyverse_variant_id = variant_id


def _fee_line(order: Order, fee_variant_id: str) -> Optional[ReceiptLine]:
    collection_fee = Decimal(order.collection_fee or 0)
    shipping_cost = Decimal(order.shipping_cost or 0)
    if order.delivery_method == SELF_COLLECTION and collection_fee > 0:
        amount, note = collection_fee, f"Collection Fee: {collection_fee:.2f}"
    elif shipping_cost > 0:
        amount, note = shipping_cost, f"Shipping: {shipping_cost:.2f}"
    else:
        return None
    if not fee_variant_id:
        current_app.logger.warning("Order %s has a fee of %s but POS_SHIPPING_FEE_VARIANT_ID is not set", order.id, amount)
        return None
    return ReceiptLine(variant_id=fee_variant_id, quantity=1, price=float(amount), line_note=note)


def build_receipt(order: Order, pos, *, only_skus: Optional[set] = None) -> tuple[Optional[ReceiptPayload], list[str]]:
    """
    Build the receipt payload; returns (payload or None, skus that could not
    be matched to a POS variant). only_skus restricts the receipt to a retry
    of previously missing lines, without the fee line.
    """
    config = current_app.config
    resolver = _VariantResolver(pos)
    lines: list[ReceiptLine] = []
    missing: list[str] = []

    for line in order.lines:
        if only_skus is not None and line.sku not in only_skus:
            continue
        variant_id = line.loyverse_variant_id
        if not variant_id:
            variant_id = resolver.resolve(line.sku)
            if variant_id:
                _backfill_variant_id(line, variant_id)
        if not variant_id:
            current_app.logger.warning("Order %s: no POS variant for SKU %s (%s)", order.id, line.sku, line.name)
            missing.append(line.sku)
            continue
        lines.append(ReceiptLine(variant_id=variant_id, quantity=line.quantity, price=float(line.web_price)))

    if not lines:
        return None, missing

    if only_skus is None:
        fee = _fee_line(order, config.get("POS_SHIPPING_FEE_VARIANT_ID", ""))
        if fee is not None:
            lines.append(fee)

    currency = config.get("POS_CURRENCY", "MYR")
    total = float(order.total_amount or 0)
    receipt_number = f"R-{order.id}" if only_skus is None else f"R-{order.id}-{order.pos_receipt_attempt_id[:8]}"
    payload = ReceiptPayload(
        receipt_number=receipt_number,
        note=f"Web Order {order.id}",
        order_id=order.id,
        store_id=config.get("LOYVERSE_STORE_ID", ""),
        line_items=lines,
        total_money=Money(amount=total, currency=currency),
        payments=[ReceiptPayment(
            payment_type_id=config.get("LOYVERSE_PAYMENT_TYPE_ID", ""),
            amount_money=Money(amount=total, currency=currency),
        )],
    )
    return payload, missing


def sync_receipt(order: Order, pos, *, only_skus: Optional[set] = None) -> str:
    """Push the order's receipt to the POS and record the outcome. Returns loyverse_status."""
    logger = current_app.logger
    # A failed retry of missing lines leaves the earlier receipt in place
    failed_status = LOYVERSE_FAILED if only_skus is None else LOYVERSE_PARTIAL_SYNC

    if not order.pos_receipt_attempt_id:
        order.pos_receipt_attempt_id = uuid.uuid4().hex
    # Persisted before the call goes out
    db.session.commit()

    try:
        if not pos.configured:
            raise PosConfigurationError("LOYVERSE_API_TOKEN is not configured")
        payload, missing = build_receipt(order, pos, only_skus=only_skus)
        if payload is None:
            order.loyverse_status = failed_status
            order.loyverse_error = "No valid items to sync"
            order.loyverse_failed_items = list(missing)
            order.pos_receipt_attempt_id = None
            db.session.commit()
            logger.error("Order %s: no receipt lines could be matched to POS variants", order.id)
            return order.loyverse_status

        receipt = pos.create_receipt(payload, idempotency_key=order.pos_receipt_attempt_id)
    except PosError as exc:
        _record_pos_failure(order, exc, failed_status, clear_attempt=isinstance(exc, _DEFINITE_POS_ERRORS))
        return order.loyverse_status

    order.loyverse_receipt_number = receipt.receipt_number
    order.loyverse_error = None
    order.loyverse_failed_items = list(missing)
    if missing:
        order.loyverse_status = LOYVERSE_PARTIAL_SYNC
        logger.warning("Order %s partially synced to POS; missing SKUs: %s", order.id, ", ".join(missing))
    else:
        order.loyverse_status = LOYVERSE_SYNCED
        logger.info("Order %s synced to POS as receipt %s", order.id, receipt.receipt_number)
    db.session.commit()
    return order.loyverse_status


def _record_pos_failure(order: Order, exc: Exception, status: str, *, clear_attempt: bool) -> None:
    current_app.logger.exception("POS receipt failed for order %s", order.id)
    order.loyverse_status = status
    order.loyverse_error = str(exc)[:MAX_ERROR_LENGTH]
    if clear_attempt:
        order.pos_receipt_attempt_id = None
    db.session.commit()


def reprocess_pos_sync(order_id: str, *, pos) -> dict:
    """
    Admin retry of the POS receipt.

    Refused when the order is not PAID or already SYNCED. For PARTIAL_SYNC
    only the previously missing lines are resent.
    """
    order = order_service.find_order(order_id)
    if order is None:
        return {"success": False, "error": "Order not found"}
    if order.status != ORDER_PAID:
        return {"success": False, "error": f"Only paid orders can be re-synced (status {order.status})"}
    if order.loyverse_status == LOYVERSE_SYNCED:
        return {"success": False, "error": "Order is already synced to the POS"}

    only_skus = None
    if order.loyverse_status == LOYVERSE_PARTIAL_SYNC:
        only_skus = set(order.loyverse_failed_items or [])
        if not only_skus:
            order.loyverse_status = LOYVERSE_SYNCED
            db.session.commit()
            return {"success": True, "loyverse_status": order.loyverse_status}
        # A new receipt unless the last retry ended with an unknown outcome
        if not order.loyverse_error:
            order.pos_receipt_attempt_id = None

    order.loyverse_status = LOYVERSE_PENDING
    order.loyverse_error = None
    db.session.commit()

    status = sync_receipt(order, pos, only_skus=only_skus)
    result = {"success": not order.loyverse_error, "loyverse_status": status}
    if order.loyverse_error:
        result["error"] = order.loyverse_error
    if order.loyverse_failed_items:
        result["failed_items"] = list(order.loyverse_failed_items)
    return result


# =============================================================================
# SHIPMENT
# =============================================================================

def book_shipment(order: Order, shipping) -> None:
    logger = current_app.logger

    if order.delivery_method == SELF_COLLECTION:
        if order.shipping_status != SHIPPING_COLLECTED:
            order.shipping_status = SHIPPING_READY_FOR_COLLECTION
        order.tracking_no = "N/A"
        order.shipment_id = None
        return

    if order.delivery_method != DELIVERY:
        return
    if order.shipment_id:
        logger.info("Order %s already has shipment %s, skipping", order.id, order.shipment_id)
        return
    if shipping is None:
        logger.warning("No shipping client configured; order %s needs manual booking", order.id)
        return

    try:
        order.shipment_id = shipping.create_shipment(order)
    except ShipmentError as exc:
        logger.exception("Shipment booking failed for order %s", order.id)
        order.shipping_status = SHIPPING_FAILED
        order.shipping_error = str(exc)[:MAX_ERROR_LENGTH]
        return

    order.shipping_status = SHIPPING_READY_TO_SHIP
    order.shipping_error = None
    logger.info("Order %s booked as shipment %s", order.id, order.shipment_id)
