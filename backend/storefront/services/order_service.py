# Overview: Service-layer operations for the order state machine; encapsulates business logic and database work.

"""
Order State Machine

    PENDING ──> PENDING_PAYMENT ──> PAID
       │               │
       └──> FAILED     └──> CANCELLED (admin rejection)

    PAID ──> PARTIAL_REFUND ──> REFUNDED   (refund_service)

WHY: Gateways retry webhooks, customers poll for status and admins approve
transfers by hand, all against the same order. Every transition that matters
is a conditional UPDATE on the current status (compare-and-swap), so exactly
one caller wins and the losers see a no-op.

DESIGN:
- mark_paid() is the only way into PAID; its rowcount decides who runs
  fulfillment.
- Promo usage is counted on the PAID transition, not at checkout, so
  abandoned carts do not burn a limited code.
- Reservations are released at most once (reservation_status HELD ->
  RELEASED is also a CAS).
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import or_

from ..extensions import db
from ..models import Order
from ..validation import ValidationError, sanitize_order_id
from storefront.time_utils import utcnow
from . import promotions_service, reservation_service


class OrderError(Exception):
    """Raised for order operation errors."""
    pass


class OrderNotFoundError(OrderError):
    pass


class OrderStateError(OrderError):
    pass


# =============================================================================
# STATUS (CONSTANTS)
# =============================================================================

ORDER_PENDING = "PENDING"
ORDER_PENDING_PAYMENT = "PENDING_PAYMENT"
ORDER_PAID = "PAID"
ORDER_FAILED = "FAILED"
ORDER_CANCELLED = "CANCELLED"
ORDER_PARTIAL_REFUND = "PARTIAL_REFUND"
ORDER_REFUNDED = "REFUNDED"

PAYABLE_STATUSES = [ORDER_PENDING, ORDER_PENDING_PAYMENT]
STALE_STATUSES = [ORDER_PENDING, ORDER_PENDING_PAYMENT, ORDER_FAILED]

LOYVERSE_PENDING = "PENDING"
LOYVERSE_SYNCED = "SYNCED"
LOYVERSE_PARTIAL_SYNC = "PARTIAL_SYNC"
LOYVERSE_FAILED = "FAILED"

RESERVATION_HELD = "HELD"
RESERVATION_RELEASED = "RELEASED"
RESERVATION_FINALIZED = "FINALIZED"

DELIVERY = "delivery"
SELF_COLLECTION = "self_collection"

SHIPPING_PENDING = "PENDING"
SHIPPING_READY_TO_SHIP = "READY_TO_SHIP"
SHIPPING_FAILED = "SHIPMENT_FAILED"
SHIPPING_READY_FOR_COLLECTION = "READY_FOR_COLLECTION"
SHIPPING_COLLECTED = "COLLECTED"


# =============================================================================
# LOOKUPS
# =============================================================================

def find_order(order_id: str) -> Optional[Order]:
    if not order_id:
        return None
    return db.session.get(Order, order_id)


def get_order(order_id: str) -> Order:
    order = find_order(order_id)
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")
    return order


def get_public_order(raw_order_id: str) -> dict:
    """
    Customer-facing lookup.

    The id is stripped to [a-zA-Z0-9-_]; anything that changes under
    stripping is rejected as malformed rather than looked up.
    """
    cleaned = sanitize_order_id(raw_order_id)
    if not cleaned or cleaned != raw_order_id:
        raise ValidationError("Invalid order ID format")
    order = find_order(cleaned)
    if order is None:
        raise OrderNotFoundError("Order not found")
    return order.to_public_dict()


def list_orders(
    *,
    status: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 100,
) -> list[Order]:
    q = db.session.query(Order)
    if status:
        q = q.filter(Order.status == status.upper())
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(
            Order.id.ilike(term),
            Order.customer_email.ilike(term),
            Order.customer_phone.ilike(term),
            Order.customer_name.ilike(term),
            Order.tracking_no.ilike(term),
        ))
    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(max(1, min(limit, 500))).all()


# =============================================================================
# TRANSITIONS
# =============================================================================

def mark_paid(
    order_id: str,
    *,
    gateway_bill_id: Optional[str] = None,
    approved_by: Optional[str] = None,
) -> bool:
    """
    PENDING/PENDING_PAYMENT -> PAID as a single conditional UPDATE.

    Returns True only for the caller whose UPDATE matched; a concurrent or
    repeated caller gets False and must not run fulfillment.
    """
    now = utcnow()
    values = {Order.status: ORDER_PAID, Order.paid_at: now, Order.payment_error: None}
    if gateway_bill_id:
        values[Order.gateway_bill_id] = gateway_bill_id
    if approved_by:
        values[Order.payment_approved_by] = approved_by
        values[Order.payment_approved_at] = now

    updated = db.session.query(Order).filter(
        Order.id == order_id,
        Order.status.in_(PAYABLE_STATUSES),
    ).update(values, synchronize_session=False)

    if updated != 1:
        return False

    promo_code = db.session.query(Order.promo_code).filter(Order.id == order_id).scalar()
    if promo_code:
        promotions_service.increment_usage(promo_code)
    db.session.commit()
    return True


def release_order_reservations(order: Order) -> bool:
    """HELD -> RELEASED once, giving stock back. Does not commit."""
    updated = db.session.query(Order).filter(
        Order.id == order.id,
        Order.reservation_status == RESERVATION_HELD,
    ).update({Order.reservation_status: RESERVATION_RELEASED}, synchronize_session=False)
    if updated != 1:
        return False
    reservation_service.release_items(reservation_service.lines_for_order(order))
    return True


def finalize_order_reservations(order: Order) -> bool:
    """HELD -> FINALIZED once, turning the hold into depletion. Does not commit."""
    updated = db.session.query(Order).filter(
        Order.id == order.id,
        Order.reservation_status == RESERVATION_HELD,
    ).update(
        {Order.reservation_status: RESERVATION_FINALIZED, Order.stock_deducted: True},
        synchronize_session=False,
    )
    if updated != 1:
        return False
    reservation_service.finalize_items(reservation_service.lines_for_order(order))
    return True


def fail_order(order_id: str, error: str) -> bool:
    """Payment could not be started: FAILED, reservations released."""
    order = find_order(order_id)
    if order is None:
        return False
    updated = db.session.query(Order).filter(
        Order.id == order_id,
        Order.status.in_(PAYABLE_STATUSES),
    ).update({Order.status: ORDER_FAILED, Order.payment_error: (error or "")[:500]}, synchronize_session=False)
    if updated == 1:
        release_order_reservations(order)
    db.session.commit()
    return updated == 1


def reject_order(order_id: str, *, reason: str, rejected_by: str) -> Order:
    """Admin rejection of an unpaid order -> CANCELLED, reservations released."""
    order = get_order(order_id)
    if order.status == ORDER_CANCELLED:
        return order
    if order.status not in PAYABLE_STATUSES:
        raise OrderStateError(f"Cannot reject order in status {order.status}")

    updated = db.session.query(Order).filter(
        Order.id == order_id,
        Order.status.in_(PAYABLE_STATUSES),
    ).update({
        Order.status: ORDER_CANCELLED,
        Order.rejection_reason: reason or "Payment rejected",
        Order.rejected_by: rejected_by,
        Order.rejected_at: utcnow(),
    }, synchronize_session=False)
    if updated != 1:
        db.session.rollback()
        raise OrderStateError("Order status changed, reload and try again")
    release_order_reservations(order)
    db.session.commit()
    db.session.refresh(order)
    return order


def mark_collected(order_id: str) -> Order:
    order = get_order(order_id)
    if order.delivery_method != SELF_COLLECTION:
        raise OrderStateError("Only self-collection orders can be marked collected")
    if order.status not in (ORDER_PAID, ORDER_PARTIAL_REFUND):
        raise OrderStateError(f"Cannot mark order in status {order.status} as collected")
    if order.collected_at is None:
        order.collected_at = utcnow()
        order.shipping_status = SHIPPING_COLLECTED
        db.session.commit()
    return order
