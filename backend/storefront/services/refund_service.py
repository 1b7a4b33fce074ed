# Overview: Service-layer operations for order refunds; encapsulates business logic and database work.

"""
Refunds

    PAID ──> PARTIAL_REFUND ──> REFUNDED
      └─────────────────────────────^

WHY: A paid order can be refunded in full or item by item after the fact
(damaged goods, a cancelled collection). The money goes back through the
gateway's own back-office; this records what was refunded, by whom, and
optionally puts the returned goods back on the shelf.

DESIGN:
- Only PAID and PARTIAL_REFUND orders are refundable. A line can never be
  refunded beyond its ordered quantity, and the running refunded_amount
  never exceeds total_amount.
- Order and line totals move by conditional UPDATE, so two admins refunding
  the same order at once cannot both succeed on a stale read.
- Returned goods go through the stock movement ledger as RETURN movements.
  While the order's reservation is still HELD the stock never left, so
  nothing is restocked; a full refund releases the hold instead.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from flask import current_app

from ..extensions import db
from ..models import Order, OrderLine, Product, Refund
from ..validation import NotFoundError, ValidationError, quantize_money, to_money, to_quantity
from storefront.time_utils import utcnow
from . import order_service, stock_movement_service
from .concurrency import lock_for_update
from .order_service import (
    ORDER_PAID,
    ORDER_PARTIAL_REFUND,
    ORDER_REFUNDED,
    RESERVATION_HELD,
    OrderNotFoundError,
    OrderStateError,
)

REFUND_FULL = "FULL"
REFUND_PARTIAL = "PARTIAL"

REFUNDABLE_STATUSES = [ORDER_PAID, ORDER_PARTIAL_REFUND]


def _remaining_amount(order: Order) -> Decimal:
    return max(Decimal("0"), Decimal(order.total_amount or 0) - Decimal(order.refunded_amount or 0))


def _refundable_quantity(line: OrderLine) -> int:
    return max(0, line.quantity - (line.refunded_quantity or 0))


def get_refundable_items(order_id: str) -> dict:
    """
    Lines that still have something to refund, with the amount left.

    Returns {"order_id", "status", "refundable_amount", "items": [...]}.
    """
    order = order_service.get_order(order_id)
    items = []
    for line in order.lines:
        remaining = _refundable_quantity(line)
        if remaining <= 0:
            continue
        items.append({
            "line_id": line.id,
            "product_id": line.product_id,
            "variant_id": line.variant_id,
            "sku": line.sku,
            "name": line.name,
            "selected_options": line.selected_options or {},
            "original_quantity": line.quantity,
            "already_refunded": line.refunded_quantity or 0,
            "refundable_quantity": remaining,
            "price": float(line.web_price),
        })
    return {
        "order_id": order.id,
        "status": order.status,
        "refundable": order.status in REFUNDABLE_STATUSES,
        "refundable_amount": float(_remaining_amount(order)),
        "items": items,
    }


def _plan_items(order: Order, raw_items: Optional[list], return_to_stock: bool) -> list[tuple[OrderLine, int, bool]]:
    lines = {line.id: line for line in order.lines}
    if not raw_items:
        return [
            (line, _refundable_quantity(line), return_to_stock)
            for line in order.lines
            if _refundable_quantity(line) > 0
        ]

    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")
    wanted: dict[int, list] = {}
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object")
        line_id = to_quantity(raw.get("line_id"), "line_id")
        line = lines.get(line_id)
        if line is None:
            raise NotFoundError(f"Order line {line_id} not found")
        qty = to_quantity(raw.get("quantity"))
        restock = bool(raw.get("return_to_stock", return_to_stock))
        entry = wanted.setdefault(line.id, [line, 0, restock])
        entry[1] += qty
        entry[2] = entry[2] or restock

    plan = []
    for line, qty, restock in wanted.values():
        remaining = _refundable_quantity(line)
        if qty > remaining:
            raise ValidationError(f"{line.name}: only {remaining} left to refund (requested {qty})")
        plan.append((line, qty, restock))
    return plan


def _restock(order: Order, plan, *, reason: str, refunded_by: str) -> set[int]:
    """RETURN movements for restockable lines. Returns the line ids restocked."""
    restocked = set()
    for line, qty, restock in plan:
        if not restock:
            continue
        if line.product_id is None or db.session.get(Product, line.product_id) is None:
            current_app.logger.warning(
                "Refund for order %s: product for %s no longer exists, not restocked", order.id, line.sku
            )
            continue
        stock_movement_service.record_stock_movement(
            product_id=line.product_id,
            variant_id=line.variant_id,
            movement_type=stock_movement_service.MOVEMENT_RETURN,
            quantity=qty,
            reason=f"Refund: {reason}" if reason else "Refund",
            reference=order.id,
            created_by=refunded_by,
            commit=False,
        )
        restocked.add(line.id)
    return restocked


def process_refund(
    order_id: str,
    *,
    items: Optional[list] = None,
    amount: Any = None,
    return_to_stock: bool = False,
    reason: str = "",
    refunded_by: str = "admin",
) -> dict:
    """
    Refund an order in full (no items) or by line.

    items: [{"line_id": int, "quantity": int, "return_to_stock"?: bool}]
    amount defaults to the whole remaining amount for a full refund, or the
    refunded lines' price for a partial one; an explicit amount overrides
    it but cannot exceed what is left.

    Raises OrderNotFoundError, OrderStateError (not refundable, or changed
    concurrently), ValidationError / NotFoundError for bad items.
    """
    order = lock_for_update(db.session.query(Order).filter(Order.id == order_id)).first()
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")
    if order.status not in REFUNDABLE_STATUSES:
        raise OrderStateError(f"Cannot refund order with status: {order.status}")

    refund_type = REFUND_PARTIAL if items else REFUND_FULL
    plan = _plan_items(order, items, return_to_stock)
    remaining_amount = _remaining_amount(order)

    if amount is not None and amount != "":
        refund_amount = to_money(amount, "amount")
    elif refund_type == REFUND_FULL:
        refund_amount = remaining_amount
    else:
        refund_amount = quantize_money(sum((Decimal(line.web_price) * qty for line, qty, _ in plan), Decimal("0")))
        refund_amount = min(refund_amount, remaining_amount)
    if refund_amount > remaining_amount:
        raise ValidationError(f"Refund amount exceeds the {remaining_amount:.2f} left on this order")
    if not plan and refund_amount <= 0:
        raise ValidationError("Nothing left to refund on this order")

    planned = {line.id: qty for line, qty, _ in plan}
    fully_refunded = refund_type == REFUND_FULL or all(
        _refundable_quantity(line) <= planned.get(line.id, 0) for line in order.lines
    )

    for line, qty, _ in plan:
        updated = db.session.query(OrderLine).filter(
            OrderLine.id == line.id,
            OrderLine.refunded_quantity + qty <= OrderLine.quantity,
        ).update({OrderLine.refunded_quantity: OrderLine.refunded_quantity + qty}, synchronize_session=False)
        if updated != 1:
            db.session.rollback()
            raise OrderStateError("Order changed during refund, reload and try again")

    new_status = ORDER_REFUNDED if fully_refunded else ORDER_PARTIAL_REFUND
    now = utcnow()
    updated = db.session.query(Order).filter(
        Order.id == order.id,
        Order.status.in_(REFUNDABLE_STATUSES),
        Order.refunded_amount + refund_amount <= Order.total_amount,
    ).update({
        Order.status: new_status,
        Order.refunded_amount: Order.refunded_amount + refund_amount,
        Order.refunded_at: now,
    }, synchronize_session=False)
    if updated != 1:
        db.session.rollback()
        raise OrderStateError("Order changed during refund, reload and try again")

    reservation_held = order.reservation_status == RESERVATION_HELD
    restocked: set[int] = set()
    if reservation_held:
        if new_status == ORDER_REFUNDED:
            order_service.release_order_reservations(order)
    else:
        restocked = _restock(order, plan, reason=reason, refunded_by=refunded_by)

    refund = Refund(
        order_id=order.id,
        refund_type=refund_type,
        amount=refund_amount,
        reason=(reason or "").strip(),
        items=[
            {
                "line_id": line.id,
                "sku": line.sku,
                "name": line.name,
                "quantity": qty,
                "returned_to_stock": line.id in restocked,
            }
            for line, qty, _ in plan
        ],
        refunded_by=refunded_by,
    )
    db.session.add(refund)
    db.session.commit()
    db.session.refresh(order)

    current_app.logger.info(
        "Order %s %s refund of %s by %s (%s)", order.id, refund_type, refund_amount, refunded_by, new_status
    )
    return {
        "success": True,
        "order_id": order.id,
        "status": order.status,
        "refunded_amount": float(order.refunded_amount),
        "refund": refund.to_dict(),
    }
