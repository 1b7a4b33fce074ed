# Overview: Service-layer operations for maintenance; encapsulates business logic and database work.

"""
Maintenance jobs: stale-order sweep and the admin cleanup actions.

Deletes run chunk by chunk, each chunk its own commit, capped at
BATCH_WRITE_LIMIT - BATCH_SAFETY_MARGIN rows. All jobs return a result dict
and never raise storage errors to the caller.
"""

from __future__ import annotations

from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Order, OrderLine, Refund
from storefront.time_utils import days_ago, to_utc_z
from . import order_service, reservation_service, stock_sync_service
from .concurrency import BatchWriter, chunked, describe_backend_error
from .order_service import RESERVATION_HELD, STALE_STATUSES


def _delete_orders(order_ids: list[str], writer: BatchWriter) -> int:
    """Delete orders (and their lines) in writer-sized chunks, releasing held stock first."""
    deleted = 0
    for chunk in chunked(order_ids, writer.cap):
        held = db.session.query(Order).filter(
            Order.id.in_(chunk),
            Order.reservation_status == RESERVATION_HELD,
        ).all()
        for order in held:
            order_service.release_order_reservations(order)
        db.session.query(OrderLine).filter(OrderLine.order_id.in_(chunk)).delete(synchronize_session=False)
        deleted += db.session.query(Order).filter(Order.id.in_(chunk)).delete(synchronize_session=False)
        writer.add(len(chunk))
    writer.flush()
    return deleted


def cleanup_stale_orders(*, days: Optional[int] = None, limit: Optional[int] = None) -> dict:
    """
    Permanently delete PENDING / PENDING_PAYMENT / FAILED orders older than
    `days` (default STALE_ORDER_DAYS), at most `limit` per status per run.
    """
    config = current_app.config
    days = config.get("STALE_ORDER_DAYS", 7) if days is None else days
    limit = config.get("STALE_ORDER_SWEEP_LIMIT", 200) if limit is None else limit
    cutoff = days_ago(days)

    try:
        order_ids: list[str] = []
        for status in STALE_STATUSES:
            rows = (
                db.session.query(Order.id)
                .filter(Order.status == status, Order.created_at < cutoff)
                .order_by(Order.created_at.asc())
                .limit(limit)
                .all()
            )
            order_ids.extend(row.id for row in rows)
        order_ids = list(dict.fromkeys(order_ids))

        deleted = _delete_orders(order_ids, BatchWriter()) if order_ids else 0
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Stale order cleanup failed")
        return {"success": False, "error": describe_backend_error(exc)}

    current_app.logger.info("Stale order cleanup deleted %s orders older than %s days", deleted, days)
    return {"success": True, "deleted": deleted, "cutoff": to_utc_z(cutoff)}


def delete_all_orders() -> dict:
    """Admin wipe of every order, chunked."""
    writer = BatchWriter()
    deleted = 0
    try:
        while True:
            ids = [row.id for row in db.session.query(Order.id).limit(writer.cap).all()]
            if not ids:
                break
            db.session.query(Refund).filter(Refund.order_id.in_(ids)).delete(synchronize_session=False)
            db.session.query(OrderLine).filter(OrderLine.order_id.in_(ids)).delete(synchronize_session=False)
            deleted += db.session.query(Order).filter(Order.id.in_(ids)).delete(synchronize_session=False)
            writer.add(len(ids))
            writer.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Delete all orders failed")
        return {"success": False, "error": describe_backend_error(exc), "deleted": deleted}

    current_app.logger.info("Deleted %s orders in %s batches", deleted, writer.commits)
    return {"success": True, "deleted": deleted, "batches": writer.commits}


def reset_reserved_stock() -> dict:
    try:
        result = reservation_service.reset_reserved_stock()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Reset reserved stock failed")
        return {"success": False, "error": describe_backend_error(exc)}
    current_app.logger.info("Reset reservations: %s", result)
    return {"success": True, **result}


def run_full_cleanup(*, pos) -> dict:
    """Delete orders, reset reservations, resync from POS; stop at the first failure."""
    steps = [
        ("delete_orders", delete_all_orders),
        ("reset_stock", reset_reserved_stock),
        ("sync_pos", lambda: stock_sync_service.sync_stock_from_pos(pos)),
    ]
    results = {}
    for name, step in steps:
        outcome = step()
        results[name] = outcome
        if not outcome.get("success"):
            current_app.logger.error("Full cleanup stopped at %s: %s", name, outcome.get("error"))
            return {"success": False, "failed_step": name, "error": outcome.get("error"), "steps": results}
    return {"success": True, "steps": results}
