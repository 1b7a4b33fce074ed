# backend/storefront/routes/system.py
"""
System health endpoint.

Reports database reachability and whether the external collaborators are
configured. ?deep=1 also pings the POS.
"""

import time
from flask import Blueprint, current_app, request
from ..clients import PosError
from ..extensions import db, get_client
from ..models import Order, Product
from ..services.concurrency import call_with_fallback
from storefront.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        order_count = db.session.query(Order).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"products": product_count, "orders": order_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_pos_health(deep: bool) -> dict:
    pos = get_client("pos")
    if not pos.configured:
        return {"status": "degraded", "warning": "LOYVERSE_API_TOKEN is not configured"}
    if not deep:
        return {"status": "healthy", "details": {"configured": True}}

    def ping() -> bool:
        next(pos.iter_items(), None)
        return True

    start_time = time.time()
    reachable = call_with_fallback(
        ping,
        False,
        errors=(PosError,),
        label="POS health check",
    )
    elapsed_ms = (time.time() - start_time) * 1000
    if not reachable:
        return {"status": "degraded", "latency_ms": round(elapsed_ms, 2), "warning": "POS unreachable"}
    return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": {"configured": True}}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (POS problems degrade, they do not take the shop down)
    - 503: database unhealthy
    """
    start_time = time.time()
    deep = request.args.get("deep", "").lower() in ("1", "true", "yes")

    database_health = check_database_health()
    pos_health = check_pos_health(deep)

    checks = [database_health, pos_health]
    if any(check["status"] == "unhealthy" for check in checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "pos": pos_health,
        },
    }, http_status
