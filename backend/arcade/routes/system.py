# backend/arcade/routes/system.py
"""
System health endpoint.

Reports database reachability and the pending-subscription backlog so a
load balancer or uptime check can tell a stuck instance from a healthy one.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import PendingSubscription, SessionToken, Store
from arcade.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        store_count = db.session.query(Store).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"stores": store_count, "active_sessions": active_sessions},
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


def check_billing_health() -> dict:
    """Expired pending subscriptions piling up means the purge job is not running."""
    try:
        expired = db.session.query(PendingSubscription).filter(
            PendingSubscription.expires_at <= utcnow()
        ).count()
    except SQLAlchemyError:
        current_app.logger.exception("Billing health check failed")
        return {"status": "unhealthy", "error": "Database error"}

    status = "degraded" if expired else "healthy"
    return {
        "status": status,
        "paypal_configured": bool(current_app.config.get("PAYPAL_CLIENT_ID") and current_app.config.get("PAYPAL_PLAN_ID")),
        "details": {"expired_pending_subscriptions": expired},
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()
    checks = {
        "database": check_database_health(),
        "billing": check_billing_health(),
    }

    if any(check["status"] == "unhealthy" for check in checks.values()):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in checks.values()):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status
