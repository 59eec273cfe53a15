# backend/coinseal/routes/system.py
"""
System health endpoint.

Checks the database and that a system account exists, since session
creation cannot work without one.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import SystemConfigurationError
from ..extensions import db
from ..models import Account, AuthToken, TripSession
from ..services.ledger_service import get_system_account
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """Check database connectivity and basic queries."""
    start_time = time.time()
    try:
        account_count = db.session.query(Account).count()
        session_count = db.session.query(TripSession).count()
        active_tokens = db.session.query(AuthToken).filter_by(is_revoked=False).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "accounts": account_count,
                "sessions": session_count,
                "active_tokens": active_tokens,
            }
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_system_account_health() -> dict:
    """Degraded (not unhealthy) when no system account is configured yet."""
    try:
        account = get_system_account()
    except SystemConfigurationError as e:
        return {"status": "degraded", "warning": e.message}
    except SQLAlchemyError:
        current_app.logger.exception("System account health check failed")
        db.session.rollback()
        return {"status": "unhealthy", "error": "Database error"}
    return {"status": "healthy", "details": {"account_id": account.id, "coins": account.coins}}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    if database_health["status"] == "unhealthy":
        system_account_health = {"status": "unknown"}
    else:
        system_account_health = check_system_account_health()

    all_checks = [database_health, system_account_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] in ("degraded", "unknown") for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "system_account": system_account_health,
        }
    }, http_status
