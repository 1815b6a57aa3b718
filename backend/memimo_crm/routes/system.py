# backend/memimo_crm/routes/system.py
"""
System health endpoint.

Reports database reachability, session table state, role seeding and
which campaign channels are configured.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Customer, Role, SessionToken, User
from ..services.auth_service import ADMIN_ROLE, STANDARD_ROLE
from ..services.dispatch_service import channel_statuses
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


def check_database_health() -> dict:
    """Check database connectivity with a few cheap counts."""
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        customer_count = db.session.query(Customer).count()
        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": {
                "users": user_count,
                "customers": customer_count,
            }
        }
    except SQLAlchemyError:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": _elapsed_ms(start_time),
            "error": "Database error"
        }


def check_session_service_health() -> dict:
    """Live vs. expired-but-not-yet-deleted sessions."""
    start_time = time.time()
    try:
        now = utcnow()
        live_sessions = db.session.query(SessionToken).filter(SessionToken.expires_at >= now).count()
        expired_sessions = db.session.query(SessionToken).filter(SessionToken.expires_at < now).count()
        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": {
                "live_sessions": live_sessions,
                "expired_pending_cleanup": expired_sessions,
            }
        }
    except SQLAlchemyError:
        current_app.logger.exception("Session service health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": _elapsed_ms(start_time),
            "error": "Session service error"
        }


def check_auth_service_health() -> dict:
    """Both roles must exist for logins and user administration to work."""
    start_time = time.time()
    try:
        missing_roles = [
            name for name in (ADMIN_ROLE, STANDARD_ROLE)
            if not db.session.query(Role).filter_by(name=name).first()
        ]
        if missing_roles:
            return {
                "status": "degraded",
                "latency_ms": _elapsed_ms(start_time),
                "warning": f"Missing roles: {', '.join(missing_roles)}. Run: flask system init",
            }
        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": {"roles_configured": True},
        }
    except SQLAlchemyError:
        current_app.logger.exception("Auth service health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": _elapsed_ms(start_time),
            "error": "Auth service error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (still operational)
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    session_health = check_session_service_health()
    auth_health = check_auth_service_health()

    all_checks = [database_health, session_health, auth_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": _elapsed_ms(start_time),
        "checks": {
            "database": database_health,
            "session_service": session_health,
            "auth_service": auth_health,
        },
        "channels": channel_statuses(current_app.config),
    }

    return response, http_status
