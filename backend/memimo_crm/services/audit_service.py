# Overview: Service-layer operations for the login audit trail.

"""
Login Audit Service

WHY: Every login attempt (success or failure) is recorded by email,
outcome and message so staff access can be reviewed later.

The audit write must never block or fail the login flow itself: any
database error here is rolled back and logged, then swallowed.
"""

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuthLog
from ..time_utils import utcnow


def record_login_attempt(
    email: str,
    success: bool,
    message: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuthLog | None:
    """
    Append one row to auth_logs.

    Returns the row, or None if it could not be written.
    """
    entry = AuthLog(
        email=(email or "")[:255],
        success=success,
        message=message[:255] if message else None,
        ip_address=ip_address,
        user_agent=user_agent[:512] if user_agent else None,
        occurred_at=utcnow(),
    )
    try:
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Failed to record login attempt for %s", email, exc_info=True)
        return None
    return entry


def recent_attempts(email: str | None = None, limit: int = 50) -> list[AuthLog]:
    """Most recent attempts first, optionally for one email."""
    query = db.session.query(AuthLog)
    if email:
        query = query.filter(AuthLog.email == email)
    return query.order_by(AuthLog.occurred_at.desc(), AuthLog.id.desc()).limit(limit).all()

