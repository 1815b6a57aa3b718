# Overview: Service-layer operations for maintenance; encapsulates business logic and database work.

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import AuthLog
from ..time_utils import utcnow
from . import session_service


def cleanup_sessions() -> int:
    """Delete sessions past their expiry. Returns count deleted."""
    return session_service.cleanup_expired_sessions()


def cleanup_auth_logs(*, retention_days: int = 90) -> int:
    """
    Delete login audit rows older than retention_days.

    Returns count of rows deleted.
    """
    if retention_days < 1:
        raise ValueError("retention_days must be >= 1")
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(AuthLog).filter(
        AuthLog.occurred_at < cutoff
    ).delete()
    db.session.commit()
    return deleted
