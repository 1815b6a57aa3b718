# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service

WHY: Secure session management with a fixed absolute lifetime.
Tokens are cryptographically secure, hashed in database, and time-limited.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (SESSION_DURATION_HOURS, 24 by default)
- Session rows are deleted on logout, on expiry detection and when the
  owning user is deactivated, so a stale token can never resurrect
- Tracks client IP and user agent for security monitoring
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


DEFAULT_SESSION_DURATION = timedelta(hours=24)


@dataclass
class SessionContext:
    """
    Session context returned by verify_session.

    Carries the user and the session row explicitly; request handlers
    receive this value instead of looking the user up again.
    """
    user: User
    session: SessionToken

    @property
    def profile(self) -> dict:
        return self.user.to_profile()


def session_duration() -> timedelta:
    """Configured absolute session lifetime."""
    try:
        hours = current_app.config.get("SESSION_DURATION_HOURS")
    except RuntimeError:
        # Outside an application context (CLI helpers, bare unit tests)
        hours = None
    if not hours:
        return DEFAULT_SESSION_DURATION
    return timedelta(hours=int(hours))


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).

    WHY secrets.token_hex: Cryptographically secure PRNG.
    DO NOT use random.random() or uuid4() for auth tokens!
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.

    expires_at = now + session_duration(), fixed at creation time.
    """
    plaintext_token = generate_token()
    token_hash = hash_token(plaintext_token)

    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=token_hash,
        created_at=now,
        expires_at=now + session_duration(),
        user_agent=user_agent[:512] if user_agent else None,
        ip_address=ip_address,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def verify_session(token: str | None) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if:
    - Token is missing or unknown
    - now > expires_at (the row is deleted)
    - User account is deactivated (the row is deleted)

    WHY: Central validation point. All protected routes call this, so it
    is the authoritative expiry check; client-side timers are advisory.
    """
    if not token:
        return None

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token)
    ).first()

    if not session:
        return None

    if utcnow() > session.expires_at:
        db.session.delete(session)
        db.session.commit()
        return None

    user = session.user

    # SECURITY: Check if user account is active
    if not user or not user.is_active:
        db.session.delete(session)
        db.session.commit()
        return None

    return SessionContext(user=user, session=session)


def revoke_session(token: str | None) -> bool:
    """
    Delete the session for token.

    Returns True if a session was deleted, False if none matched.
    Callers treat both outcomes as a successful logout.
    """
    if not token:
        return False

    deleted = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token)
    ).delete()

    db.session.commit()
    return deleted > 0


def revoke_all_user_sessions(user_id: int, commit: bool = True) -> int:
    """
    Delete every session for a user.

    Returns count of sessions deleted.

    WHY: Deactivating a user must invalidate all of their devices at once.
    commit=False lets the caller fold this into its own transaction.
    """
    deleted = db.session.query(SessionToken).filter_by(user_id=user_id).delete()
    if commit:
        db.session.commit()
    return deleted


def cleanup_expired_sessions() -> int:
    """
    Delete sessions whose absolute lifetime has elapsed.

    Returns count of sessions deleted.

    WHY: Sessions that are never presented again are not caught by
    verify_session. Run this periodically (flask maintenance cleanup-sessions).
    """
    deleted = db.session.query(SessionToken).filter(
        SessionToken.expires_at < utcnow()
    ).delete()

    db.session.commit()
    return deleted
