# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing; sessions are managed separately (see session_service.py).

LOGIN CONTRACT:
login() never raises for credential problems. It returns a LoginResult
whose error field holds the typed failure (AuthUserNotFound,
AuthUserInactive, AuthInvalidCredentials, AuthSessionError), so callers
can show a plain-language message without catching anything.

Order of checks:
1. Account lookup by email
2. Active flag (an inactive account is refused before the password is checked)
3. bcrypt comparison
4. Session creation
5. last_access_at update

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 6 characters required
- Every attempt is written to the login audit log
"""

from dataclasses import dataclass
from datetime import datetime

import bcrypt
from sqlalchemy.exc import SQLAlchemyError

from ..errors import (
    AuthError,
    AuthInvalidCredentials,
    AuthSessionError,
    AuthUserInactive,
    AuthUserNotFound,
)
from ..extensions import db
from ..models import Role, User
from ..time_utils import utcnow
from . import audit_service
from . import session_service


MIN_PASSWORD_LENGTH = 6

ADMIN_ROLE = "admin"
STANDARD_ROLE = "standard"

DEFAULT_ROLES = [
    (ADMIN_ROLE, "Full access, including user administration"),
    (STANDARD_ROLE, "Customers, products, sales, campaigns and reports"),
]


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


@dataclass
class LoginResult:
    """
    Typed outcome of a login attempt.

    success=True carries user, token and expires_at; success=False carries
    the typed error only.
    """
    success: bool
    user: User | None = None
    token: str | None = None
    expires_at: datetime | None = None
    error: AuthError | None = None

    @classmethod
    def failed(cls, error: AuthError) -> "LoginResult":
        return cls(success=False, error=error)


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def validate_password_strength(password: str) -> None:
    """
    Validate password meets the minimum length.

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    WHY: Cost factor 12 provides good security/performance balance.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash counts as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def login(
    email: str,
    password: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> LoginResult:
    """
    Authenticate by email/password and open a session.

    Returns LoginResult; see module docstring for the order of checks.
    """
    email = normalize_email(email)

    def _fail(error: AuthError) -> LoginResult:
        audit_service.record_login_attempt(
            email, False, error.message, ip_address=ip_address, user_agent=user_agent
        )
        return LoginResult.failed(error)

    user = db.session.query(User).filter(User.email == email).first()
    if not user:
        return _fail(AuthUserNotFound())

    if not user.is_active:
        return _fail(AuthUserInactive())

    if not verify_password(password, user.password_hash):
        return _fail(AuthInvalidCredentials())

    try:
        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        user.last_access_at = utcnow()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        return _fail(AuthSessionError())

    audit_service.record_login_attempt(
        email, True, "Login successful", ip_address=ip_address, user_agent=user_agent
    )

    return LoginResult(
        success=True,
        user=user,
        token=token,
        expires_at=session.expires_at,
    )


def is_admin(user_id: int) -> bool:
    """True when the user exists, is active and holds the admin role."""
    user = db.session.get(User, user_id)
    return bool(user and user.is_active and user.role_name == ADMIN_ROLE)


def get_role(role_name: str) -> Role | None:
    return db.session.query(Role).filter_by(name=role_name).first()


def create_user(
    email: str,
    password: str,
    first_name: str,
    last_name: str = "",
    role_name: str = STANDARD_ROLE,
    created_by_user_id: int | None = None,
    is_active: bool = True,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Password must meet strength requirements or PasswordValidationError will be raised.
    Email must be unique or ValueError will be raised.
    """
    email = normalize_email(email)
    if not email:
        raise ValueError("Email is required")

    if db.session.query(User).filter_by(email=email).first():
        raise ValueError("Email already exists")

    role = get_role(role_name)
    if not role:
        raise ValueError(f"Role {role_name} not found")

    password_hash = hash_password(password)

    user = User(
        email=email,
        password_hash=password_hash,
        first_name=(first_name or "").strip(),
        last_name=(last_name or "").strip(),
        role_id=role.id,
        is_active=is_active,
        created_by_user_id=created_by_user_id,
    )

    db.session.add(user)
    db.session.commit()
    return user


def create_default_roles() -> None:
    """Create the admin and standard roles if they don't exist."""
    for name, desc in DEFAULT_ROLES:
        existing = db.session.query(Role).filter_by(name=name).first()
        if not existing:
            db.session.add(Role(name=name, description=desc))

    db.session.commit()
