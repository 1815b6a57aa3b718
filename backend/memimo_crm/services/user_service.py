# Overview: Service-layer operations for staff user administration.

"""
User Administration Service

Every operation here is admin-only: the acting user id is passed in
explicitly and checked with auth_service.is_admin() before anything is
read or written (AuthUnauthorized otherwise).

LIFECYCLE:
- Users are created by an administrator (created_by_user_id records who)
- Users are never hard-deleted; deactivation is a soft flag
- Deactivation deletes every session of the target user
- Nobody can deactivate their own account, admin or not
- Passwords are never changed through update_user
"""

from ..errors import (
    AuthCannotDeactivateSelf,
    AuthEmailExists,
    AuthUnauthorized,
    NotFoundError,
)
from ..extensions import db
from ..models import Role, User
from ..validation import EMAIL_RE, ValidationError
from . import auth_service
from . import session_service
from .auth_service import PasswordValidationError
from .persistence import commit_or_raise


UPDATABLE_FIELDS = {"first_name", "last_name", "role", "is_active"}


def _require_admin(admin_id: int) -> None:
    if not auth_service.is_admin(admin_id):
        raise AuthUnauthorized()


def _get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def _resolve_role(role_name: str) -> Role:
    role = auth_service.get_role(role_name)
    if not role:
        raise ValidationError(f"Unknown role: {role_name}")
    return role


def list_users(
    admin_id: int,
    search: str | None = None,
    role: str | None = None,
    status: str | None = None,
) -> list[User]:
    """
    List users, newest first.

    search matches email, first and last name (case-insensitive).
    role filters by role name; status is "active", "inactive" or None (all).
    """
    _require_admin(admin_id)

    query = db.session.query(User).join(Role, User.role_id == Role.id)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            User.email.ilike(pattern),
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
        ))

    if role:
        query = query.filter(Role.name == role)

    if status == "active":
        query = query.filter(User.is_active.is_(True))
    elif status == "inactive":
        query = query.filter(User.is_active.is_(False))
    elif status not in (None, "", "all"):
        raise ValidationError("status must be one of: active, inactive, all")

    return query.order_by(User.created_at.desc(), User.id.desc()).all()


def get_user(user_id: int, admin_id: int) -> User:
    _require_admin(admin_id)
    return _get_user_or_404(user_id)


def create_user(data: dict, admin_id: int) -> User:
    """
    Create a staff account on behalf of admin_id.

    Required: email, password, first_name. Optional: last_name, role
    (defaults to "standard"), is_active (defaults to True).
    """
    _require_admin(admin_id)

    data = data or {}
    email = auth_service.normalize_email(data.get("email"))
    password = data.get("password") or ""
    first_name = (data.get("first_name") or "").strip()
    last_name = (data.get("last_name") or "").strip()
    role_name = data.get("role") or auth_service.STANDARD_ROLE
    is_active = data.get("is_active", True)

    if not email or not first_name:
        raise ValidationError("email, password and first_name are required")
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email")
    if not isinstance(is_active, bool):
        raise ValidationError("is_active must be a boolean")

    if db.session.query(User).filter_by(email=email).first():
        raise AuthEmailExists()

    role = _resolve_role(role_name)

    try:
        password_hash = auth_service.hash_password(password)
    except PasswordValidationError as e:
        raise ValidationError(str(e))

    user = User(
        email=email,
        password_hash=password_hash,
        first_name=first_name,
        last_name=last_name,
        role_id=role.id,
        is_active=is_active,
        created_by_user_id=admin_id,
    )
    db.session.add(user)
    commit_or_raise()
    return user


def update_user(user_id: int, data: dict, admin_id: int) -> User:
    """
    Update names, role and active flag.

    Turning is_active off goes through the same rules as deactivate_user.
    """
    _require_admin(admin_id)
    user = _get_user_or_404(user_id)

    data = data or {}
    unknown = sorted(set(data) - UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    # Every check runs before the user is touched
    deactivating = False
    if "is_active" in data:
        is_active = data.get("is_active")
        if not isinstance(is_active, bool):
            raise ValidationError("is_active must be a boolean")
        deactivating = not is_active and user.is_active
        if deactivating and user.id == admin_id:
            raise AuthCannotDeactivateSelf()

    if "first_name" in data:
        first_name = (data.get("first_name") or "").strip()
        if not first_name:
            raise ValidationError("first_name cannot be blank")

    role = _resolve_role(data.get("role")) if "role" in data else None

    if "first_name" in data:
        user.first_name = first_name
    if "last_name" in data:
        user.last_name = (data.get("last_name") or "").strip()
    if role is not None:
        user.role_id = role.id
    if "is_active" in data:
        if deactivating:
            session_service.revoke_all_user_sessions(user.id, commit=False)
        user.is_active = is_active

    commit_or_raise()
    return user


def deactivate_user(user_id: int, admin_id: int) -> User:
    """
    Soft-deactivate a user and delete all of their sessions.

    The self-check comes first: deactivating your own account always fails
    with AuthCannotDeactivateSelf.
    """
    if user_id == admin_id:
        raise AuthCannotDeactivateSelf()

    _require_admin(admin_id)
    user = _get_user_or_404(user_id)

    user.is_active = False
    session_service.revoke_all_user_sessions(user.id, commit=False)
    commit_or_raise()
    return user


def activate_user(user_id: int, admin_id: int) -> User:
    _require_admin(admin_id)
    user = _get_user_or_404(user_id)
    user.is_active = True
    commit_or_raise()
    return user


def list_roles() -> list[Role]:
    return db.session.query(Role).order_by(Role.name).all()
