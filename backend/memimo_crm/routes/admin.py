# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/memimo_crm/routes/admin.py
"""
Admin routes for user management.

Provides endpoints for:
- User management (list, create, update, deactivate, activate)
- Role listing
- Login audit trail

All endpoints require an authenticated admin. The service layer checks the
role again with the acting user's id, so these rules hold for CLI and
script callers too.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_admin
from ..services import audit_service, user_service
from .responses import failure

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_admin
def list_users():
    """
    List users, newest first.

    Query params:
    - search: str - matches email, first and last name
    - role: str - "admin" or "standard"
    - status: str - "active", "inactive" or "all" (default)
    """
    try:
        users = user_service.list_users(
            g.current_user.id,
            search=request.args.get("search"),
            role=request.args.get("role"),
            status=request.args.get("status"),
        )
        return jsonify({"users": [u.to_dict() for u in users], "count": len(users)})
    except Exception as e:
        return failure(e, "list users")


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_admin
def get_user(user_id: int):
    try:
        user = user_service.get_user(user_id, g.current_user.id)
        return jsonify({"user": user.to_dict()})
    except Exception as e:
        return failure(e, "load user")


@admin_bp.post("/users")
@require_auth
@require_admin
def create_user():
    """
    Create a new user.

    Request body:
    - email: str (required)
    - password: str (required, 6+ characters)
    - first_name: str (required)
    - last_name: str (optional)
    - role: str (optional, default "standard")
    - is_active: bool (optional, default true)
    """
    try:
        data = request.get_json(silent=True) or {}
        user = user_service.create_user(data, g.current_user.id)
        return jsonify({"user": user.to_dict(), "message": "User created"}), 201
    except Exception as e:
        return failure(e, "create user")


@admin_bp.put("/users/<int:user_id>")
@require_auth
@require_admin
def update_user(user_id: int):
    """Update first_name, last_name, role and is_active. Passwords are not changed here."""
    try:
        data = request.get_json(silent=True) or {}
        user = user_service.update_user(user_id, data, g.current_user.id)
        return jsonify({"user": user.to_dict(), "message": "User updated"})
    except Exception as e:
        return failure(e, "update user")


@admin_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_admin
def deactivate_user(user_id: int):
    """Soft-deactivate a user and end all of their sessions."""
    try:
        user = user_service.deactivate_user(user_id, g.current_user.id)
        return jsonify({"user": user.to_dict(), "message": "User deactivated"})
    except Exception as e:
        return failure(e, "deactivate user")


@admin_bp.post("/users/<int:user_id>/activate")
@require_auth
@require_admin
def activate_user(user_id: int):
    try:
        user = user_service.activate_user(user_id, g.current_user.id)
        return jsonify({"user": user.to_dict(), "message": "User activated"})
    except Exception as e:
        return failure(e, "activate user")


# =============================================================================
# ROLES / AUDIT
# =============================================================================

@admin_bp.get("/roles")
@require_auth
@require_admin
def list_roles():
    roles = user_service.list_roles()
    return jsonify({"roles": [r.to_dict() for r in roles]})


@admin_bp.get("/auth-logs")
@require_auth
@require_admin
def list_auth_logs():
    """
    Recent login attempts.

    Query params:
    - email: str (optional)
    - limit: int (default 50, max 500)
    """
    limit = min(request.args.get("limit", 50, type=int) or 50, 500)
    entries = audit_service.recent_attempts(email=request.args.get("email"), limit=limit)
    return jsonify({"entries": [e.to_dict() for e in entries], "count": len(entries)})
