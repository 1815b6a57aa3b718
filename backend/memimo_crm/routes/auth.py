# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/memimo_crm/routes/auth.py
"""
Authentication API routes

- POST /api/auth/login     email + password -> profile, token, expiry
- POST /api/auth/logout    delete the bearer token's session (always 200)
- POST /api/auth/validate  VerifySession: profile for a live token, 401 otherwise

Accounts are created by administrators only (see routes/admin.py).
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import bearer_token
from ..services import audit_service
from ..services import auth_service
from ..services import session_service
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(user, token: str, expires_at) -> dict:
    return {
        "user": user.to_profile(),
        "token": token,
        "expires_at": to_utc_z(expires_at),
        "is_admin": user.role_name == auth_service.ADMIN_ROLE,
    }


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user profile, token and expiry on success. Failures come back
    as {"error", "code"} with the status of the typed error (401 for an
    unknown email or wrong password, 403 for an inactive account).
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not email or not password:
            audit_service.record_login_attempt(
                auth_service.normalize_email(str(email or "")),
                False,
                "email and password required",
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
            )
            return jsonify({"error": "email and password required", "code": "VALIDATION_ERROR"}), 400

        result = auth_service.login(
            email,
            password,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        if not result.success:
            return jsonify(result.error.to_dict()), result.error.status_code

        payload = _session_payload(result.user, result.token, result.expires_at)
        payload["message"] = "Login successful"
        return jsonify(payload), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Delete the session for the bearer token.

    Idempotent: an unknown, expired or missing token still answers 200.
    """
    try:
        session_service.revoke_session(bearer_token())
        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/validate")
def validate_route():
    """
    VerifySession.

    Returns the same profile shape as login for a live token. Expired
    sessions and sessions of deactivated users are deleted and answer 401.
    """
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required", "code": "AUTH_REQUIRED"}), 401

        context = session_service.verify_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token", "code": "AUTH_REQUIRED"}), 401

        payload = _session_payload(context.user, token, context.session.expires_at)
        payload["message"] = "Session valid"
        return jsonify(payload), 200

    except Exception:
        current_app.logger.exception("Failed to validate session")
        return jsonify({"error": "Internal server error"}), 500
