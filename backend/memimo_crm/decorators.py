# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .guard import AccessDecision, GuardState, resolve_access
from .services import session_service


def bearer_token() -> str | None:
    """Token from an "Authorization: Bearer <token>" header, or None."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def _guard_state() -> GuardState:
    context = getattr(g, "session_context", None)
    if context is None:
        return GuardState(authenticated=False)
    return GuardState(authenticated=True, role=context.user.role_name)


def _deny(decision: AccessDecision):
    if decision == AccessDecision.REDIRECT_LOGIN:
        return jsonify({"error": "Authentication required", "code": "AUTH_REQUIRED"}), 401
    return jsonify({
        "error": "Only administrators can perform this action",
        "code": "AUTH_UNAUTHORIZED",
    }), 403


def require_auth(f):
    """
    Require a valid session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object
    - g.session_token: The plaintext bearer token of this request

    SECURITY: Returns 401 if:
    - No Authorization header
    - Unknown or expired token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        context = session_service.verify_session(token) if token else None

        # g can outlive the request when an app context is already pushed
        g.session_context = context
        g.current_user = context.user if context else None
        g.session_token = token if context else None

        decision = resolve_access(_guard_state())
        if decision != AccessDecision.AUTHORIZED:
            return _deny(decision)

        return f(*args, **kwargs)

    return decorated_function


def require_role(role_name: str):
    """
    Require the authenticated user to hold role_name.

    Must be stacked below @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            decision = resolve_access(_guard_state(), required_role=role_name)
            if decision != AccessDecision.AUTHORIZED:
                return _deny(decision)
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_admin(f):
    """Shorthand for @require_role("admin")."""
    return require_role("admin")(f)
