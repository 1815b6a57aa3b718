# Overview: Typed error taxonomy shared by services and routes.

"""
Error taxonomy for the CRM.

Every error carries a stable machine code (returned to API callers as
"code") and the HTTP status the blueprints answer with. Messages are plain
language and safe to show to an operator.

Credential and authorization failures are typed so the Session Manager can
hand them back as results instead of letting them escape. Per-recipient send
failures (RecipientSendFailed) never leave the dispatch loop; they are caught,
counted and reported in the dispatch summary.
"""

from __future__ import annotations

from .validation import ConflictError, ValidationError


class CRMError(Exception):
    """Base class for all expected CRM failures."""

    code = "CRM_ERROR"
    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


# =============================================================================
# AUTHENTICATION / AUTHORIZATION
# =============================================================================

class AuthError(CRMError):
    code = "AUTH_ERROR"
    status_code = 401


class AuthUserNotFound(AuthError):
    code = "AUTH_USER_NOT_FOUND"
    status_code = 401
    default_message = "User not found"


class AuthInvalidCredentials(AuthError):
    code = "AUTH_INVALID_CREDENTIALS"
    status_code = 401
    default_message = "Incorrect password"


class AuthUserInactive(AuthError):
    code = "AUTH_USER_INACTIVE"
    status_code = 403
    default_message = "User is inactive. Contact an administrator."


class AuthSessionError(AuthError):
    code = "AUTH_SESSION_ERROR"
    status_code = 500
    default_message = "Could not create session"


class AuthUnauthorized(AuthError):
    code = "AUTH_UNAUTHORIZED"
    status_code = 403
    default_message = "Only administrators can perform this action"


class AuthCannotDeactivateSelf(AuthError):
    code = "AUTH_CANNOT_DEACTIVATE_SELF"
    status_code = 400
    default_message = "You cannot deactivate your own account"


class AuthEmailExists(AuthError):
    code = "AUTH_EMAIL_EXISTS"
    status_code = 409
    default_message = "Email is already registered"


# =============================================================================
# CAMPAIGN CHANNELS
# =============================================================================

class ChannelNotConfigured(CRMError):
    code = "CHANNEL_NOT_CONFIGURED"
    status_code = 409
    default_message = "Channel credentials are not configured"


class RecipientSendFailed(CRMError):
    """One recipient could not be reached. Carries the human-readable reason."""

    code = "RECIPIENT_SEND_FAILED"
    status_code = 502
    default_message = "Message could not be delivered"


# =============================================================================
# PERSISTENCE
# =============================================================================

class PersistenceError(CRMError):
    code = "PERSISTENCE_ERROR"
    status_code = 500
    default_message = "Could not save changes"


class NotFoundError(CRMError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


def error_response(exc: Exception) -> tuple[dict, int] | None:
    """
    JSON body and HTTP status for an expected failure, or None for
    anything unexpected (the caller logs it and answers 500).
    """
    if isinstance(exc, CRMError):
        return exc.to_dict(), exc.status_code

    if isinstance(exc, (ValidationError, ConflictError)):
        conflict = isinstance(exc, ConflictError)
        payload = {"error": str(exc), "code": "CONFLICT" if conflict else "VALIDATION_ERROR"}
        details = getattr(exc, "details", None)
        if details:
            payload["details"] = details
        return payload, 409 if conflict else 400

    return None
