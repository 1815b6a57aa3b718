# Overview: Shared JSON failure responses for API routes.

from flask import current_app, jsonify

from ..errors import error_response


def failure(exc: Exception, action: str):
    """
    Map a caught exception to a JSON response.

    Typed errors keep their own status; anything else is logged with the
    traceback and answered with a 500.
    """
    mapped = error_response(exc)
    if mapped is not None:
        body, status = mapped
        return jsonify(body), status

    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


def parse_bool_arg(value: str | None) -> bool | None:
    """Query-string boolean: "true"/"1" -> True, "false"/"0" -> False, absent -> None."""
    if value is None or value == "":
        return None
    return value.lower() in ("1", "true", "yes")
