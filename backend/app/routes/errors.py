# Overview: Shared translation of service exceptions into JSON error responses.

from flask import current_app, g, jsonify, request

from ..extensions import db
from ..services import audit_service
from ..services.auth_service import PasswordValidationError
from ..validation import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)


def client_meta() -> dict:
    return {
        "ip_address": request.remote_addr,
        "user_agent": request.headers.get("User-Agent"),
    }


def json_body() -> dict:
    """Request JSON as a dict; missing or malformed bodies read as empty."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def json_error(exc: Exception, action: str):
    """
    Map a service exception to (response, status).

    Must be called from inside an `except` block so unexpected errors are
    logged with their traceback.
    """
    if isinstance(exc, ValidationError):
        return jsonify(exc.to_dict()), 400
    if isinstance(exc, PasswordValidationError):
        return jsonify({"error": str(exc), "field": "password"}), 400
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc)}), 409
    if isinstance(exc, AuthorizationError):
        user = getattr(g, "current_user", None)
        audit_service.log_event(
            user.id if user else None,
            "PERMISSION_DENIED",
            False,
            severity="warning",
            action=action,
            reason=str(exc),
            details={"resource": request.path},
            **client_meta(),
        )
        return jsonify({"error": "Permission denied", "message": str(exc)}), 403

    db.session.rollback()
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500
