# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Login returns an opaque bearer token; every other route expects it in the
Authorization header. The user payload carries `assigned_regions`, the
effective regions at login time, which clients cache and keep in sync
with the region reconciler.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import audit_service
from ..services import auth_service
from ..services import grant_service
from ..services import permission_service
from ..services import session_service
from ..decorators import require_auth
from .errors import client_meta, json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _user_payload(user) -> dict:
    payload = user.to_dict()
    payload["assigned_regions"] = sorted(grant_service.get_effective_regions(user.id))
    return payload


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info and session token on success.
    Token must be included in Authorization header for protected routes.
    """
    try:
        data = json_body()
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        meta = client_meta()
        user = auth_service.authenticate(username, password)

        if not user:
            audit_service.log_event(
                None,
                "USER_LOGIN",
                False,
                severity="warning",
                action="Login failed",
                reason="Invalid credentials",
                details={"identifier": username},
                **meta,
            )
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(user_id=user.id, **meta)
        audit_service.log_event(user.id, "USER_LOGIN", True, action="Login", **meta)

        return jsonify({
            "user": _user_payload(user),
            "permissions": sorted(permission_service.get_user_permissions(user)),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """
    Revoke session token (logout).

    WHY: Explicit logout prevents token reuse.
    """
    try:
        session_service.revoke_session(g.auth_token, reason="User logout")
        audit_service.log_event(g.current_user.id, "USER_LOGOUT", True, action="Logout", **client_meta())
        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user, permissions and effective regions."""
    try:
        user = g.current_user
        return jsonify({
            "user": _user_payload(user),
            "permissions": sorted(permission_service.get_user_permissions(user)),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to load current user")
        return jsonify({"error": "Internal server error"}), 500
