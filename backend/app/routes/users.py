# Overview: Flask API routes for user listings used by the region assignment screens.

from flask import Blueprint, request, jsonify

from app.decorators import require_auth, require_permission
from app.extensions import db
from app.models import User
from app.services import grant_service
from .errors import json_error


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_permission("VIEW_USERS")
def list_users_route():
    """
    Users with their current effective regions.

    Query params:
        role: Admin | Manager | Technician | User
        include_inactive: "true" to include deactivated accounts
    """
    try:
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        role = request.args.get("role")

        query = db.session.query(User)
        if not include_inactive:
            query = query.filter(User.is_active.is_(True))
        if role:
            query = query.filter(User.role == role)

        items = []
        for user in query.order_by(User.username.asc()).all():
            item = user.to_dict()
            item["assigned_regions"] = sorted(grant_service.get_effective_regions(user.id))
            items.append(item)
        return jsonify({"success": True, "users": items, "count": len(items)}), 200
    except Exception as e:
        return json_error(e, "list users")
