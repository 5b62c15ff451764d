# Overview: Flask API routes for region access checks; the reconciler's server endpoint lives here.

from flask import Blueprint, request, jsonify, g

from app.decorators import require_auth
from app.services import access_service, grant_service, permission_service
from app.services.permission_service import PermissionDeniedError
from app.validation import ValidationError, require_int, require_text
from app.time_utils import utcnow
from .errors import client_meta, json_body, json_error


region_access_bp = Blueprint("region_access", __name__, url_prefix="/api/region-access")


@region_access_bp.get("/effective-regions")
@require_auth
def effective_regions_route():
    """
    Effective regions (permanent U active temporary) for a user right now.

    Query params:
        userId: defaults to the caller; other users need VIEW_ALL_REGION_ACCESS

    Returns:
        200: {"success": true, "user_id": int, "regions": [{"name": str, "temporary": bool}]}
    """
    try:
        user = g.current_user
        raw_user_id = request.args.get("userId")
        user_id = user.id if raw_user_id in (None, "") else require_int(raw_user_id, "userId")

        if user_id != user.id:
            permission_service.require_permission(
                user,
                "VIEW_ALL_REGION_ACCESS",
                resource=request.path,
                **client_meta(),
            )

        sources = grant_service.get_effective_region_sources(user_id)
        regions = [
            {"name": name, "temporary": sources.is_temporary_only(name)}
            for name in sorted(sources.all)
        ]
        return jsonify({"success": True, "user_id": user_id, "regions": regions}), 200

    except PermissionDeniedError as e:
        return jsonify({"success": False, "error": "Permission denied", "message": str(e)}), 403
    except Exception as e:
        return json_error(e, "load effective regions")


@region_access_bp.post("/check")
@require_auth
def check_region_access_route():
    """
    Evaluate whether the caller may act on a region.

    Request body:
    {
        "region": str
    }

    Returns:
        200: allowed (temporary flag set when only a temporary grant covers it)
        403: denied, message names the caller's effective regions
    """
    try:
        region = require_text(json_body().get("region"), "region", max_length=128)
    except ValidationError as e:
        return json_error(e, "check region access")

    decision = access_service.evaluate_region_access(g.current_user, region, **client_meta())
    payload = {"success": decision.allowed, **decision.to_dict()}
    return jsonify(payload), 200 if decision.allowed else 403


@region_access_bp.get("/my-temporary")
@require_auth
def my_temporary_access_route():
    """Caller's active temporary grants, soonest expiry first, with time remaining."""
    try:
        now = utcnow()
        grants = grant_service.get_active_temporary_grants(g.current_user.id, now)
        items = []
        for grant in grants:
            item = grant.to_dict(now)
            item["time_remaining"] = grant_service.time_remaining(grant.expires_at, now)
            items.append(item)
        return jsonify({"success": True, "grants": items, "count": len(items)}), 200

    except Exception as e:
        return json_error(e, "load temporary access")
