# Overview: Flask API routes for permanent and temporary region grants; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from app.decorators import require_auth, require_permission
from app.services import grant_service
from app.validation import ValidationError, require_int, require_text
from app.time_utils import utcnow
from .errors import json_body, json_error


region_grants_bp = Blueprint("region_grants", __name__, url_prefix="/api/region-grants")


def _require_int_list(value, field: str) -> list[int]:
    if not isinstance(value, list) or not value:
        raise ValidationError("Select at least 1 user", field)
    return [require_int(item, field) for item in value]


# =============================================================================
# PERMANENT GRANTS
# =============================================================================


@region_grants_bp.get("/permanent")
@require_auth
@require_permission("VIEW_ALL_REGION_ACCESS")
def list_permanent_grants_route():
    try:
        user_id = require_int(request.args.get("userId"), "userId")
        grants = grant_service.list_permanent_grants(user_id)
        return jsonify({"success": True, "grants": [grant.to_dict() for grant in grants]}), 200
    except Exception as e:
        return json_error(e, "list permanent grants")


@region_grants_bp.post("/permanent")
@require_auth
@require_permission("ASSIGN_REGIONS")
def grant_permanent_route():
    """
    Grant permanent access to a region. Idempotent.

    Request body:
    {
        "userId": int,
        "region": str
    }
    """
    try:
        data = json_body()
        grant = grant_service.grant_permanent(
            require_int(data.get("userId"), "userId"),
            require_text(data.get("region"), "region"),
            g.current_user.id,
        )
        return jsonify({"success": True, "grant": grant.to_dict()}), 201
    except Exception as e:
        return json_error(e, "grant permanent region access")


@region_grants_bp.delete("/permanent")
@require_auth
@require_permission("ASSIGN_REGIONS")
def revoke_permanent_route():
    """
    Remove a permanent grant. Temporary grants on the region are untouched.

    Request body:
    {
        "userId": int,
        "region": str
    }
    """
    try:
        data = json_body()
        grant_service.revoke_permanent(
            require_int(data.get("userId"), "userId"),
            require_text(data.get("region"), "region"),
            g.current_user.id,
        )
        return jsonify({"success": True, "message": "Region access revoked"}), 200
    except Exception as e:
        return json_error(e, "revoke permanent region access")


@region_grants_bp.post("/bulk")
@require_auth
@require_permission("ASSIGN_REGIONS")
def bulk_assign_route():
    """
    Apply one region set to many users.

    Request body:
    {
        "userIds": [int],
        "regions": [str],
        "mode": "add" | "replace" | "remove"
    }
    """
    try:
        data = json_body()
        result = grant_service.bulk_assign_regions(
            _require_int_list(data.get("userIds"), "userIds"),
            data.get("regions"),
            g.current_user.id,
            mode=data.get("mode") or "add",
        )
        return jsonify({"success": True, **result}), 200
    except Exception as e:
        return json_error(e, "bulk assign regions")


# =============================================================================
# TEMPORARY GRANTS
# =============================================================================


@region_grants_bp.get("/temporary")
@require_auth
@require_permission("VIEW_ALL_REGION_ACCESS")
def list_temporary_grants_route():
    """
    Query params:
        status: active | expired | revoked
        userId: int
        region: str
    """
    try:
        now = utcnow()
        raw_user_id = request.args.get("userId")
        grants = grant_service.list_temporary_grants(
            status=request.args.get("status") or None,
            user_id=require_int(raw_user_id, "userId") if raw_user_id else None,
            region=request.args.get("region") or None,
            now=now,
        )
        items = []
        for grant in grants:
            item = grant.to_dict(now)
            item["time_remaining"] = grant_service.time_remaining(grant.expires_at, now)
            items.append(item)
        return jsonify({"success": True, "grants": items, "count": len(items)}), 200
    except Exception as e:
        return json_error(e, "list temporary grants")


@region_grants_bp.get("/temporary/stats")
@require_auth
@require_permission("VIEW_ALL_REGION_ACCESS")
def temporary_stats_route():
    try:
        return jsonify({"success": True, "stats": grant_service.get_temporary_access_stats()}), 200
    except Exception as e:
        return json_error(e, "load temporary access stats")


@region_grants_bp.get("/temporary/expiring")
@require_auth
@require_permission("VIEW_ALL_REGION_ACCESS")
def expiring_grants_route():
    """Active grants expiring within `days` (default 7)."""
    try:
        raw_days = request.args.get("days")
        days = require_int(raw_days, "days") if raw_days else 7
        if days < 0:
            raise ValidationError("days must not be negative", "days")

        now = utcnow()
        grants = grant_service.get_expiring_grants(days, now)
        return jsonify({
            "success": True,
            "grants": [grant.to_dict(now) for grant in grants],
            "count": len(grants),
        }), 200
    except Exception as e:
        return json_error(e, "load expiring grants")


@region_grants_bp.post("/temporary")
@require_auth
@require_permission("GRANT_TEMPORARY_ACCESS")
def grant_temporary_route():
    """
    Grant time-boxed access.

    Request body:
    {
        "userId": int,
        "region": str,
        "expiresAt": ISO-8601 str (strictly in the future),
        "reason": str (optional)
    }

    Returns:
        201: Grant created
        400: Invalid request
        409: User already holds the region
    """
    try:
        data = json_body()
        now = utcnow()
        grant = grant_service.grant_temporary(
            require_int(data.get("userId"), "userId"),
            require_text(data.get("region"), "region"),
            data.get("expiresAt"),
            g.current_user.id,
            data.get("reason"),
            now=now,
        )
        return jsonify({"success": True, "grant": grant.to_dict(now)}), 201
    except Exception as e:
        return json_error(e, "grant temporary region access")


@region_grants_bp.patch("/temporary/<int:grant_id>/extend")
@require_auth
@require_permission("GRANT_TEMPORARY_ACCESS")
def extend_temporary_route(grant_id: int):
    """
    Request body:
    {
        "expiresAt": ISO-8601 str (strictly in the future)
    }
    """
    try:
        now = utcnow()
        grant = grant_service.extend_temporary(
            grant_id,
            json_body().get("expiresAt"),
            g.current_user.id,
            now=now,
        )
        return jsonify({"success": True, "grant": grant.to_dict(now)}), 200
    except Exception as e:
        return json_error(e, "extend temporary region access")


@region_grants_bp.delete("/temporary/<int:grant_id>")
@require_auth
@require_permission("GRANT_TEMPORARY_ACCESS")
def revoke_temporary_route(grant_id: int):
    """Optional body: {"reason": str}."""
    try:
        grant = grant_service.revoke_temporary(
            grant_id,
            g.current_user.id,
            json_body().get("reason"),
        )
        return jsonify({"success": True, "grant": grant.to_dict(utcnow())}), 200
    except Exception as e:
        return json_error(e, "revoke temporary region access")
