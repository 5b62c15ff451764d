# Overview: Flask API routes for the region access audit trail.

from flask import Blueprint, request, jsonify, g

from app.decorators import require_auth, require_permission
from app.services import audit_service
from app.validation import ValidationError, require_int
from app.time_utils import parse_iso_datetime
from .errors import json_error


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")

MAX_PAGE_SIZE = 1000


def _parse_bool(value: str | None, field: str) -> bool | None:
    if value in (None, ""):
        return None
    lowered = value.strip().lower()
    if lowered in ("true", "1"):
        return True
    if lowered in ("false", "0"):
        return False
    raise ValidationError(f"{field} must be true or false", field)


def _parse_datetime(value: str | None, field: str):
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime", field)


def _filters_from_args() -> dict:
    raw_user_id = request.args.get("userId")
    return {
        "event_type": request.args.get("eventType") or None,
        "user_id": require_int(raw_user_id, "userId") if raw_user_id else None,
        "region": request.args.get("region") or None,
        "success": _parse_bool(request.args.get("success"), "success"),
        "severity": request.args.get("severity") or None,
        "start": _parse_datetime(request.args.get("start"), "start"),
        "end": _parse_datetime(request.args.get("end"), "end"),
    }


@audit_bp.get("/events")
@require_auth
@require_permission("VIEW_AUDIT_LOG")
def list_events_route():
    """
    Query params:
        eventType, userId, region, success, severity, start, end
        limit (default 100, max 1000), offset
    """
    try:
        raw_limit = request.args.get("limit")
        raw_offset = request.args.get("offset")
        limit = require_int(raw_limit, "limit") if raw_limit else 100
        offset = require_int(raw_offset, "offset") if raw_offset else 0
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", "limit")
        if offset < 0:
            raise ValidationError("offset must not be negative", "offset")

        events = audit_service.list_events(limit=limit, offset=offset, **_filters_from_args())
        return jsonify({
            "success": True,
            "events": [event.to_dict() for event in events],
            "count": len(events),
        }), 200
    except Exception as e:
        return json_error(e, "list audit events")


@audit_bp.get("/stats")
@require_auth
@require_permission("VIEW_AUDIT_LOG")
def event_stats_route():
    try:
        return jsonify({"success": True, "stats": audit_service.get_event_stats(**_filters_from_args())}), 200
    except Exception as e:
        return json_error(e, "load audit stats")


@audit_bp.delete("/events")
@require_auth
@require_permission("PURGE_AUDIT_LOG")
def purge_events_route():
    """Bulk delete events that occurred before ?before=<ISO-8601>."""
    try:
        before = _parse_datetime(request.args.get("before"), "before")
        if before is None:
            raise ValidationError("before is required", "before")

        deleted = audit_service.purge_events(before=before, purged_by=g.current_user.id)
        return jsonify({"success": True, "deleted": deleted}), 200
    except Exception as e:
        return json_error(e, "purge audit events")
