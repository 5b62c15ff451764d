# Overview: Flask API routes for region access requests; submission, review and withdrawal.

from flask import Blueprint, request, jsonify, g

from app.decorators import require_auth, require_permission
from app.services import permission_service, request_service
from app.validation import NotFoundError, require_int
from .errors import json_body, json_error


region_requests_bp = Blueprint("region_requests", __name__, url_prefix="/api/region-requests")


def _can_review() -> bool:
    return permission_service.user_has_permission(g.current_user, "REVIEW_REGION_REQUESTS")


@region_requests_bp.post("")
@require_auth
@require_permission("REQUEST_REGION_ACCESS")
def create_request_route():
    """
    Request body:
    {
        "regions": [str] (at least one, no duplicates),
        "reason": str (at least 10 characters)
    }

    Returns:
        201: Request created (pending)
        400: Invalid request
    """
    try:
        data = json_body()
        request_row = request_service.create_access_request(
            g.current_user.id,
            data.get("regions"),
            data.get("reason"),
        )
        return jsonify({
            "success": True,
            "request": request_row.to_dict(),
            "message": "Region access request submitted",
        }), 201
    except Exception as e:
        return json_error(e, "create region access request")


@region_requests_bp.get("")
@require_auth
def list_requests_route():
    """
    Own requests; reviewers see everyone's.

    Query params:
        status: pending | approved | rejected | cancelled
        region: str
        userId: int (reviewers only)
    """
    try:
        if _can_review():
            raw_user_id = request.args.get("userId")
            user_id = require_int(raw_user_id, "userId") if raw_user_id else None
        else:
            user_id = g.current_user.id

        rows = request_service.list_requests(
            user_id=user_id,
            status=request.args.get("status") or None,
            region=request.args.get("region") or None,
        )
        return jsonify({
            "success": True,
            "requests": [row.to_dict() for row in rows],
            "count": len(rows),
        }), 200
    except Exception as e:
        return json_error(e, "list region access requests")


@region_requests_bp.get("/stats")
@require_auth
def request_stats_route():
    try:
        user_id = None if _can_review() else g.current_user.id
        return jsonify({"success": True, "stats": request_service.get_request_stats(user_id=user_id)}), 200
    except Exception as e:
        return json_error(e, "load region request stats")


@region_requests_bp.get("/<int:request_id>")
@require_auth
def get_request_route(request_id: int):
    try:
        request_row = request_service.get_request(request_id)
        # Other users' requests are reported as missing
        if request_row.user_id != g.current_user.id and not _can_review():
            raise NotFoundError("Region access request not found")
        return jsonify({"success": True, "request": request_row.to_dict()}), 200
    except Exception as e:
        return json_error(e, "load region access request")


@region_requests_bp.patch("/<int:request_id>/approve")
@require_auth
@require_permission("REVIEW_REGION_REQUESTS")
def approve_request_route(request_id: int):
    """
    Approve and create a permanent grant per requested region, atomically.

    Optional body: {"reviewNotes": str}
    """
    try:
        request_row = request_service.approve_request(
            request_id,
            g.current_user.id,
            json_body().get("reviewNotes"),
        )
        return jsonify({
            "success": True,
            "request": request_row.to_dict(),
            "message": "Request approved and regions granted",
        }), 200
    except Exception as e:
        return json_error(e, "approve region access request")


@region_requests_bp.patch("/<int:request_id>/reject")
@require_auth
@require_permission("REVIEW_REGION_REQUESTS")
def reject_request_route(request_id: int):
    """Optional body: {"reviewNotes": str}."""
    try:
        request_row = request_service.reject_request(
            request_id,
            g.current_user.id,
            json_body().get("reviewNotes"),
        )
        return jsonify({
            "success": True,
            "request": request_row.to_dict(),
            "message": "Request rejected",
        }), 200
    except Exception as e:
        return json_error(e, "reject region access request")


@region_requests_bp.delete("/<int:request_id>")
@require_auth
def delete_request_route(request_id: int):
    """
    Admin: delete the request whatever its status.
    Requester: cancel it while still pending (409 otherwise).
    """
    try:
        user = g.current_user
        if permission_service.user_has_permission(user, "DELETE_REGION_REQUESTS"):
            request_service.delete_request(request_id, user)
            return jsonify({"success": True, "message": "Request deleted"}), 200

        request_row = request_service.cancel_request(request_id, user.id)
        return jsonify({
            "success": True,
            "request": request_row.to_dict(),
            "message": "Request cancelled",
        }), 200
    except Exception as e:
        return json_error(e, "delete region access request")
