# Overview: Flask API routes for the region catalog.

from flask import Blueprint, jsonify

from app.decorators import require_auth
from app.services import region_service
from .errors import json_error


regions_bp = Blueprint("regions", __name__, url_prefix="/api/regions")


@regions_bp.get("")
@require_auth
def list_regions_route():
    try:
        regions = region_service.list_regions()
        return jsonify({
            "success": True,
            "regions": [region.to_dict() for region in regions],
            "count": len(regions),
        }), 200
    except Exception as e:
        return json_error(e, "list regions")
