# Overview: Activity history API routes (read-only).

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import activity_service
from .helpers import int_arg


activity_bp = Blueprint("activity", __name__, url_prefix="/api/history")


@activity_bp.route("", methods=["GET"])
@require_auth
@require_permission("history", "read")
def recent_activity():
    """
    Newest-first activity.

    Query params: limit, entity_type, entity_id, user_id
    """
    activities = activity_service.get_recent_activity(
        limit=request.args.get("limit"),
        entity_type=request.args.get("entity_type"),
        entity_id=int_arg("entity_id"),
        user_id=int_arg("user_id"),
    )
    return jsonify({"activities": activities}), 200


@activity_bp.route("/stats", methods=["GET"])
@require_auth
@require_permission("history", "read")
def activity_stats():
    return jsonify(activity_service.get_activity_stats()), 200
