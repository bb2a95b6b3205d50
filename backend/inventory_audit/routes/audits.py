# Overview: Audit lifecycle API routes.

from flask import Blueprint, jsonify

from ..decorators import current_user_id, require_auth, require_permission
from ..services import audit_service, item_details_service
from .helpers import json_body, require_fields


audits_bp = Blueprint("audits", __name__, url_prefix="/api/audits")


@audits_bp.route("", methods=["POST"])
@require_auth
@require_permission("audit", "create")
def create_audit():
    """
    Create the audit for a month and seed its item details.

    Request body:
    {
        "month": int (1-12),
        "year": int,
        "notes": str (optional),
        "participant_ids": [int] (optional, defaults to the previous audit's)
    }

    Returns:
        201: Audit detail
        400: Invalid month/year
        404: Unknown participant
        409: Audit for the month already exists
    """
    data = json_body()
    require_fields(data, "month", "year")
    audit = audit_service.create_audit(
        month=data["month"],
        year=data["year"],
        notes=data.get("notes"),
        participant_ids=data.get("participant_ids"),
        user_id=current_user_id(),
    )
    return jsonify(audit), 201


@audits_bp.route("", methods=["GET"])
@require_auth
@require_permission("audit", "read")
def list_audits():
    return jsonify({"audits": audit_service.get_all_audits()}), 200


@audits_bp.route("/latest", methods=["GET"])
@require_auth
@require_permission("audit", "read")
def latest_audit():
    audit = audit_service.get_latest_audit()
    if audit is None:
        return jsonify({"audit": None, "message": "No audits found"}), 200
    return jsonify({"audit": audit}), 200


@audits_bp.route("/<int:audit_id>", methods=["GET"])
@require_auth
@require_permission("audit", "read")
def get_audit(audit_id: int):
    return jsonify(audit_service.get_audit_by_id(audit_id)), 200


@audits_bp.route("/<int:audit_id>", methods=["PATCH"])
@require_auth
@require_permission("audit", "update")
def update_audit(audit_id: int):
    """
    Patch status, notes or participants.

    Request body (all optional):
    {
        "status": "COMPLETED" | "CANCELED",
        "notes": str,
        "participant_ids": [int]
    }
    """
    data = json_body()
    audit = audit_service.update_audit(
        audit_id,
        status=data.get("status"),
        notes=data.get("notes"),
        participant_ids=data.get("participant_ids"),
        user_id=current_user_id(),
    )
    return jsonify(audit), 200


@audits_bp.route("/<int:audit_id>/complete", methods=["PATCH"])
@require_auth
@require_permission("audit", "update")
def complete_audit(audit_id: int):
    return jsonify(audit_service.complete_audit(audit_id, user_id=current_user_id())), 200


@audits_bp.route("/<int:audit_id>/cancel", methods=["PATCH"])
@require_auth
@require_permission("audit", "update")
def cancel_audit(audit_id: int):
    return jsonify(audit_service.cancel_audit(audit_id, user_id=current_user_id())), 200


@audits_bp.route("/<int:audit_id>", methods=["DELETE"])
@require_auth
@require_permission("audit", "delete")
def delete_audit(audit_id: int):
    deleted = audit_service.delete_audit(audit_id, user_id=current_user_id())
    return jsonify({"deleted": deleted}), 200


@audits_bp.route("/<int:audit_id>/summary", methods=["GET"])
@require_auth
@require_permission("audit", "read")
def audit_summary(audit_id: int):
    return jsonify({"items": item_details_service.get_item_summary_by_audit_id(audit_id)}), 200


@audits_bp.route("/<int:audit_id>/items", methods=["POST"])
@require_auth
@require_permission("item_details", "create")
def add_item_detail(audit_id: int):
    """
    Add a room/item pair to an in-progress audit.

    Request body:
    {
        "room_id": int,
        "item_id": int,
        "active_quantity": int (optional),
        "broken_quantity": int (optional),
        "inactive_quantity": int (optional)
    }
    """
    data = json_body()
    require_fields(data, "room_id", "item_id")
    detail = item_details_service.add_item_detail_to_audit(
        audit_id,
        room_id=data["room_id"],
        item_id=data["item_id"],
        active_quantity=data.get("active_quantity", 0),
        broken_quantity=data.get("broken_quantity", 0),
        inactive_quantity=data.get("inactive_quantity", 0),
        user_id=current_user_id(),
    )
    return jsonify(detail), 201
