# Overview: Audit item-detail API routes.

from flask import Blueprint, jsonify

from ..decorators import current_user_id, require_auth, require_permission
from ..services import item_details_service
from .helpers import int_arg, json_body


item_details_bp = Blueprint("item_details", __name__, url_prefix="/api/item-details")


@item_details_bp.route("", methods=["GET"])
@require_auth
@require_permission("item_details", "read")
def list_item_details():
    details = item_details_service.get_item_details(audit_id=int_arg("audit_id"))
    return jsonify({"item_details": details}), 200


@item_details_bp.route("/<int:detail_id>", methods=["GET"])
@require_auth
@require_permission("item_details", "read")
def get_item_detail(detail_id: int):
    return jsonify(item_details_service.get_item_detail(detail_id)), 200


@item_details_bp.route("/room/<int:room_id>/item/<int:item_id>", methods=["GET"])
@require_auth
@require_permission("item_details", "read")
def item_detail_history(room_id: int, item_id: int):
    details = item_details_service.get_item_details_by_room_and_item(room_id, item_id)
    return jsonify({"item_details": details}), 200


@item_details_bp.route("/<int:detail_id>", methods=["PATCH"])
@require_auth
@require_permission("item_details", "update")
def update_item_detail(detail_id: int):
    """
    Change quantities of one row.

    Request body (any subset):
    {
        "active_quantity": int,
        "broken_quantity": int,
        "inactive_quantity": int
    }

    Returns:
        200: Updated row
        400: Negative quantity, or audit not in progress
        404: Row not found
    """
    data = json_body()
    detail = item_details_service.update_item_detail(
        detail_id,
        active_quantity=data.get("active_quantity"),
        broken_quantity=data.get("broken_quantity"),
        inactive_quantity=data.get("inactive_quantity"),
        user_id=current_user_id(),
    )
    return jsonify(detail), 200


@item_details_bp.route("/<int:detail_id>", methods=["DELETE"])
@require_auth
@require_permission("item_details", "delete")
def delete_item_detail(detail_id: int):
    deleted = item_details_service.delete_item_detail(detail_id, user_id=current_user_id())
    return jsonify({"deleted": deleted}), 200
