# Overview: Asset purchase API routes.

from flask import Blueprint, jsonify, request

from ..decorators import current_user_id, require_auth, require_permission
from ..services import purchase_service
from .helpers import int_arg, json_body, require_fields


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/asset-purchases")


@purchases_bp.route("", methods=["POST"])
@require_auth
@require_permission("asset_purchase", "create")
def create_purchase():
    """
    Record a purchase and fold it into the in-progress audit.

    Request body:
    {
        "room_id": int,
        "item_id": int,
        "quantity": int (> 0),
        "unit_price": number | str (>= 0),
        "purchase_date": ISO-8601 str (optional, defaults to now),
        "notes": str (optional)
    }
    """
    data = json_body()
    require_fields(data, "room_id", "item_id", "quantity", "unit_price")
    purchase = purchase_service.create_asset_purchase(
        room_id=data["room_id"],
        item_id=data["item_id"],
        quantity=data["quantity"],
        unit_price=data["unit_price"],
        purchase_date=data.get("purchase_date"),
        notes=data.get("notes"),
        user_id=current_user_id(),
    )
    return jsonify(purchase), 201


@purchases_bp.route("", methods=["GET"])
@require_auth
@require_permission("asset_purchase", "read")
def list_purchases():
    purchases = purchase_service.get_all_asset_purchases(
        room_id=int_arg("room_id"),
        item_id=int_arg("item_id"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
    )
    return jsonify({"asset_purchases": purchases}), 200


@purchases_bp.route("/summary", methods=["GET"])
@require_auth
@require_permission("asset_purchase", "read")
def purchase_summary():
    summary = purchase_service.get_purchase_summary(
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        room_id=int_arg("room_id"),
    )
    return jsonify(summary), 200


@purchases_bp.route("/<int:purchase_id>", methods=["GET"])
@require_auth
@require_permission("asset_purchase", "read")
def get_purchase(purchase_id: int):
    return jsonify(purchase_service.get_asset_purchase(purchase_id)), 200


@purchases_bp.route("/<int:purchase_id>", methods=["PATCH"])
@require_auth
@require_permission("asset_purchase", "update")
def update_purchase(purchase_id: int):
    data = json_body()
    purchase = purchase_service.update_asset_purchase(
        purchase_id,
        room_id=data.get("room_id"),
        item_id=data.get("item_id"),
        quantity=data.get("quantity"),
        unit_price=data.get("unit_price"),
        purchase_date=data.get("purchase_date"),
        notes=data.get("notes"),
        user_id=current_user_id(),
    )
    return jsonify(purchase), 200


@purchases_bp.route("/<int:purchase_id>", methods=["DELETE"])
@require_auth
@require_permission("asset_purchase", "delete")
def delete_purchase(purchase_id: int):
    deleted = purchase_service.delete_asset_purchase(purchase_id, user_id=current_user_id())
    return jsonify({"deleted": deleted}), 200
