# Overview: Room and item API routes.

from flask import Blueprint, jsonify

from ..decorators import current_user_id, require_auth, require_permission
from ..models import Item, Room
from ..services import catalog_service
from ..validation import ModelValidationPolicy, validate_payload
from .helpers import json_body


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")

ROOM_POLICY = ModelValidationPolicy(
    writable_fields={"name", "floor", "department"},
    required_on_create={"name"},
)
ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "unit", "unit_price"},
    required_on_create={"name"},
)


# -- ROOMS --


@catalog_bp.route("/rooms", methods=["GET"])
@require_auth
@require_permission("room", "read")
def list_rooms():
    return jsonify({"rooms": catalog_service.list_rooms()}), 200


@catalog_bp.route("/rooms/<int:room_id>", methods=["GET"])
@require_auth
@require_permission("room", "read")
def get_room(room_id: int):
    return jsonify(catalog_service.get_room(room_id)), 200


@catalog_bp.route("/rooms", methods=["POST"])
@require_auth
@require_permission("room", "create")
def create_room():
    patch = validate_payload(model=Room, payload=json_body(), policy=ROOM_POLICY, partial=False)
    room = catalog_service.create_room(user_id=current_user_id(), **patch)
    return jsonify(room), 201


@catalog_bp.route("/rooms/<int:room_id>", methods=["PATCH"])
@require_auth
@require_permission("room", "update")
def update_room(room_id: int):
    patch = validate_payload(model=Room, payload=json_body(), policy=ROOM_POLICY, partial=True)
    return jsonify(catalog_service.update_room(room_id, patch=patch, user_id=current_user_id())), 200


@catalog_bp.route("/rooms/<int:room_id>", methods=["DELETE"])
@require_auth
@require_permission("room", "delete")
def delete_room(room_id: int):
    deleted = catalog_service.delete_room(room_id, user_id=current_user_id())
    return jsonify({"deleted": deleted}), 200


# -- ITEMS --


@catalog_bp.route("/items", methods=["GET"])
@require_auth
@require_permission("item", "read")
def list_items():
    return jsonify({"items": catalog_service.list_items()}), 200


@catalog_bp.route("/items/<int:item_id>", methods=["GET"])
@require_auth
@require_permission("item", "read")
def get_item(item_id: int):
    return jsonify(catalog_service.get_item(item_id)), 200


@catalog_bp.route("/items", methods=["POST"])
@require_auth
@require_permission("item", "create")
def create_item():
    patch = validate_payload(model=Item, payload=json_body(), policy=ITEM_POLICY, partial=False)
    item = catalog_service.create_item(user_id=current_user_id(), **patch)
    return jsonify(item), 201


@catalog_bp.route("/items/<int:item_id>", methods=["PATCH"])
@require_auth
@require_permission("item", "update")
def update_item(item_id: int):
    patch = validate_payload(model=Item, payload=json_body(), policy=ITEM_POLICY, partial=True)
    return jsonify(catalog_service.update_item(item_id, patch=patch, user_id=current_user_id())), 200


@catalog_bp.route("/items/<int:item_id>", methods=["DELETE"])
@require_auth
@require_permission("item", "delete")
def delete_item(item_id: int):
    deleted = catalog_service.delete_item(item_id, user_id=current_user_id())
    return jsonify({"deleted": deleted}), 200
