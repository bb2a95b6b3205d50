# Overview: User management API routes and the read-only role list.

from flask import Blueprint, jsonify

from ..decorators import current_user_id, require_auth, require_permission
from ..models import User
from ..services import user_service
from ..validation import ModelValidationPolicy, validate_payload
from .helpers import json_body


users_bp = Blueprint("users", __name__, url_prefix="/api/users")

# is_superuser is only granted from the CLI
CREATE_USER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "mobile", "role_id"},
    required_on_create={"name", "mobile"},
)
UPDATE_USER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "mobile", "role_id", "is_active"},
)


@users_bp.route("", methods=["GET"])
@require_auth
@require_permission("user", "read")
def list_users():
    return jsonify({"users": user_service.list_users()}), 200


@users_bp.route("/roles", methods=["GET"])
@require_auth
@require_permission("user", "read")
def list_roles():
    return jsonify({"roles": user_service.list_roles()}), 200


@users_bp.route("/<int:user_id>", methods=["GET"])
@require_auth
@require_permission("user", "read")
def get_user(user_id: int):
    return jsonify(user_service.get_user(user_id)), 200


@users_bp.route("", methods=["POST"])
@require_auth
@require_permission("user", "create")
def create_user():
    patch = validate_payload(model=User, payload=json_body(), policy=CREATE_USER_POLICY, partial=False)
    user = user_service.create_user(created_by_user_id=current_user_id(), **patch)
    return jsonify(user.to_dict()), 201


@users_bp.route("/<int:user_id>", methods=["PATCH"])
@require_auth
@require_permission("user", "update")
def update_user(user_id: int):
    patch = validate_payload(model=User, payload=json_body(), policy=UPDATE_USER_POLICY, partial=True)
    return jsonify(user_service.update_user(user_id, patch=patch, user_id=current_user_id())), 200


@users_bp.route("/<int:user_id>", methods=["DELETE"])
@require_auth
@require_permission("user", "delete")
def delete_user(user_id: int):
    deleted = user_service.delete_user(user_id, user_id=current_user_id())
    return jsonify({"deleted": deleted}), 200
