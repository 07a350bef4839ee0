"""
Staff users blueprint (MASTER only).

Endpoints:
    GET    /api/v1/users                        — paginated staff users
    POST   /api/v1/users                        — create {email, name, role, password?}
    PATCH  /api/v1/users/<id>                   — update {name?, role?, is_active?}
    POST   /api/v1/users/<id>/deactivate        — soft disable
    POST   /api/v1/users/<id>/reset-password    — new temporary password
"""

from flask import Blueprint, jsonify

from paxportal.blueprints import json_object, register_error_handlers
from paxportal.middleware.permission_required import require_policy
from paxportal.services import user_service
from paxportal.utils.errors import E, api_error
from paxportal.utils.helpers import parse_pagination

users_bp = Blueprint("users", __name__, url_prefix="/api/v1/users")
register_error_handlers(users_bp)


@users_bp.route("", methods=["GET"])
@require_policy("users.manage")
def list_users():
    page, page_size = parse_pagination()
    return jsonify(user_service.list_users(page, page_size))


@users_bp.route("", methods=["POST"])
@require_policy("users.manage")
def create_user():
    data = json_object()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "Request body must be a JSON object")
    missing = [k for k in ("email", "name", "role") if not data.get(k)]
    if missing:
        return api_error(E.VALIDATION_REQUIRED, f"Missing fields: {', '.join(missing)}")

    user, temp_password = user_service.create_user(
        data["email"], data["name"], data["role"], password=data.get("password"),
    )
    body = {"user": user.to_dict()}
    if temp_password:
        body["temp_password"] = temp_password
    return jsonify(body), 201


@users_bp.route("/<int:user_id>", methods=["PATCH"])
@require_policy("users.manage")
def update_user(user_id):
    data = json_object()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "Request body must be a JSON object")
    user = user_service.update_user(
        user_id, name=data.get("name"), role=data.get("role"), is_active=data.get("is_active"),
    )
    return jsonify(user.to_dict())


@users_bp.route("/<int:user_id>/deactivate", methods=["POST"])
@require_policy("users.manage")
def deactivate_user(user_id):
    return jsonify(user_service.deactivate_user(user_id).to_dict())


@users_bp.route("/<int:user_id>/reset-password", methods=["POST"])
@require_policy("users.manage")
def reset_password(user_id):
    return jsonify({"temp_password": user_service.reset_user_password(user_id)})
