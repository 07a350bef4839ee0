"""
Clients blueprint (staff).

Endpoints:
    GET    /api/v1/clients                            — paginated clients (?search=)
    GET    /api/v1/clients/<id>                       — client detail with proposals
    POST   /api/v1/clients/<id>/deactivate            — soft disable
    POST   /api/v1/clients/<id>/reset-password        — new temporary password
    DELETE /api/v1/clients/<id>                       — delete client and its forms
"""

from flask import Blueprint, jsonify, request

from paxportal.blueprints import register_error_handlers
from paxportal.middleware.permission_required import require_policy
from paxportal.services import client_service
from paxportal.utils.helpers import parse_pagination

clients_bp = Blueprint("clients", __name__, url_prefix="/api/v1/clients")
register_error_handlers(clients_bp)


@clients_bp.route("", methods=["GET"])
@require_policy("clients.manage")
def list_clients():
    page, page_size = parse_pagination()
    return jsonify(client_service.list_clients(page, page_size, search=request.args.get("search")))


@clients_bp.route("/<int:client_id>", methods=["GET"])
@require_policy("clients.manage")
def get_client(client_id):
    return jsonify(client_service.get_client_by_id(client_id))


@clients_bp.route("/<int:client_id>/deactivate", methods=["POST"])
@require_policy("clients.manage")
def deactivate_client(client_id):
    user = client_service.deactivate_client(client_id)
    return jsonify(user.to_dict())


@clients_bp.route("/<int:client_id>/reset-password", methods=["POST"])
@require_policy("clients.manage")
def reset_password(client_id):
    return jsonify({"temp_password": client_service.reset_client_password(client_id)})


@clients_bp.route("/<int:client_id>", methods=["DELETE"])
@require_policy("clients.manage")
def delete_client(client_id):
    client_service.delete_client(client_id)
    return "", 204
