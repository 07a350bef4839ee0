"""
Proposals blueprint (staff).

Endpoints:
    GET   /api/v1/proposals                              — paginated summaries
    GET   /api/v1/proposals/filters                      — game / hotel / seller options
    GET   /api/v1/proposals/<order_id>                   — one proposal summary
    GET   /api/v1/proposals/<order_id>/matrix            — per-passenger data matrix
    PATCH /api/v1/proposals/slots/<slot_id>/admin-fields — merge admin-owned answers
"""

from flask import Blueprint, jsonify, request

from paxportal.blueprints import current_user_id, json_object, register_error_handlers
from paxportal.middleware.permission_required import require_policy
from paxportal.services import forms_service, proposal_service
from paxportal.utils.errors import E, api_error
from paxportal.utils.helpers import parse_pagination

proposals_bp = Blueprint("proposals", __name__, url_prefix="/api/v1/proposals")
register_error_handlers(proposals_bp)


def _filters(*keys) -> dict:
    return {k: request.args.get(k) for k in keys if request.args.get(k)}


@proposals_bp.route("", methods=["GET"])
@require_policy("proposals.view")
def list_proposals():
    """
    Query params: status, game, hotel, seller, search, page, page_size
    """
    page, page_size = parse_pagination()
    filters = _filters("status", "game", "hotel", "seller", "search")
    return jsonify(proposal_service.list_proposals(filters, page=page, page_size=page_size))


@proposals_bp.route("/filters", methods=["GET"])
@require_policy("proposals.view")
def filter_options():
    return jsonify(proposal_service.get_filter_options(_filters("game", "hotel", "seller")))


@proposals_bp.route("/<int:order_id>", methods=["GET"])
@require_policy("proposals.view")
def get_proposal(order_id):
    return jsonify(proposal_service.get_proposal_by_id(order_id))


@proposals_bp.route("/<int:order_id>/matrix", methods=["GET"])
@require_policy("proposals.view")
def get_matrix(order_id):
    return jsonify({"data": proposal_service.get_proposal_matrix(order_id)})


@proposals_bp.route("/slots/<int:slot_id>/admin-fields", methods=["PATCH"])
@require_policy("proposals.edit_admin_fields")
def update_admin_fields(slot_id):
    """Body: {fields: {ticket_status?, hotel_confirmation_number?, ...}}"""
    data = json_object()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "Request body must be a JSON object")
    result = forms_service.update_admin_fields(slot_id, data.get("fields"), edited_by=current_user_id())
    return jsonify(result), 200
