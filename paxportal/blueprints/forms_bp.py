"""
Client portal forms blueprint.

Endpoints:
    GET  /api/v1/forms/my-proposals           — proposals dispatched to the caller (CLIENT)
    GET  /api/v1/forms/instance/<token>       — form overview with slots
    GET  /api/v1/forms/slots/<id>             — one passenger slot with its answers
    POST /api/v1/forms/slots/<id>             — save the passenger's answers

Clients are limited to their own accesses; staff may open any form.
"""

from flask import Blueprint, g, jsonify

from paxportal.blueprints import json_object, register_error_handlers
from paxportal.middleware.permission_required import require_policy
from paxportal.services import forms_service
from paxportal.utils.errors import E, api_error

forms_bp = Blueprint("forms", __name__, url_prefix="/api/v1/forms")
register_error_handlers(forms_bp)


@forms_bp.route("/my-proposals", methods=["GET"])
@require_policy("forms.my_proposals")
def my_proposals():
    return jsonify({"data": forms_service.get_client_proposals(g.current_user.id)})


@forms_bp.route("/instance/<string:access_token>", methods=["GET"])
@require_policy("forms.fill")
def get_instance(access_token):
    return jsonify(forms_service.get_form_instance(access_token, viewer=g.current_user))


@forms_bp.route("/slots/<int:slot_id>", methods=["GET"])
@require_policy("forms.fill")
def get_slot(slot_id):
    return jsonify(forms_service.get_passenger_slot(slot_id, viewer=g.current_user))


@forms_bp.route("/slots/<int:slot_id>", methods=["POST"])
@require_policy("forms.fill")
def save_slot(slot_id):
    """Body: {answers: {...}}"""
    forms_service.verify_slot_ownership(slot_id, g.current_user)
    data = json_object()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "Request body must be a JSON object")
    result = forms_service.save_passenger_response(
        slot_id, data.get("answers"), submitted_by=g.current_user.id,
    )
    return jsonify(result), 200
