"""
Capture dispatch blueprint.

Endpoints:
    POST /api/v1/captures/dispatch  — send (EMAIL) or generate (MANUAL_LINK) client access
    GET  /api/v1/captures/schema    — passenger field catalog
"""

from flask import Blueprint, jsonify

from paxportal.blueprints import current_user_id, json_object, register_error_handlers
from paxportal.middleware.permission_required import require_policy
from paxportal.services import capture_service
from paxportal.utils.errors import E, api_error

captures_bp = Blueprint("captures", __name__, url_prefix="/api/v1/captures")
register_error_handlers(captures_bp)


@captures_bp.route("/dispatch", methods=["POST"])
@require_policy("capture.dispatch")
def dispatch():
    """
    Body: {proposal, mode: EMAIL | MANUAL_LINK, deadline?}
    Returns: {access_token, client_link, client_email, email_sent, temp_password?}
    """
    data = json_object()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "Request body must be a JSON object")
    proposal = str(data.get("proposal") or "").strip()
    mode = str(data.get("mode") or "").strip()
    if not proposal or not mode:
        return api_error(E.VALIDATION_REQUIRED, "proposal and mode are required")

    result = capture_service.dispatch_capture(
        proposal, mode, current_user_id(), deadline=data.get("deadline"),
    )
    return jsonify(result), 201


@captures_bp.route("/schema", methods=["GET"])
@require_policy("capture.schema")
def schema():
    return jsonify({"fields": capture_service.get_form_schema()})
