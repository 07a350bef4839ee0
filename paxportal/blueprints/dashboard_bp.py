"""
Dashboard blueprint.

Endpoints:
    GET /api/v1/dashboard/stats — capture counts per status + global progress
"""

from flask import Blueprint, jsonify

from paxportal.blueprints import register_error_handlers
from paxportal.middleware.permission_required import require_policy
from paxportal.services import dashboard_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")
register_error_handlers(dashboard_bp)


@dashboard_bp.route("/stats", methods=["GET"])
@require_policy("dashboard.view")
def stats():
    return jsonify(dashboard_service.get_stats())
