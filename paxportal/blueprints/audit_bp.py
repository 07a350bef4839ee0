"""
Audit trail blueprint.

Endpoints:
    GET /api/v1/audit — paginated audit entries (?action=&user_id=&page=&page_size=)

MASTER sees every entry; ADMIN sees its own.
"""

from flask import Blueprint, g, jsonify, request

from paxportal.blueprints import register_error_handlers
from paxportal.middleware.permission_required import require_policy
from paxportal.services.audit_service import DEFAULT_AUDIT_PAGE_SIZE, list_audit_logs
from paxportal.utils.helpers import paginated, parse_pagination

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")
register_error_handlers(audit_bp)


@audit_bp.route("/audit", methods=["GET"])
@require_policy("audit.view")
def list_entries():
    page, page_size = parse_pagination(default_size=DEFAULT_AUDIT_PAGE_SIZE)
    entries, total = list_audit_logs(
        g.current_user,
        action=request.args.get("action"),
        user_id=request.args.get("user_id", type=int),
        page=page,
        page_size=page_size,
    )
    return jsonify(paginated(entries, total, page, page_size))
