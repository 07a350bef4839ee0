"""
Sheets sync blueprint.

Endpoints:
    POST /api/v1/sync/trigger  — run one sync now; waits and returns the finished log
    GET  /api/v1/sync/logs     — paginated sync history, newest first
"""

from flask import Blueprint, jsonify

from paxportal.blueprints import register_error_handlers
from paxportal.middleware.permission_required import require_policy
from paxportal.models.sales_order import SyncStatus
from paxportal.services import sheets_sync
from paxportal.utils.errors import api_error
from paxportal.utils.helpers import paginated, parse_pagination

sync_bp = Blueprint("sync", __name__, url_prefix="/api/v1/sync")
register_error_handlers(sync_bp)


@sync_bp.route("/trigger", methods=["POST"])
@require_policy("sync.trigger")
def trigger_sync():
    """409 when a run is in progress; 502 with the log id when the run failed."""
    result = sheets_sync.run_sync()
    if result["status"] == SyncStatus.ERROR:
        return api_error(
            "SYNC_FAILED",
            "Sync failed; see the sync log for details",
            status=502,
            details={"sync_log_id": result["id"]},
        )
    return jsonify(result), 200


@sync_bp.route("/logs", methods=["GET"])
@require_policy("sync.view")
def list_logs():
    page, page_size = parse_pagination()
    logs, total = sheets_sync.list_sync_logs(page, page_size)
    return jsonify(paginated([log.to_dict(include_error=True) for log in logs],
                             total, page, page_size))
