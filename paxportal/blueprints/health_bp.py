"""
Health check blueprint.

Endpoints:
    GET /api/v1/health — database reachability and sync lock state
"""

import logging
import time

from flask import Blueprint, jsonify

from paxportal.models import db
from paxportal.services.sheets_sync import sync_lock
from paxportal.utils.helpers import iso

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {"status": "ok", "latency_ms": round((time.perf_counter() - t0) * 1000, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error"}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    checks["sync"] = {"running": sync_lock.running, "started_at": iso(sync_lock.started_at)}

    return jsonify({"status": "ok" if overall else "degraded", "checks": checks}), 200 if overall else 503
