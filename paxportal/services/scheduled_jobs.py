"""
World Cup 2026 Passenger Capture Portal
Scheduled Jobs.

Jobs:
    - sheets_sync: pulls the Sales Log into SalesOrder rows, then runs the
      deadline expiry sweep whatever the sync outcome was
"""

from __future__ import annotations

import logging
from typing import Any

from paxportal.core.exceptions import ConflictError
from paxportal.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


@register_job("sheets_sync")
def sheets_sync_job(app) -> dict[str, Any]:
    """Periodic Sales Log sync followed by the deadline expiry sweep."""
    from paxportal.services.sheets_sync import expire_overdue_forms, run_sync

    results: dict[str, Any] = {"sync": None, "expired_forms": 0}

    try:
        results["sync"] = run_sync()
    except ConflictError:
        logger.info("Scheduled sync skipped: a run is already in progress")
        results["sync"] = {"status": "SKIPPED"}
    except Exception as e:
        logger.error("Scheduled sync crashed: %s", e)
        results["sync"] = {"status": "ERROR", "error": str(e)}

    results["expired_forms"] = expire_overdue_forms()
    return results
