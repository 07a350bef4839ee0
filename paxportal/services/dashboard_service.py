"""
Dashboard Metrics Service.

Aggregates capture progress across every dispatched form:
  - instance count per capture status
  - global progress over summed slots
"""

import logging

from sqlalchemy import func

from paxportal.models import db
from paxportal.models.capture import CaptureStatus, FormInstance
from paxportal.utils.helpers import progress_percent

logger = logging.getLogger(__name__)


def get_status_counts():
    """Form instance count per capture status (every status present, 0 when empty)."""
    rows = (
        db.session.query(FormInstance.capture_status, func.count(FormInstance.id))
        .group_by(FormInstance.capture_status)
        .all()
    )
    counts = {
        CaptureStatus.AWAITING_FILL: 0,
        CaptureStatus.IN_PROGRESS: 0,
        CaptureStatus.COMPLETED: 0,
        CaptureStatus.EXPIRED: 0,
    }
    for status, count in rows:
        counts[status] = count
    return counts


def get_slot_totals():
    total, filled = db.session.query(
        func.coalesce(func.sum(FormInstance.total_slots), 0),
        func.coalesce(func.sum(FormInstance.filled_slots), 0),
    ).one()
    return int(total), int(filled)


def get_stats():
    """High-level capture KPIs for the admin dashboard."""
    counts = get_status_counts()
    total_slots, filled_slots = get_slot_totals()
    return {
        "total_dispatched": sum(counts.values()),
        "not_started": counts[CaptureStatus.AWAITING_FILL],
        "in_progress": counts[CaptureStatus.IN_PROGRESS],
        "completed": counts[CaptureStatus.COMPLETED],
        "expired": counts[CaptureStatus.EXPIRED],
        "total_slots": total_slots,
        "filled_slots": filled_slots,
        "global_progress": progress_percent(filled_slots, total_slots),
    }
