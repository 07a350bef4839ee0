"""
Sheets sync orchestration.

One run:  RUNNING ──▶ SUCCESS   (fetch ok, no errored row)
                  ├─▶ PARTIAL   (fetch ok, ≥1 errored row)
                  └─▶ ERROR     (fetch failed or unrecoverable exception)

At most one run executes per process, guarded by ``sync_lock``. A lock held
longer than SYNC_STALE_AFTER_SECONDS is treated as left over from a crashed
run and force-cleared on the next acquire. Storage calls are retried on
transient connection errors with linear backoff.

The deadline expiry sweep (``expire_overdue_forms``) shares the schedule
but is independent of the sync outcome.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from paxportal.core.exceptions import ConflictError
from paxportal.models import db
from paxportal.models.audit import AuditAction, record_audit
from paxportal.models.capture import CaptureStatus, ClientProposalAccess, FormInstance
from paxportal.models.sales_order import SyncLog, SyncStatus
from paxportal.services.sales_order_service import map_rows, reconcile
from paxportal.utils.helpers import utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (OperationalError, DisconnectionError, PoolTimeoutError)


# ═══════════════════════════════════════════════════════════════════════════
#  Mutual exclusion
# ═══════════════════════════════════════════════════════════════════════════

class SyncLock:
    """Single-process exclusion flag with a staleness timeout."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self.running = False
        self.started_at: datetime | None = None

    def try_acquire(self, stale_after_seconds: float, now: datetime | None = None) -> bool:
        now = now or utcnow()
        with self._guard:
            if self.running:
                if self.started_at and now - self.started_at > timedelta(seconds=stale_after_seconds):
                    logger.warning("Clearing stale sync lock held since %s", self.started_at.isoformat())
                else:
                    return False
            self.running = True
            self.started_at = now
            return True

    def release(self) -> None:
        with self._guard:
            self.running = False
            self.started_at = None


sync_lock = SyncLock()


# ═══════════════════════════════════════════════════════════════════════════
#  Transient retry
# ═══════════════════════════════════════════════════════════════════════════

def with_transient_retry(
    fn: Callable[[], T],
    *,
    max_retries: int | None = None,
    backoff_seconds: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn``; on a transient storage error roll back and retry.

    Backoff grows linearly (backoff * attempt). Other errors propagate at once.
    """
    cfg = current_app.config
    if max_retries is None:
        max_retries = cfg.get("SYNC_MAX_RETRIES", 3)
    if backoff_seconds is None:
        backoff_seconds = cfg.get("SYNC_RETRY_BACKOFF_SECONDS", 2)

    attempt = 0
    while True:
        try:
            return fn()
        except TRANSIENT_ERRORS as exc:
            db.session.rollback()
            attempt += 1
            if attempt > max_retries:
                logger.error("Storage still unavailable after %d retries: %s", max_retries, exc)
                raise
            delay = backoff_seconds * attempt
            logger.warning("Transient storage error (retry %d/%d in %.1fs): %s",
                           attempt, max_retries, delay, exc)
            sleep(delay)


# ═══════════════════════════════════════════════════════════════════════════
#  Sync run
# ═══════════════════════════════════════════════════════════════════════════

def _open_log() -> int:
    log = SyncLog(status=SyncStatus.RUNNING, started_at=utcnow())
    db.session.add(log)
    db.session.commit()
    return log.id


def _close_log(log_id: int, *, status: str, rows_read: int = 0, result=None, error: str | None = None):
    log = db.session.get(SyncLog, log_id)
    log.status = status
    log.finished_at = utcnow()
    log.rows_read = rows_read
    if result is not None:
        log.rows_upserted = result.upserted
        log.rows_skipped = result.skipped
        log.rows_errored = result.errored
    log.error = error
    db.session.commit()
    return log


def run_sync(gateway=None) -> dict:
    """Fetch the sales log and reconcile it into SalesOrder rows.

    Waits for completion. Returns the finished SyncLog as a dict; a failed
    run comes back with status ERROR rather than raising.

    Raises:
        ConflictError: another run holds the lock.
    """
    if gateway is None:
        from paxportal.integrations.sheets_gateway import sheets_gateway as gateway

    cfg = current_app.config
    if not sync_lock.try_acquire(cfg.get("SYNC_STALE_AFTER_SECONDS", 600)):
        logger.warning("Sync already running, rejecting trigger")
        raise ConflictError(resource="SyncLog", field="status", value=SyncStatus.RUNNING)

    try:
        log_id = with_transient_retry(_open_log)
        record_audit(AuditAction.SYNC_STARTED, entity="SyncLog", entity_id=log_id)
        logger.info("Sync started", extra={"sync_log_id": log_id})

        rows_read = 0
        try:
            raw_rows = gateway.fetch_sales_log()
            rows_read = len(raw_rows)
            rows, unmapped = map_rows(raw_rows)
            result = with_transient_retry(lambda: reconcile(rows))
            result.errored += unmapped
            status = SyncStatus.PARTIAL if result.errored else SyncStatus.SUCCESS
            log = with_transient_retry(
                lambda: _close_log(log_id, status=status, rows_read=rows_read, result=result)
            )
        except Exception as exc:
            db.session.rollback()
            logger.exception("Sync failed: %s", exc, extra={"sync_log_id": log_id})
            log = with_transient_retry(
                lambda: _close_log(log_id, status=SyncStatus.ERROR, rows_read=rows_read,
                                   error=str(exc)[:2000])
            )
            record_audit(AuditAction.SYNC_FAILED, entity="SyncLog", entity_id=log_id,
                         payload={"error": str(exc)[:500]})
            return log.to_dict()

        logger.info(
            "Sync completed: %d read, %d upserted, %d skipped, %d errored",
            log.rows_read, log.rows_upserted, log.rows_skipped, log.rows_errored,
            extra={"sync_log_id": log_id},
        )
        record_audit(
            AuditAction.SYNC_COMPLETED,
            entity="SyncLog",
            entity_id=log_id,
            payload={
                "status": log.status,
                "rows_read": log.rows_read,
                "rows_upserted": log.rows_upserted,
                "rows_skipped": log.rows_skipped,
                "rows_errored": log.rows_errored,
            },
        )
        return log.to_dict()
    finally:
        sync_lock.release()


def list_sync_logs(page: int = 1, page_size: int = 20) -> tuple[list[SyncLog], int]:
    query = SyncLog.query.order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
    total = query.count()
    return query.offset((page - 1) * page_size).limit(page_size).all(), total


# ═══════════════════════════════════════════════════════════════════════════
#  Deadline expiry sweep
# ═══════════════════════════════════════════════════════════════════════════

def expire_overdue_forms(now: datetime | None = None) -> int:
    """Move every open form whose access deadline has passed to EXPIRED.

    Returns the number of instances changed; 0 on failure (logged, never raised).
    """
    now = now or utcnow()
    try:
        overdue = (
            FormInstance.query.join(ClientProposalAccess, FormInstance.access_id == ClientProposalAccess.id)
            .filter(
                ClientProposalAccess.deadline.isnot(None),
                ClientProposalAccess.deadline < now,
                FormInstance.capture_status.notin_([CaptureStatus.COMPLETED, CaptureStatus.EXPIRED]),
            )
            .all()
        )
        for instance in overdue:
            instance.capture_status = CaptureStatus.EXPIRED
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Deadline expiry sweep failed")
        return 0

    if overdue:
        logger.info("Expired %d overdue forms", len(overdue))
        record_audit(
            AuditAction.FORMS_EXPIRED,
            entity="FormInstance",
            payload={"form_instance_ids": [i.id for i in overdue]},
        )
    return len(overdue)
