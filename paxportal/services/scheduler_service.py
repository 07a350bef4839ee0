"""
World Cup 2026 Passenger Capture Portal
Scheduler Service.

Thread-based interval scheduler for the recurring background jobs.

Architecture:
    - Job functions register via ``@register_job(name)``
    - SchedulerService.start() runs every registered job on one daemon
      thread, every SYNC_INTERVAL_SECONDS
    - run_job(name) executes one job inside the app context; failures are
      logged and reported, never raised into the loop
    - The last outcome per job is kept in memory for the CLI / logs
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from flask import Flask

from paxportal.utils.helpers import iso, utcnow

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("sheets_sync")
        def sheets_sync_job(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


class SchedulerService:
    """
    Interval scheduler.

    Class-level state: one scheduler per process.
    """

    _app: Flask | None = None
    _running: bool = False
    _thread: threading.Thread | None = None
    _stop_event: threading.Event = threading.Event()
    _last_runs: dict[str, dict] = {}

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Bind the scheduler to a Flask app."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def is_running(cls) -> bool:
        return cls._running

    @classmethod
    def start(cls, interval_seconds: float | None = None) -> bool:
        """Start the background loop. Returns False if already running."""
        if cls._app is None:
            raise RuntimeError("SchedulerService.init_app() must be called first")
        if cls._running:
            return False

        interval = interval_seconds or cls._app.config.get("SYNC_INTERVAL_SECONDS", 300)
        cls._stop_event.clear()
        cls._running = True
        cls._thread = threading.Thread(
            target=cls._loop, args=(interval,), name="paxportal-scheduler", daemon=True,
        )
        cls._thread.start()
        logger.info("Scheduler started: every %ss, jobs=%s", interval, sorted(_job_registry))
        return True

    @classmethod
    def stop(cls, timeout: float = 5.0) -> None:
        if not cls._running:
            return
        cls._stop_event.set()
        if cls._thread is not None:
            cls._thread.join(timeout=timeout)
        cls._running = False
        cls._thread = None
        logger.info("Scheduler stopped")

    @classmethod
    def _loop(cls, interval: float) -> None:
        while not cls._stop_event.is_set():
            cls.run_all()
            cls._stop_event.wait(interval)

    @classmethod
    def run_all(cls) -> list[dict]:
        return [cls.run_job(name) for name in list(_job_registry)]

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with job_name, status, duration_ms, result, error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed: %s", job_name, exc)

        duration_ms = int((time.monotonic() - start) * 1000)
        outcome = {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
            "finished_at": iso(utcnow()),
        }
        cls._last_runs[job_name] = outcome
        return outcome

    @classmethod
    def last_run(cls, job_name: str) -> dict | None:
        return cls._last_runs.get(job_name)
