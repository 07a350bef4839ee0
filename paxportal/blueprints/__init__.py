"""
World Cup 2026 Passenger Capture Portal
Blueprint registry.

Every API blueprint calls ``register_error_handlers`` once so service
exceptions map to the same JSON error shape everywhere:

    NotFoundError            404  ERR_NOT_FOUND
    ValidationError          422  ERR_VALIDATION_RULE
    ForbiddenError           403  ERR_FORBIDDEN  (DEADLINE_EXPIRED for deadlines)
    ConflictError            409  ERR_CONFLICT_DUPLICATE (SYNC_RUNNING for the sync lock)
    PreconditionFailedError  422  <domain code>
    UpstreamError            502 / 503  <domain code>
    anything else            500  ERR_INTERNAL  (message never leaked)
"""

import logging

from flask import Blueprint, g, request
from werkzeug.exceptions import HTTPException

from paxportal.core.exceptions import (
    ConflictError,
    DeadlineExpiredError,
    ForbiddenError,
    NotFoundError,
    PreconditionFailedError,
    UpstreamError,
    ValidationError,
)
from paxportal.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def register_error_handlers(bp: Blueprint) -> None:
    """Attach the shared exception → JSON mapping to a blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(ForbiddenError)
    def _handle_forbidden(error: ForbiddenError):
        if isinstance(error, DeadlineExpiredError):
            return api_error("DEADLINE_EXPIRED", str(error), status=403)
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        if error.resource == "SyncLog":
            return api_error("SYNC_RUNNING", "Sync already running", status=409)
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(PreconditionFailedError)
    def _handle_precondition(error: PreconditionFailedError):
        return api_error(error.code, str(error), status=422)

    @bp.errorhandler(UpstreamError)
    def _handle_upstream(error: UpstreamError):
        logger.warning("Upstream failure %s on %s: %s", error.code, request.endpoint, error)
        return api_error(error.code, str(error), status=error.status_code)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")


def current_user_id() -> int | None:
    user = getattr(g, "current_user", None)
    return user.id if user is not None else None


def json_object() -> dict | None:
    """Request body as a dict; ``{}`` when absent, ``None`` when it is not a JSON object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None
