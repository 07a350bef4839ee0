"""
Portal-wide exception hierarchy.

Services raise these types; blueprints register handlers against them
once (see ``paxportal.blueprints.register_error_handlers``) and get
consistent HTTP status codes everywhere.

Usage:
    from paxportal.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Proposal", resource_id="20250602")
    raise ValidationError("answers must be an object", details={"answers": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Proposal", "PassengerSlot").
        resource_id: The key that was looked up. Included in logs.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation collides with existing state.

    Maps to HTTP 409. Also used for "sync already running".

    Args:
        resource: Model name.
        field: The field that collides.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class ForbiddenError(Exception):
    """Raised when the caller may not act on an existing resource.

    Maps to HTTP 403.
    """

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class DeadlineExpiredError(ForbiddenError):
    """Raised when a passenger slot is written after its access deadline."""

    def __init__(self, message: str = "Deadline expired") -> None:
        super().__init__(message)


class PreconditionFailedError(Exception):
    """Raised when an operation's domain preconditions do not hold.

    Maps to HTTP 422 with a machine-readable ``code``
    (e.g. ``NOT_CONFIRMED``, ``NO_EMAIL``).
    """

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(message)


class UpstreamError(Exception):
    """Raised when an external collaborator (Sheets API, SMTP) fails.

    Maps to HTTP 502 unless a subclass overrides ``status_code``.
    """

    status_code = 502

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(message)


class EmailNotConfiguredError(UpstreamError):
    """E-mail dispatch requested while no transport is configured."""

    status_code = 503

    def __init__(self, message: str = "Email service is not configured") -> None:
        super().__init__("EMAIL_NOT_CONFIGURED", message)


class EmailSendError(UpstreamError):
    """The e-mail transport rejected or failed to deliver a message."""

    def __init__(self, message: str = "Failed to send email") -> None:
        super().__init__("EMAIL_SEND_FAILED", message)


class SheetsFetchError(UpstreamError):
    """The spreadsheet source could not be read."""

    def __init__(self, message: str) -> None:
        super().__init__("SHEETS_FETCH_FAILED", message)
