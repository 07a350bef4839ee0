"""Shared utility functions used across services and blueprints.

utcnow / as_utc:     timezone-aware timestamps (SQLite hands back naive values)
parse_datetime:      ISO-8601 deadline parsing (raises ValueError on bad input)
progress_percent:    half-up rounded filled/total percentage
parse_pagination:    page / page_size query parsing with an upper cap
paginated:           standard paginated response envelope
"""
import math
from datetime import date, datetime, timezone

from flask import request

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the store."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def parse_datetime(value) -> datetime | None:
    """Parse an ISO date or datetime to an aware UTC datetime.

    Plain dates (``YYYY-MM-DD``) become end-of-day UTC so a deadline on a
    given day stays open for that whole day. Raises ValueError on bad input.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, 23, 59, 59, tzinfo=timezone.utc)
    text = str(value).strip()
    if len(text) == 10:
        d = date.fromisoformat(text)
        return datetime(d.year, d.month, d.day, 23, 59, 59, tzinfo=timezone.utc)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def progress_percent(filled: int, total: int) -> int:
    """round(filled / total * 100), half rounded up; 0 when total is 0."""
    if not total:
        return 0
    return int(math.floor(filled * 100 / total + 0.5))


def parse_pagination(default_size: int = DEFAULT_PAGE_SIZE) -> tuple[int, int]:
    """Read ``page`` / ``page_size`` from the query string."""
    page = request.args.get("page", 1, type=int) or 1
    page_size = request.args.get("page_size", default_size, type=int) or default_size
    return max(page, 1), min(max(page_size, 1), MAX_PAGE_SIZE)


def paginated(data: list, total: int, page: int, page_size: int) -> dict:
    return {
        "data": data,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(total / page_size) if page_size else 0,
    }
