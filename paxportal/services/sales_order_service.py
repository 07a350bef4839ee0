"""
Sales order reconciliation — spreadsheet rows → SalesOrder table.

Idempotent upsert keyed by (proposal, line_number). A row is written only
when the sha256 of its raw data (sorted keys) differs from the stored hash,
so re-running a sync over an unchanged sheet writes nothing.

    rows, unmapped = map_rows(raw_rows)
    result = reconcile(rows)
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from paxportal.models import db
from paxportal.models.sales_order import SalesOrder

logger = logging.getLogger(__name__)

# Mapped columns written on create and on update
_MAPPED_FIELDS = (
    "status", "client_name", "client_email", "company", "cell_phone",
    "game", "hotel", "room_type", "number_of_rooms", "number_of_pax",
    "check_in", "check_out", "ticket_category", "seller",
)


@dataclass
class SalesOrderRow:
    proposal: str
    line_number: int
    status: str = ""
    client_name: str = ""
    client_email: str = ""
    company: str = ""
    cell_phone: str = ""
    game: str = ""
    hotel: str = ""
    room_type: str = ""
    number_of_rooms: int = 0
    number_of_pax: int = 0
    check_in: str = ""
    check_out: str = ""
    ticket_category: str = ""
    seller: str = ""
    raw_data: dict = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, int]:
        return (self.proposal, self.line_number)


@dataclass
class ReconcileResult:
    upserted: int = 0
    skipped: int = 0
    errored: int = 0

    def to_dict(self) -> dict:
        return {"upserted": self.upserted, "skipped": self.skipped, "errored": self.errored}


# ═══════════════════════════════════════════════════════════════════════════
#  Row mapping
# ═══════════════════════════════════════════════════════════════════════════

def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _lookup(row: dict, *aliases: str) -> str:
    """First non-empty value among header aliases; exact match, then case-insensitive."""
    upper_keys = {str(k).strip().upper(): k for k in row}
    for alias in aliases:
        if row.get(alias) is not None:
            text = _as_text(row[alias])
        else:
            key = upper_keys.get(alias.upper())
            text = _as_text(row[key]) if key is not None else ""
        if text:
            return text
    return ""


def _as_count(text: str) -> int:
    try:
        number = float(text.replace(",", ".")) if text else 0
    except ValueError:
        return 0
    if not math.isfinite(number):
        return 0
    return max(int(number), 0)


def _lookup_count(row: dict, *aliases: str) -> int:
    for alias in aliases:
        count = _as_count(_lookup(row, alias))
        if count:
            return count
    return 0


def map_row_to_sales_order(row: dict, line_number: int) -> SalesOrderRow:
    """Map one header→value sheet row to a SalesOrderRow.

    ``line_number`` is the row's 1-based position among data rows; it is
    used when the sheet has no ``#`` column value.
    """
    return SalesOrderRow(
        proposal=_lookup(row, "PROPOSAL", "PROPOSAL ID"),
        line_number=_lookup_count(row, "#") or line_number,
        status=_lookup(row, "STATUS"),
        client_name=_lookup(row, "CLIENT", "CLIENT NAME"),
        client_email=_lookup(row, "EMAIL", "CLIENT EMAIL"),
        company=_lookup(row, "COMPANY"),
        cell_phone=_lookup(row, "CELL PHONE", "PHONE"),
        game=_lookup(row, "GAME", "GAME DETAILS"),
        hotel=_lookup(row, "HOTEL"),
        room_type=_lookup(row, "ROOM TYPE", "ROOM_TYPE", "PRODUCT"),
        number_of_rooms=_lookup_count(row, "NUMBER OF ROOMS", "NUMBER OF TICKETS", "ROOMS", "TICKETS"),
        number_of_pax=_lookup_count(row, "NUMBER OF PAX", "PAX"),
        check_in=_lookup(row, "CHECK IN", "CHECK_IN"),
        check_out=_lookup(row, "CHECK OUT", "CHECK_OUT"),
        ticket_category=_lookup(row, "TICKET CAT", "TICKET CATEGORY"),
        seller=_lookup(row, "SELLER"),
        raw_data=dict(row),
    )


def map_rows(raw_rows: list[dict]) -> tuple[list[SalesOrderRow], int]:
    """Map every sheet row; rows that fail to map are logged and counted, not raised."""
    mapped: list[SalesOrderRow] = []
    failed = 0
    for i, row in enumerate(raw_rows):
        try:
            mapped.append(map_row_to_sales_order(row, i + 1))
        except (ValueError, TypeError, OverflowError, AttributeError) as exc:
            failed += 1
            logger.error("Failed to map sheet row %d: %s", i + 1, exc)
    return mapped, failed


# ═══════════════════════════════════════════════════════════════════════════
#  Reconciliation
# ═══════════════════════════════════════════════════════════════════════════

def compute_hash(raw_data: dict) -> str:
    """sha256 hex of raw_data serialised with sorted keys (key order insensitive)."""
    payload = json.dumps(raw_data, sort_keys=True, separators=(",", ":"),
                         ensure_ascii=False, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def reconcile(rows: list[SalesOrderRow]) -> ReconcileResult:
    """Upsert changed rows; skip unchanged or proposal-less ones.

    Stored hashes for the whole batch are fetched in a single query. Each
    write runs in its own SAVEPOINT so one bad row is counted as errored
    without aborting the rest. Commits once at the end.
    """
    result = ReconcileResult()

    valid = [r for r in rows if r.proposal]
    result.skipped += len(rows) - len(valid)
    if not valid:
        return result

    proposals = {r.proposal for r in valid}
    existing: dict[tuple[str, int], SalesOrder] = {
        (so.proposal, so.line_number): so
        for so in SalesOrder.query.filter(SalesOrder.proposal.in_(proposals)).all()
    }

    for row in valid:
        raw_hash = compute_hash(row.raw_data)
        current = existing.get(row.key)
        if current is not None and current.raw_hash == raw_hash:
            result.skipped += 1
            continue

        is_new = current is None
        try:
            with db.session.begin_nested():
                if is_new:
                    current = SalesOrder(proposal=row.proposal, line_number=row.line_number)
                    db.session.add(current)
                for name in _MAPPED_FIELDS:
                    setattr(current, name, getattr(row, name))
                current.raw_data = row.raw_data
                current.raw_hash = raw_hash
                current.last_synced_at = datetime.now(timezone.utc)
            existing[row.key] = current
            result.upserted += 1
        except (SQLAlchemyError, ValueError, TypeError) as exc:
            result.errored += 1
            logger.error(
                "Failed to upsert row: proposal=%s line=%s error=%s",
                row.proposal, row.line_number, exc,
                extra={"proposal": row.proposal},
            )
            if is_new:
                existing.pop(row.key, None)

    db.session.commit()
    logger.info(
        "Upsert complete: %d upserted, %d skipped, %d errored (of %d total)",
        result.upserted, result.skipped, result.errored, len(rows),
    )
    return result


def get_proposal_lines(proposal: str) -> list[SalesOrder]:
    """Sales log lines for a proposal, in line order."""
    return (
        SalesOrder.query.filter_by(proposal=proposal)
        .order_by(SalesOrder.line_number.asc())
        .all()
    )
