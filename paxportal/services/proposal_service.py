"""
Proposal views — one summary row per proposal, detail, data matrix and
filter options.

A proposal is represented by its first sales log line (lowest id among the
lines matching the filters). Capture figures come from the most recently
dispatched access of the proposal; without one the row reports
NOT_DISPATCHED with zero slots.

Listing paths:
    no ``status`` filter  → fast path: distinct proposals paginated in SQL,
                            accesses fetched for the current page only
    ``status`` filter     → slow path: capture status lives on the joined
                            FormInstance (or is absent), so every candidate
                            proposal is materialized and filtered in memory.
                            Cost is bounded by the total proposal count.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy import func, or_

from paxportal.core.exceptions import NotFoundError
from paxportal.models import db
from paxportal.models.capture import ClientProposalAccess, FormInstance
from paxportal.models.sales_order import SalesOrder
from paxportal.services.form_generator import TICKET_ONLY_LABEL
from paxportal.utils.helpers import iso, paginated, progress_percent

logger = logging.getLogger(__name__)

NOT_DISPATCHED = "NOT_DISPATCHED"

FILTER_DIMENSIONS = ("game", "hotel", "seller")

_PASSENGER_COLUMNS = (
    "full_name", "nationality", "gender", "document_type", "document_number",
    "document_issuing_country", "document_expiry_date", "birth_date",
    "fan_team", "phone", "email",
)
_ADMIN_COLUMNS = (
    "ticket_status", "hotel_confirmation_number", "flight_locator",
    "insurance_number", "transfer_reference",
)


# ═══════════════════════════════════════════════════════════════════════════
#  Query building blocks
# ═══════════════════════════════════════════════════════════════════════════

def _order_conditions(filters: dict) -> list:
    conditions = []
    for dim in FILTER_DIMENSIONS:
        if filters.get(dim):
            conditions.append(getattr(SalesOrder, dim) == filters[dim])
    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(
            SalesOrder.proposal.ilike(pattern),
            SalesOrder.client_name.ilike(pattern),
            SalesOrder.client_email.ilike(pattern),
        ))
    return conditions


def _representatives_query(filters: dict):
    """First matching line per proposal, newest proposals first."""
    first_ids = (
        db.session.query(func.min(SalesOrder.id).label("id"))
        .filter(*_order_conditions(filters))
        .group_by(SalesOrder.proposal)
        .subquery()
    )
    return (
        SalesOrder.query.join(first_ids, SalesOrder.id == first_ids.c.id)
        .order_by(SalesOrder.created_at.desc(), SalesOrder.id.desc())
    )


def _pax_totals(proposals: list[str]) -> dict[str, int]:
    if not proposals:
        return {}
    rows = (
        db.session.query(SalesOrder.proposal, func.coalesce(func.sum(SalesOrder.number_of_pax), 0))
        .filter(SalesOrder.proposal.in_(proposals))
        .group_by(SalesOrder.proposal)
        .all()
    )
    return {proposal: int(total) for proposal, total in rows}


def _latest_accesses(proposals: list[str]) -> dict[str, ClientProposalAccess]:
    if not proposals:
        return {}
    accesses = (
        ClientProposalAccess.query.filter(ClientProposalAccess.proposal.in_(proposals))
        .order_by(ClientProposalAccess.dispatched_at.desc(), ClientProposalAccess.id.desc())
        .all()
    )
    latest: dict[str, ClientProposalAccess] = {}
    for access in accesses:
        latest.setdefault(access.proposal, access)
    return latest


def _summary(order: SalesOrder, access: ClientProposalAccess | None, total_pax: int) -> dict:
    instance: FormInstance | None = access.form_instance if access else None
    return {
        "id": order.id,
        "proposal": order.proposal,
        "client_name": order.client_name,
        "client_email": order.client_email,
        "company": order.company,
        "cell_phone": order.cell_phone,
        "game": order.game,
        "hotel": order.hotel,
        "status": order.status,
        "seller": order.seller,
        "total_pax": total_pax,
        "capture_status": instance.capture_status if instance else NOT_DISPATCHED,
        "total_slots": instance.total_slots if instance else 0,
        "filled_slots": instance.filled_slots if instance else 0,
        "progress_percent": progress_percent(instance.filled_slots, instance.total_slots) if instance else 0,
        "deadline": iso(access.deadline) if access else None,
        "dispatched_at": iso(access.dispatched_at) if access else None,
    }


def _summaries(orders: list[SalesOrder]) -> list[dict]:
    proposals = [o.proposal for o in orders]
    pax = _pax_totals(proposals)
    accesses = _latest_accesses(proposals)
    return [_summary(o, accesses.get(o.proposal), pax.get(o.proposal, 0)) for o in orders]


# ═══════════════════════════════════════════════════════════════════════════
#  Public API
# ═══════════════════════════════════════════════════════════════════════════

def list_proposals(filters: dict | None = None, page: int = 1, page_size: int = 20) -> dict:
    """Paginated proposal summaries.

    Filters: game, hotel, seller (exact), search (proposal / client name /
    client email, case-insensitive substring), status (capture status,
    including NOT_DISPATCHED).
    """
    filters = filters or {}
    query = _representatives_query(filters)
    status = filters.get("status")

    if not status:
        total = query.order_by(None).count()
        orders = query.offset((page - 1) * page_size).limit(page_size).all()
        return paginated(_summaries(orders), total, page, page_size)

    rows = [row for row in _summaries(query.all()) if row["capture_status"] == status]
    start = (page - 1) * page_size
    return paginated(rows[start:start + page_size], len(rows), page, page_size)


def _get_order(order_id: int) -> SalesOrder:
    order = db.session.get(SalesOrder, order_id)
    if order is None:
        raise NotFoundError(resource="Proposal", resource_id=order_id)
    return order


def get_proposal_by_id(order_id: int) -> dict:
    """Summary for the proposal owning sales log line ``order_id``."""
    order = _get_order(order_id)
    access = _latest_accesses([order.proposal]).get(order.proposal)
    total_pax = _pax_totals([order.proposal]).get(order.proposal, 0)
    return _summary(order, access, total_pax)


def _line_for_slot(room_label: str, lines: list[SalesOrder]) -> SalesOrder:
    if room_label == TICKET_ONLY_LABEL:
        for line in lines:
            if line.number_of_rooms <= 0:
                return line
        return lines[0]
    for line in lines:
        pattern = (
            rf"{re.escape((line.room_type or '').upper())} \d+"
            rf" \| {re.escape(line.check_in or '')} \| {re.escape(line.hotel or '')}"
        )
        if re.fullmatch(pattern, room_label):
            return line
    return lines[0]


def get_proposal_matrix(order_id: int) -> list[dict]:
    """One row per passenger slot: sales log, passenger and admin columns.

    Empty when the proposal was never dispatched.
    """
    order = _get_order(order_id)
    lines = (
        SalesOrder.query.filter_by(proposal=order.proposal)
        .order_by(SalesOrder.line_number.asc())
        .all()
    )
    access = _latest_accesses([order.proposal]).get(order.proposal)
    instance = access.form_instance if access else None
    if instance is None:
        return []

    rows = []
    for slot in instance.slots:
        line = _line_for_slot(slot.room_label, lines)
        answers = (slot.response.answers or {}) if slot.response else {}
        row = {
            "proposal": line.proposal,
            "client_name": line.client_name,
            "client_email": line.client_email,
            "game": line.game,
            "hotel": line.hotel,
            "room_type": line.room_type,
            "check_in": line.check_in,
            "check_out": line.check_out,
            "ticket_category": line.ticket_category,
            "seller": line.seller,
            "status": line.status,
            "number_of_rooms": line.number_of_rooms,
            "number_of_pax": line.number_of_pax,
            "room_label": slot.room_label,
            "slot_index": slot.slot_index,
            "slot_id": slot.id,
            "slot_status": slot.status,
        }
        for key in _PASSENGER_COLUMNS + _ADMIN_COLUMNS:
            row[key] = answers.get(key)
        rows.append(row)
    return rows


def get_filter_options(filters: dict | None = None) -> dict:
    """Distinct games / hotels / sellers.

    Each dimension is narrowed by the other active filters only, so every
    option offered still returns results.
    """
    filters = filters or {}
    options = {}
    for dim in FILTER_DIMENSIONS:
        column = getattr(SalesOrder, dim)
        conditions = [
            getattr(SalesOrder, other) == filters[other]
            for other in FILTER_DIMENSIONS
            if other != dim and filters.get(other)
        ]
        rows = (
            db.session.query(column).filter(*conditions, column != "")
            .distinct().order_by(column).all()
        )
        options[f"{dim}s"] = [value for (value,) in rows if value]
    return options
