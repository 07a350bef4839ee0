"""
Form instance generation — sales log lines → FormInstance + PassengerSlots.

Each line's passengers are spread over its rooms independently:

    rooms <= 0        → one virtual "Ticket Only" room holding every passenger
    otherwise         → floor(pax / rooms) per room, the first pax % rooms
                        rooms take one extra passenger

Room numbers continue across lines that share room type, check-in and
hotel, and slot indexes continue inside a shared label, so
(room_label, slot_index) stays unique per instance.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass

from sqlalchemy import insert

from paxportal.core.exceptions import NotFoundError
from paxportal.models import db
from paxportal.models.capture import CaptureStatus, FormInstance, PassengerSlot, SlotStatus
from paxportal.services.sales_order_service import get_proposal_lines

logger = logging.getLogger(__name__)

TICKET_ONLY_LABEL = "Ticket Only"


@dataclass(frozen=True)
class RoomAllocation:
    room_label: str
    pax_count: int


def room_label(room_type: str, number: int, check_in: str, hotel: str) -> str:
    return f"{(room_type or '').upper()} {number} | {check_in} | {hotel}"


def distribute_rooms(
    number_of_pax: int,
    number_of_rooms: int,
    room_type: str,
    hotel: str,
    check_in: str,
    first_room_number: int = 1,
) -> list[RoomAllocation]:
    """Allocate one line's passengers to rooms.

    >>> [r.pax_count for r in distribute_rooms(5, 2, "double", "Hotel", "2026-06-11")]
    [3, 2]
    """
    if number_of_pax <= 0:
        return []
    if number_of_rooms <= 0:
        return [RoomAllocation(TICKET_ONLY_LABEL, number_of_pax)]

    per_room, remainder = divmod(number_of_pax, number_of_rooms)
    return [
        RoomAllocation(
            room_label(room_type, first_room_number + i, check_in, hotel),
            per_room + (1 if i < remainder else 0),
        )
        for i in range(number_of_rooms)
    ]


def generate_form_instance(access_id: int, proposal: str) -> int:
    """Create the FormInstance and all PENDING slots for an access; return its id.

    Flushes but does not commit; the dispatch flow owns the transaction.
    Callers must check that the access has no instance yet.

    Raises:
        NotFoundError: the proposal has no sales log lines.
    """
    lines = get_proposal_lines(proposal)
    if not lines:
        raise NotFoundError(resource="Proposal", resource_id=proposal)

    rooms: list[RoomAllocation] = []
    next_room_number: dict[tuple, int] = defaultdict(lambda: 1)
    total_slots = 0
    for line in lines:
        key = ((line.room_type or "").upper(), line.check_in, line.hotel)
        allocated = distribute_rooms(
            line.number_of_pax, line.number_of_rooms,
            line.room_type, line.hotel, line.check_in,
            first_room_number=next_room_number[key],
        )
        if line.number_of_pax > 0 and line.number_of_rooms > 0:
            next_room_number[key] += line.number_of_rooms
        rooms.extend(allocated)
        total_slots += line.number_of_pax

    instance = FormInstance(
        proposal=proposal,
        access_id=access_id,
        total_slots=total_slots,
        filled_slots=0,
        capture_status=CaptureStatus.AWAITING_FILL,
    )
    db.session.add(instance)
    db.session.flush()

    next_index: dict[str, int] = defaultdict(int)
    slots = []
    for room in rooms:
        for _ in range(room.pax_count):
            slots.append({
                "form_instance_id": instance.id,
                "room_label": room.room_label,
                "slot_index": next_index[room.room_label],
                "status": SlotStatus.PENDING,
            })
            next_index[room.room_label] += 1
    if slots:
        db.session.execute(insert(PassengerSlot), slots)

    logger.info(
        "Form instance created for proposal %s: %d slots in %d rooms",
        proposal, total_slots, len(rooms),
        extra={"proposal": proposal, "form_instance_id": instance.id},
    )
    return instance.id
