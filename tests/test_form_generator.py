"""
Tests for form instance generation.

Coverage:
    1. distribute_rooms: even/uneven splits, Ticket Only, zero pax
    2. generate_form_instance: slot totals equal the proposal's pax sum
    3. Room numbering across lines sharing a label
    4. Unknown proposal
"""

import pytest

from paxportal.core.exceptions import NotFoundError
from paxportal.models import db
from paxportal.models.auth import Role, User
from paxportal.models.capture import (
    CaptureStatus,
    ClientProposalAccess,
    FormInstance,
    PassengerSlot,
    SlotStatus,
)
from paxportal.services.form_generator import (
    TICKET_ONLY_LABEL,
    distribute_rooms,
    generate_form_instance,
    room_label,
)


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_access(proposal="20250602"):
    user = User(email="gen@acmeviagens.com.br", name="Gen", password_hash="x", role=Role.CLIENT)
    db.session.add(user)
    db.session.flush()
    access = ClientProposalAccess(
        user_id=user.id, proposal=proposal, access_token="tok-" + proposal,
        dispatch_mode="MANUAL_LINK",
    )
    db.session.add(access)
    db.session.flush()
    return access


def _labels(instance_id):
    slots = (
        PassengerSlot.query.filter_by(form_instance_id=instance_id)
        .order_by(PassengerSlot.id)
        .all()
    )
    return [(s.room_label, s.slot_index) for s in slots]


# ── Tests ────────────────────────────────────────────────────────────────


class TestDistributeRooms:
    def test_uneven_split_puts_extra_pax_in_first_rooms(self):
        rooms = distribute_rooms(5, 2, "double", "Hotel Meridien", "2026-06-12")
        assert [r.pax_count for r in rooms] == [3, 2]
        assert rooms[0].room_label == "DOUBLE 1 | 2026-06-12 | Hotel Meridien"
        assert rooms[1].room_label == "DOUBLE 2 | 2026-06-12 | Hotel Meridien"

    def test_even_split(self):
        assert [r.pax_count for r in distribute_rooms(6, 3, "triple", "H", "d")] == [2, 2, 2]

    def test_zero_rooms_is_ticket_only(self):
        rooms = distribute_rooms(4, 0, "", "", "")
        assert len(rooms) == 1
        assert rooms[0].room_label == TICKET_ONLY_LABEL
        assert rooms[0].pax_count == 4

    def test_more_rooms_than_pax_leaves_empty_rooms(self):
        counts = [r.pax_count for r in distribute_rooms(2, 3, "single", "H", "d")]
        assert counts == [1, 1, 0]
        assert sum(counts) == 2

    def test_zero_pax_yields_nothing(self):
        assert distribute_rooms(0, 2, "double", "H", "d") == []

    def test_first_room_number_offsets_labels(self):
        rooms = distribute_rooms(2, 1, "double", "H", "d", first_room_number=3)
        assert rooms[0].room_label == room_label("double", 3, "d", "H")


class TestGenerateFormInstance:
    def test_single_line_proposal(self, make_line):
        make_line(number_of_pax=5, number_of_rooms=2)
        access = _make_access()

        instance = db.session.get(FormInstance, generate_form_instance(access.id, "20250602"))

        assert instance.total_slots == 5
        assert instance.filled_slots == 0
        assert instance.capture_status == CaptureStatus.AWAITING_FILL
        labels = _labels(instance.id)
        assert len(labels) == 5
        assert labels[:3] == [("DOUBLE 1 | 2026-06-12 | Hotel Meridien", i) for i in range(3)]
        assert labels[3:] == [("DOUBLE 2 | 2026-06-12 | Hotel Meridien", i) for i in range(2)]
        assert {s.status for s in PassengerSlot.query.all()} == {SlotStatus.PENDING}

    def test_ticket_only_line(self, make_line):
        make_line(number_of_pax=3, number_of_rooms=0, room_type="", hotel="")
        instance = db.session.get(FormInstance, generate_form_instance(_make_access().id, "20250602"))
        assert _labels(instance.id) == [(TICKET_ONLY_LABEL, 0), (TICKET_ONLY_LABEL, 1), (TICKET_ONLY_LABEL, 2)]

    def test_slot_total_equals_pax_sum_across_lines(self, make_line):
        make_line(line_number=1, number_of_pax=4, number_of_rooms=2)
        make_line(line_number=2, number_of_pax=3, number_of_rooms=1, room_type="triple")
        make_line(line_number=3, number_of_pax=2, number_of_rooms=0)

        instance = db.session.get(FormInstance, generate_form_instance(_make_access().id, "20250602"))

        assert instance.total_slots == 9
        assert PassengerSlot.query.filter_by(form_instance_id=instance.id).count() == 9

    def test_room_numbers_continue_across_matching_lines(self, make_line):
        make_line(line_number=1, number_of_pax=2, number_of_rooms=1)
        make_line(line_number=2, number_of_pax=2, number_of_rooms=1)

        instance = db.session.get(FormInstance, generate_form_instance(_make_access().id, "20250602"))

        labels = {label for label, _ in _labels(instance.id)}
        assert labels == {
            "DOUBLE 1 | 2026-06-12 | Hotel Meridien",
            "DOUBLE 2 | 2026-06-12 | Hotel Meridien",
        }

    def test_unknown_proposal(self):
        access = _make_access("20259999")
        with pytest.raises(NotFoundError):
            generate_form_instance(access.id, "20259999")
