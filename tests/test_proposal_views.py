"""
Tests for the staff read views: proposal list, detail, matrix, filter
options and dashboard KPIs.

Coverage:
    1. list_proposals: one row per proposal, NOT_DISPATCHED default, pax sum
    2. Filters (game / hotel / seller / search / status) and pagination
    3. get_proposal_by_id / get_proposal_matrix
    4. get_filter_options narrowed by the other dimensions
    5. Dashboard status counts and global progress
"""

import pytest

from paxportal.core.exceptions import NotFoundError
from paxportal.models import db
from paxportal.models.capture import CaptureStatus
from paxportal.services import dashboard_service, forms_service, proposal_service
from paxportal.services.capture_service import dispatch_capture


# ── Helpers ──────────────────────────────────────────────────────────────


def _seed(make_line):
    """Three proposals; 20250602 has two lines."""
    make_line("20250602", 1, number_of_pax=5, number_of_rooms=2)
    make_line("20250602", 2, number_of_pax=2, number_of_rooms=0, room_type="", game="Brazil x Morocco")
    make_line("20250603", 1, client_name="Beta Turismo", client_email="ops@betaturismo.com",
              game="Argentina x Chile", hotel="Hotel Faena", seller="Bruno", number_of_pax=2,
              number_of_rooms=1)
    make_line("20250604", 1, client_name="Gama Eventos", client_email="gama@gamaeventos.com",
              game="Argentina x Chile", hotel="Hotel Meridien", seller="Ana", status="PENDING",
              number_of_pax=1, number_of_rooms=1)
    db.session.commit()


def _proposals(result):
    return sorted(row["proposal"] for row in result["data"])


# ── Tests ────────────────────────────────────────────────────────────────


class TestListProposals:
    def test_one_row_per_proposal(self, make_line):
        _seed(make_line)
        result = proposal_service.list_proposals()
        assert result["total"] == 3
        assert _proposals(result) == ["20250602", "20250603", "20250604"]

        row = next(r for r in result["data"] if r["proposal"] == "20250602")
        assert row["total_pax"] == 7
        assert row["capture_status"] == proposal_service.NOT_DISPATCHED
        assert row["total_slots"] == 0
        assert row["progress_percent"] == 0

    def test_dispatched_proposal_reports_capture_progress(self, make_line):
        _seed(make_line)
        result = dispatch_capture("20250602", "MANUAL_LINK", None)
        from paxportal.models.capture import ClientProposalAccess
        access = ClientProposalAccess.query.filter_by(access_token=result["access_token"]).one()
        for slot in access.form_instance.slots[:2]:
            forms_service.save_passenger_response(slot.id, {"full_name": "Pax"})

        row = next(r for r in proposal_service.list_proposals()["data"] if r["proposal"] == "20250602")
        assert row["capture_status"] == CaptureStatus.IN_PROGRESS
        assert row["total_slots"] == 7
        assert row["filled_slots"] == 2
        assert row["progress_percent"] == 29

    @pytest.mark.parametrize("filters, expected", [
        ({"game": "Argentina x Chile"}, ["20250603", "20250604"]),
        ({"hotel": "Hotel Faena"}, ["20250603"]),
        ({"seller": "Ana"}, ["20250602", "20250604"]),
        ({"search": "beta"}, ["20250603"]),
        ({"search": "2025060"}, ["20250602", "20250603", "20250604"]),
        ({"search": "GAMAEVENTOS"}, ["20250604"]),
    ])
    def test_filters(self, make_line, filters, expected):
        _seed(make_line)
        assert _proposals(proposal_service.list_proposals(filters)) == expected

    def test_status_filter(self, make_line):
        _seed(make_line)
        dispatch_capture("20250603", "MANUAL_LINK", None)

        awaiting = proposal_service.list_proposals({"status": CaptureStatus.AWAITING_FILL})
        assert _proposals(awaiting) == ["20250603"]
        not_dispatched = proposal_service.list_proposals({"status": proposal_service.NOT_DISPATCHED})
        assert _proposals(not_dispatched) == ["20250602", "20250604"]
        assert not_dispatched["total"] == 2

    def test_pagination(self, make_line):
        _seed(make_line)
        first = proposal_service.list_proposals(page=1, page_size=2)
        second = proposal_service.list_proposals(page=2, page_size=2)
        assert first["total"] == 3
        assert first["total_pages"] == 2
        assert len(first["data"]) == 2
        assert len(second["data"]) == 1
        assert set(_proposals(first)) | set(_proposals(second)) == {"20250602", "20250603", "20250604"}


class TestProposalDetail:
    def test_get_by_id(self, make_line):
        line = make_line("20250602", 1)
        make_line("20250602", 2, number_of_pax=3)
        data = proposal_service.get_proposal_by_id(line.id)
        assert data["proposal"] == "20250602"
        assert data["total_pax"] == 8

    def test_unknown_id(self):
        with pytest.raises(NotFoundError):
            proposal_service.get_proposal_by_id(424242)

    def test_matrix_empty_before_dispatch(self, make_line):
        line = make_line()
        assert proposal_service.get_proposal_matrix(line.id) == []

    def test_matrix_has_one_row_per_slot(self, make_line):
        line = make_line("20250602", 1, number_of_pax=2, number_of_rooms=1)
        make_line("20250602", 2, number_of_pax=1, number_of_rooms=0, room_type="",
                  ticket_category="CAT 3")
        result = dispatch_capture("20250602", "MANUAL_LINK", None)
        from paxportal.models.capture import ClientProposalAccess
        slots = ClientProposalAccess.query.filter_by(access_token=result["access_token"]).one().form_instance.slots
        double_slot = next(s for s in slots if s.room_label.startswith("DOUBLE"))
        forms_service.save_passenger_response(double_slot.id, {"full_name": "Maria Silva"})
        forms_service.update_admin_fields(double_slot.id, {"flight_locator": "ABC123"})

        rows = proposal_service.get_proposal_matrix(line.id)

        assert len(rows) == 3
        filled = next(r for r in rows if r["slot_id"] == double_slot.id)
        assert filled["full_name"] == "Maria Silva"
        assert filled["flight_locator"] == "ABC123"
        assert filled["room_type"] == "double"
        ticket = next(r for r in rows if r["room_label"] == "Ticket Only")
        assert ticket["ticket_category"] == "CAT 3"
        assert ticket["full_name"] is None

    def test_matrix_distinguishes_room_types_sharing_a_prefix(self, make_line):
        king = make_line("20250602", 1, number_of_pax=1, number_of_rooms=1, room_type="King",
                         check_out="2026-06-14", ticket_category="CAT 1")
        make_line("20250602", 2, number_of_pax=2, number_of_rooms=1, room_type="King Suite",
                  check_out="2026-06-16", ticket_category="CAT 2")
        dispatch_capture("20250602", "MANUAL_LINK", None)

        rows = proposal_service.get_proposal_matrix(king.id)

        by_label = {r["room_label"]: r for r in rows}
        suite = by_label["KING SUITE 1 | 2026-06-12 | Hotel Meridien"]
        assert suite["room_type"] == "King Suite"
        assert suite["check_out"] == "2026-06-16"
        assert suite["ticket_category"] == "CAT 2"
        assert by_label["KING 1 | 2026-06-12 | Hotel Meridien"]["room_type"] == "King"

    def test_matrix_keeps_falsy_answers(self, make_line):
        line = make_line(number_of_pax=1, number_of_rooms=1)
        dispatch_capture("20250602", "MANUAL_LINK", None)
        from paxportal.models.capture import PassengerSlot
        slot = PassengerSlot.query.one()
        forms_service.update_admin_fields(slot.id, {"insurance_number": 0, "ticket_status": ""})

        row = proposal_service.get_proposal_matrix(line.id)[0]

        assert row["insurance_number"] == 0
        assert row["ticket_status"] == ""
        assert row["full_name"] is None


class TestFilterOptions:
    def test_all_options(self, make_line):
        _seed(make_line)
        options = proposal_service.get_filter_options()
        assert options["games"] == ["Argentina x Chile", "Brazil x Morocco"]
        assert options["hotels"] == ["Hotel Faena", "Hotel Meridien"]
        assert options["sellers"] == ["Ana", "Bruno"]

    def test_options_narrowed_by_other_filters(self, make_line):
        _seed(make_line)
        options = proposal_service.get_filter_options({"game": "Argentina x Chile"})
        assert options["hotels"] == ["Hotel Faena", "Hotel Meridien"]
        assert options["sellers"] == ["Ana", "Bruno"]
        # A dimension is not narrowed by its own filter
        assert options["games"] == ["Argentina x Chile", "Brazil x Morocco"]

        options = proposal_service.get_filter_options({"hotel": "Hotel Faena"})
        assert options["games"] == ["Argentina x Chile"]
        assert options["sellers"] == ["Bruno"]


class TestDashboardStats:
    def test_empty(self):
        stats = dashboard_service.get_stats()
        assert stats == {
            "total_dispatched": 0,
            "not_started": 0,
            "in_progress": 0,
            "completed": 0,
            "expired": 0,
            "total_slots": 0,
            "filled_slots": 0,
            "global_progress": 0,
        }

    def test_counts_and_global_progress(self, make_line):
        _seed(make_line)
        make_line("20250605", 1, number_of_pax=1, number_of_rooms=1)
        for proposal in ("20250602", "20250603", "20250605"):
            dispatch_capture(proposal, "MANUAL_LINK", None)

        from paxportal.models.capture import FormInstance
        by_proposal = {fi.proposal: fi for fi in FormInstance.query.all()}
        for slot in by_proposal["20250603"].slots:
            forms_service.save_passenger_response(slot.id, {"full_name": "Pax"})
        forms_service.save_passenger_response(by_proposal["20250602"].slots[0].id, {"full_name": "Pax"})

        stats = dashboard_service.get_stats()
        assert stats["total_dispatched"] == 3
        assert stats["not_started"] == 1
        assert stats["in_progress"] == 1
        assert stats["completed"] == 1
        assert stats["total_slots"] == 10
        assert stats["filled_slots"] == 3
        assert stats["global_progress"] == 30
