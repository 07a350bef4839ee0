"""
Tests for the sales log row reconciler.

Coverage:
    1. Header mapping (aliases, numeric coercion, line number fallback)
    2. Content hash (key order insensitive, value sensitive)
    3. Reconcile: create, skip unchanged, update changed
    4. Reconcile: proposal-less rows skipped, bad rows counted as errored
"""

from paxportal.models import db
from paxportal.models.sales_order import SalesOrder
from paxportal.services.sales_order_service import (
    SalesOrderRow,
    compute_hash,
    get_proposal_lines,
    map_row_to_sales_order,
    map_rows,
    reconcile,
)


# ── Helpers ──────────────────────────────────────────────────────────────


def _sheet_row(proposal="20250602", line="1", **extra):
    row = {
        "PROPOSAL": proposal,
        "#": line,
        "STATUS": "CONFIRMED",
        "CLIENT": "Cliente Acme",
        "EMAIL": "cliente@acmeviagens.com.br",
        "GAME": "Brazil x Morocco",
        "HOTEL": "Hotel Meridien",
        "ROOM TYPE": "Double",
        "NUMBER OF ROOMS": "2",
        "NUMBER OF PAX": "5",
        "CHECK IN": "2026-06-12",
        "CHECK OUT": "2026-06-15",
        "SELLER": "Ana",
    }
    row.update(extra)
    return row


def _mapped(*rows):
    return [map_row_to_sales_order(r, i + 1) for i, r in enumerate(rows)]


# ── Tests ────────────────────────────────────────────────────────────────


class TestRowMapping:
    """Sheet header → SalesOrderRow."""

    def test_maps_primary_headers(self):
        row = map_row_to_sales_order(_sheet_row(), 7)
        assert row.proposal == "20250602"
        assert row.line_number == 1
        assert row.status == "CONFIRMED"
        assert row.client_email == "cliente@acmeviagens.com.br"
        assert row.room_type == "Double"
        assert row.number_of_rooms == 2
        assert row.number_of_pax == 5
        assert row.check_in == "2026-06-12"
        assert row.raw_data["HOTEL"] == "Hotel Meridien"

    def test_line_number_falls_back_to_position(self):
        row = map_row_to_sales_order(_sheet_row(line=""), 7)
        assert row.line_number == 7

    def test_alternate_headers_and_case_insensitive_lookup(self):
        raw = {
            "proposal": 20250603.0,
            "Product": "Ticket",
            "Number of Tickets": 3,
            "PAX": "3",
            "Ticket Cat": "CAT 2",
        }
        row = map_row_to_sales_order(raw, 1)
        assert row.proposal == "20250603"
        assert row.room_type == "Ticket"
        assert row.number_of_rooms == 3
        assert row.number_of_pax == 3
        assert row.ticket_category == "CAT 2"

    def test_non_numeric_and_negative_counts_become_zero(self):
        row = map_row_to_sales_order(_sheet_row(**{"NUMBER OF ROOMS": "n/a", "NUMBER OF PAX": "-4"}), 1)
        assert row.number_of_rooms == 0
        assert row.number_of_pax == 0

    def test_non_finite_counts_become_zero(self):
        row = map_row_to_sales_order(_sheet_row(**{"NUMBER OF ROOMS": "inf", "NUMBER OF PAX": "1e400"}), 1)
        assert row.number_of_rooms == 0
        assert row.number_of_pax == 0

    def test_map_rows_counts_failures(self):
        rows, failed = map_rows([_sheet_row(), None, _sheet_row(line="2")])
        assert [r.line_number for r in rows] == [1, 2]
        assert failed == 1

    def test_missing_proposal_maps_to_empty(self):
        row = map_row_to_sales_order({"CLIENT": "Nobody"}, 3)
        assert row.proposal == ""


class TestComputeHash:
    """sha256 over the sorted-key serialisation."""

    def test_key_order_does_not_matter(self):
        assert compute_hash({"a": 1, "b": "x"}) == compute_hash({"b": "x", "a": 1})

    def test_value_change_changes_hash(self):
        assert compute_hash({"a": 1}) != compute_hash({"a": 2})

    def test_hex_digest_length(self):
        assert len(compute_hash({})) == 64


class TestReconcile:
    """Idempotent upsert keyed by (proposal, line_number)."""

    def test_creates_new_rows(self):
        result = reconcile(_mapped(_sheet_row(), _sheet_row(line="2", HOTEL="Hotel Faena")))
        assert result.to_dict() == {"upserted": 2, "skipped": 0, "errored": 0}
        lines = get_proposal_lines("20250602")
        assert [so.line_number for so in lines] == [1, 2]
        assert lines[1].hotel == "Hotel Faena"

    def test_second_run_over_same_rows_writes_nothing(self):
        rows = _mapped(_sheet_row())
        reconcile(rows)
        before = SalesOrder.query.one().last_synced_at

        result = reconcile(_mapped(_sheet_row()))
        assert result.upserted == 0
        assert result.skipped == 1
        assert SalesOrder.query.one().last_synced_at == before

    def test_changed_row_is_updated_in_place(self):
        reconcile(_mapped(_sheet_row()))
        original = SalesOrder.query.one()

        result = reconcile(_mapped(_sheet_row(STATUS="CANCELLED")))
        assert result.upserted == 1
        assert SalesOrder.query.count() == 1
        updated = SalesOrder.query.one()
        assert updated.id == original.id
        assert updated.status == "CANCELLED"
        assert updated.raw_hash == compute_hash(_sheet_row(STATUS="CANCELLED"))

    def test_reordered_columns_are_unchanged(self):
        row = _sheet_row()
        reconcile(_mapped(row))
        reordered = dict(reversed(list(row.items())))
        assert reconcile(_mapped(reordered)).skipped == 1

    def test_rows_without_proposal_are_skipped(self):
        result = reconcile(_mapped(_sheet_row(proposal=""), _sheet_row()))
        assert result.skipped == 1
        assert result.upserted == 1
        assert SalesOrder.query.count() == 1

    def test_bad_row_does_not_abort_batch(self):
        good = map_row_to_sales_order(_sheet_row(), 1)
        bad = SalesOrderRow(proposal="20250699", line_number=1, number_of_pax=-1,
                            raw_data={"PROPOSAL": "20250699"})
        other = map_row_to_sales_order(_sheet_row(proposal="20250700"), 1)

        result = reconcile([good, bad, other])

        assert result.upserted == 2
        assert result.errored == 1
        assert {so.proposal for so in SalesOrder.query.all()} == {"20250602", "20250700"}

    def test_empty_batch(self):
        assert reconcile([]).to_dict() == {"upserted": 0, "skipped": 0, "errored": 0}
        assert db.session.query(SalesOrder).count() == 0
