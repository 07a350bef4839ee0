"""
Tests for the Google Sheets gateway.

Coverage:
    1. fetch_sales_log: header → value dicts, short rows padded with None
    2. API-key mode puts the key on the query string
    3. Retry on 5xx, no retry on 4xx, SheetsFetchError on failure
    4. Configuration errors
    5. Service-account credential parsing
"""

from unittest.mock import MagicMock

import pytest

from paxportal.core.exceptions import SheetsFetchError
from paxportal.integrations.sheets_gateway import SheetsGateway


# ── Helpers ──────────────────────────────────────────────────────────────


def _response(status_code=200, payload=None, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    resp.content = b"{}" if payload is not None else b""
    resp.json.return_value = payload
    resp.text = text
    return resp


def _gateway(*responses):
    session = MagicMock()
    session.get.side_effect = list(responses)
    sleeps = []
    return SheetsGateway(session=session, sleep=sleeps.append), session, sleeps


# ── Tests ────────────────────────────────────────────────────────────────


class TestFetchSalesLog:
    def test_returns_header_keyed_rows(self):
        gw, session, _ = _gateway(_response(payload={"values": [
            ["PROPOSAL", "STATUS", "NUMBER OF PAX"],
            ["20250602", "CONFIRMED", 5],
            ["20250603"],
        ]}))

        rows = gw.fetch_sales_log()

        assert rows == [
            {"PROPOSAL": "20250602", "STATUS": "CONFIRMED", "NUMBER OF PAX": 5},
            {"PROPOSAL": "20250603", "STATUS": None, "NUMBER OF PAX": None},
        ]

    def test_api_key_sent_as_query_param(self):
        gw, session, _ = _gateway(_response(payload={"values": [["PROPOSAL"]]}))
        gw.fetch_sales_log()

        args, kwargs = session.get.call_args
        assert "test-spreadsheet" in args[0]
        assert kwargs["params"]["key"] == "test-api-key"
        assert "Authorization" not in kwargs["headers"]

    def test_header_only_sheet_yields_no_rows(self):
        gw, _, _ = _gateway(_response(payload={"values": [["PROPOSAL", "STATUS"]]}))
        assert gw.fetch_sales_log() == []

    def test_server_error_is_retried(self):
        gw, session, sleeps = _gateway(
            _response(503, text="unavailable"),
            _response(payload={"values": [["PROPOSAL"], ["20250602"]]}),
        )
        assert gw.fetch_sales_log() == [{"PROPOSAL": "20250602"}]
        assert session.get.call_count == 2
        assert sleeps == [1]

    def test_client_error_fails_without_retry(self):
        gw, session, _ = _gateway(_response(403, text="forbidden"))
        with pytest.raises(SheetsFetchError, match="HTTP 403"):
            gw.fetch_sales_log()
        assert session.get.call_count == 1

    def test_missing_spreadsheet_id(self, app):
        gw, _, _ = _gateway()
        app.config["SHEETS_SPREADSHEET_ID"] = None
        try:
            with pytest.raises(SheetsFetchError, match="SHEETS_SPREADSHEET_ID"):
                gw.fetch_sales_log()
        finally:
            app.config["SHEETS_SPREADSHEET_ID"] = "test-spreadsheet"

    def test_missing_credentials(self, app):
        gw, _, _ = _gateway()
        app.config["SHEETS_API_KEY"] = None
        try:
            with pytest.raises(SheetsFetchError, match="credentials"):
                gw.fetch_sales_log()
        finally:
            app.config["SHEETS_API_KEY"] = "test-api-key"


class TestServiceAccountParsing:
    def test_empty_value_means_no_service_account(self):
        assert SheetsGateway.load_service_account("") is None

    def test_invalid_json(self):
        with pytest.raises(SheetsFetchError, match="not valid JSON"):
            SheetsGateway.load_service_account("{not json")

    def test_missing_private_key(self):
        with pytest.raises(SheetsFetchError, match="private_key"):
            SheetsGateway.load_service_account('{"client_email": "sync@project.iam.gserviceaccount.com"}')
