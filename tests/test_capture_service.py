"""
Tests for capture dispatch.

Coverage:
    1. Precondition failures (mode, unknown proposal, NOT_CONFIRMED, NO_EMAIL,
       INVALID_EMAIL) leave no trace
    2. First dispatch creates client, access and form instance
    3. Re-dispatch reuses the access and keeps answers
    4. EMAIL mode: sent, not configured, send failure after commit
    5. Deadline handling and expired-form reopening
    6. End-to-end: dispatch → fill every slot → COMPLETED
"""

import smtplib
from datetime import timedelta
from unittest.mock import patch

import pytest

from paxportal.core.exceptions import (
    EmailNotConfiguredError,
    EmailSendError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from paxportal.models import db
from paxportal.models.audit import AuditAction, AuditLog
from paxportal.models.auth import Role, User
from paxportal.models.capture import (
    CaptureStatus,
    ClientProposalAccess,
    FormInstance,
    PassengerSlot,
)
from paxportal.services import forms_service
from paxportal.services.capture_service import dispatch_capture
from paxportal.utils.helpers import as_utc, utcnow


# ── Helpers ──────────────────────────────────────────────────────────────


def _assert_nothing_created():
    assert User.query.filter_by(role=Role.CLIENT).count() == 0
    assert ClientProposalAccess.query.count() == 0
    assert FormInstance.query.count() == 0
    assert PassengerSlot.query.count() == 0


# ── Tests ────────────────────────────────────────────────────────────────


class TestPreconditions:
    def test_unknown_mode(self, make_line):
        make_line()
        with pytest.raises(ValidationError):
            dispatch_capture("20250602", "FAX", None)
        _assert_nothing_created()

    def test_unknown_proposal(self):
        with pytest.raises(NotFoundError):
            dispatch_capture("20259999", "MANUAL_LINK", None)

    def test_not_confirmed(self, make_line):
        make_line(status="PENDING")
        with pytest.raises(PreconditionFailedError) as exc_info:
            dispatch_capture("20250602", "EMAIL", None)
        assert exc_info.value.code == "NOT_CONFIRMED"
        _assert_nothing_created()

    def test_confirmed_is_case_insensitive(self, make_line):
        make_line(status=" confirmed ")
        assert dispatch_capture("20250602", "MANUAL_LINK", None)["access_token"]

    def test_missing_email(self, make_line):
        make_line(client_email="")
        with pytest.raises(PreconditionFailedError) as exc_info:
            dispatch_capture("20250602", "MANUAL_LINK", None)
        assert exc_info.value.code == "NO_EMAIL"
        _assert_nothing_created()

    def test_invalid_email(self, make_line):
        make_line(client_email="not-an-email")
        with pytest.raises(PreconditionFailedError) as exc_info:
            dispatch_capture("20250602", "MANUAL_LINK", None)
        assert exc_info.value.code == "INVALID_EMAIL"
        _assert_nothing_created()

    def test_bad_deadline(self, make_line):
        make_line()
        with pytest.raises(ValidationError):
            dispatch_capture("20250602", "MANUAL_LINK", None, deadline="next tuesday")
        _assert_nothing_created()


class TestManualLinkDispatch:
    def test_first_dispatch_creates_everything(self, make_line, admin_user):
        make_line()
        result = dispatch_capture("20250602", "MANUAL_LINK", admin_user.id)

        assert result["client_link"] == "http://portal.test/client"
        assert result["client_email"] == "cliente@acmeviagens.com.br"
        assert result["email_sent"] is False
        assert result["temp_password"]

        client = User.query.filter_by(email="cliente@acmeviagens.com.br").one()
        assert client.role == Role.CLIENT
        assert client.must_change_password is True

        access = ClientProposalAccess.query.one()
        assert access.access_token == result["access_token"]
        assert access.dispatched_by == admin_user.id
        assert access.form_instance.total_slots == 5
        assert AuditLog.query.filter_by(action=AuditAction.CAPTURE_LINK_GENERATED).count() == 1

    def test_existing_client_gets_no_temp_password(self, make_line, client_user):
        make_line()
        result = dispatch_capture("20250602", "MANUAL_LINK", None)
        assert "temp_password" not in result
        assert ClientProposalAccess.query.one().user_id == client_user.id

    def test_redispatch_reuses_access_and_keeps_answers(self, dispatched):
        slot = dispatched["slots"][0]
        forms_service.save_passenger_response(slot.id, {"full_name": "Maria Silva"})

        again = dispatch_capture("20250602", "MANUAL_LINK", None)

        assert again["access_token"] == dispatched["access"].access_token
        assert ClientProposalAccess.query.count() == 1
        assert FormInstance.query.count() == 1
        assert PassengerSlot.query.count() == 5
        assert dispatched["instance"].filled_slots == 1
        assert slot.response.answers["full_name"] == "Maria Silva"

    def test_redispatch_without_deadline_keeps_previous(self, make_line):
        make_line()
        dispatch_capture("20250602", "MANUAL_LINK", None, deadline="2026-06-01")
        dispatch_capture("20250602", "MANUAL_LINK", None)
        deadline = as_utc(ClientProposalAccess.query.one().deadline)
        assert (deadline.year, deadline.month, deadline.day) == (2026, 6, 1)

    def test_date_deadline_is_end_of_day(self, make_line):
        make_line()
        dispatch_capture("20250602", "MANUAL_LINK", None, deadline="2026-06-01")
        deadline = as_utc(ClientProposalAccess.query.one().deadline)
        assert (deadline.hour, deadline.minute) == (23, 59)

    def test_redispatch_with_future_deadline_reopens_expired_form(self, dispatched):
        instance = dispatched["instance"]
        instance.capture_status = CaptureStatus.EXPIRED
        db.session.commit()

        future = (utcnow() + timedelta(days=10)).isoformat()
        dispatch_capture("20250602", "MANUAL_LINK", None, deadline=future)

        assert instance.capture_status == CaptureStatus.AWAITING_FILL


class TestEmailDispatch:
    def test_email_mode_sends_template(self, make_line):
        make_line()
        with patch("paxportal.services.capture_service.EmailService.send_from_template") as send:
            result = dispatch_capture("20250602", "EMAIL", None, deadline="2026-06-01")

        assert result["email_sent"] is True
        kwargs = send.call_args.kwargs
        assert kwargs["to_email"] == "cliente@acmeviagens.com.br"
        assert kwargs["template_name"] == "capture_invite"
        assert kwargs["context"]["proposal"] == "20250602"
        assert result["temp_password"] in kwargs["context"]["password_block"]
        assert "01/06/2026" in kwargs["context"]["deadline_block"]
        assert AuditLog.query.filter_by(action=AuditAction.CAPTURE_DISPATCHED).count() == 1

    def test_suppressed_send_succeeds(self, make_line):
        make_line()
        result = dispatch_capture("20250602", "EMAIL", None)
        assert result["email_sent"] is True

    def test_send_failure_keeps_committed_state(self, app, make_line):
        make_line()
        app.config["MAIL_SUPPRESS_SEND"] = False
        try:
            with patch("paxportal.services.email_service.EmailService._send_smtp",
                       side_effect=smtplib.SMTPException("relay denied")):
                with pytest.raises(EmailSendError):
                    dispatch_capture("20250602", "EMAIL", None)
        finally:
            app.config["MAIL_SUPPRESS_SEND"] = True

        db.session.rollback()
        assert ClientProposalAccess.query.count() == 1
        assert FormInstance.query.one().total_slots == 5

        # Re-dispatch is the recovery path
        assert dispatch_capture("20250602", "EMAIL", None)["email_sent"] is True
        assert ClientProposalAccess.query.count() == 1

    def test_email_not_configured(self, app, make_line):
        make_line()
        app.config["MAIL_SERVER"] = None
        try:
            with pytest.raises(EmailNotConfiguredError):
                dispatch_capture("20250602", "EMAIL", None)
        finally:
            app.config["MAIL_SERVER"] = "smtp.test.local"


class TestEndToEnd:
    def test_dispatch_then_fill_every_slot(self, make_line, admin_user):
        make_line(number_of_pax=5, number_of_rooms=2)
        result = dispatch_capture("20250602", "MANUAL_LINK", admin_user.id)

        access = ClientProposalAccess.query.filter_by(access_token=result["access_token"]).one()
        instance = access.form_instance
        assert [s.room_label for s in instance.slots].count("DOUBLE 1 | 2026-06-12 | Hotel Meridien") == 3

        statuses = []
        for slot in instance.slots:
            statuses.append(
                forms_service.save_passenger_response(slot.id, {"full_name": f"Pax {slot.id}"})["capture_status"]
            )

        assert statuses == [CaptureStatus.IN_PROGRESS] * 4 + [CaptureStatus.COMPLETED]
        assert instance.filled_slots == 5
        assert instance.progress == 100
