"""
Tests for client management.

Coverage:
    1. list_clients: only CLIENT users, aggregate progress, search
    2. get_client_by_id: per-proposal rows and totals
    3. deactivate / reset password
    4. delete_client: full cascade, audit rows detached, sales log untouched
"""

import pytest

from paxportal.core.exceptions import NotFoundError
from paxportal.models import db
from paxportal.models.audit import AuditAction, AuditLog, record_audit
from paxportal.models.auth import User
from paxportal.models.capture import (
    ClientProposalAccess,
    FormInstance,
    FormResponse,
    PassengerSlot,
)
from paxportal.models.sales_order import SalesOrder
from paxportal.services import client_service, forms_service
from paxportal.utils.crypto import verify_password


# ── Tests ────────────────────────────────────────────────────────────────


class TestListClients:
    def test_lists_only_clients_with_progress(self, dispatched, master_user):
        forms_service.save_passenger_response(dispatched["slots"][0].id, {"full_name": "Maria"})

        result = client_service.list_clients()

        assert result["total"] == 1
        row = result["data"][0]
        assert row["email"] == "cliente@acmeviagens.com.br"
        assert row["total_proposals"] == 1
        assert row["total_slots"] == 5
        assert row["filled_slots"] == 1
        assert row["progress_percent"] == 20
        assert row["last_access_at"] is not None

    def test_search_by_name_or_email(self, dispatched):
        assert client_service.list_clients(search="acme")["total"] == 1
        assert client_service.list_clients(search="nobody")["total"] == 0


class TestGetClient:
    def test_detail_with_stats(self, dispatched, make_line):
        make_line("20250610", 1, number_of_pax=1, number_of_rooms=1)
        from paxportal.services.capture_service import dispatch_capture
        dispatch_capture("20250610", "MANUAL_LINK", None)
        other = FormInstance.query.filter_by(proposal="20250610").one()
        forms_service.save_passenger_response(other.slots[0].id, {"full_name": "Solo"})

        data = client_service.get_client_by_id(dispatched["client"].id)

        assert data["email"] == "cliente@acmeviagens.com.br"
        assert {p["proposal"] for p in data["proposals"]} == {"20250602", "20250610"}
        assert data["stats"]["total_proposals"] == 2
        assert data["stats"]["total_slots"] == 6
        assert data["stats"]["filled_slots"] == 1
        assert data["stats"]["completed_proposals"] == 1
        assert data["stats"]["pending_proposals"] == 1
        assert data["stats"]["progress_percent"] == 17

    def test_staff_user_is_not_a_client(self, admin_user):
        with pytest.raises(NotFoundError):
            client_service.get_client_by_id(admin_user.id)


class TestClientAccountActions:
    def test_deactivate(self, client_user):
        client_service.deactivate_client(client_user.id)
        assert client_user.is_active is False
        assert AuditLog.query.filter_by(action=AuditAction.CLIENT_DEACTIVATED).count() == 1

    def test_reset_password(self, client_user):
        temp = client_service.reset_client_password(client_user.id)
        assert verify_password(temp, client_user.password_hash)
        assert client_user.must_change_password is True


class TestDeleteClient:
    def test_cascade_removes_everything_owned(self, dispatched):
        client_id = dispatched["client"].id
        forms_service.save_passenger_response(
            dispatched["slots"][0].id, {"full_name": "Maria"}, submitted_by=client_id,
        )
        record_audit(AuditAction.FORM_SAVED, entity="PassengerSlot", user_id=client_id)

        client_service.delete_client(client_id)
        db.session.expire_all()

        assert db.session.get(User, client_id) is None
        assert ClientProposalAccess.query.count() == 0
        assert FormInstance.query.count() == 0
        assert PassengerSlot.query.count() == 0
        assert FormResponse.query.count() == 0
        assert AuditLog.query.filter_by(user_id=client_id).count() == 0
        assert AuditLog.query.filter_by(action=AuditAction.FORM_SAVED).count() >= 1
        assert SalesOrder.query.filter_by(proposal="20250602").count() == 1

        deleted = AuditLog.query.filter_by(action=AuditAction.CLIENT_DELETED).one()
        assert deleted.payload["slots"] == 5

    def test_client_without_accesses(self, client_user):
        client_id = client_user.id
        client_service.delete_client(client_id)
        assert db.session.get(User, client_id) is None

    def test_unknown_client(self):
        with pytest.raises(NotFoundError):
            client_service.delete_client(987654)
