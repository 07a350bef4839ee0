"""
Shared pytest fixtures for the passenger capture portal test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - master_user / admin_user / client_user: pre-created users per role
    - auth_headers: Bearer headers for a user
    - make_line: SalesOrder factory (flushes, never commits)
    - dispatched: a confirmed proposal dispatched through the capture flow
"""

import pytest

from paxportal import create_app
from paxportal.models import db as _db
from paxportal.services.sheets_sync import sync_lock


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        sync_lock.release()
        yield
        sync_lock.release()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users & auth ─────────────────────────────────────────────────────────


def _make_user(email, name, role):
    from paxportal.models.auth import User
    from paxportal.utils.crypto import hash_password

    user = User(email=email, name=name, password_hash=hash_password("Secret123!"), role=role)
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def master_user():
    from paxportal.models.auth import Role
    return _make_user("master@absolutsport.com.br", "Master User", Role.MASTER)


@pytest.fixture()
def admin_user():
    from paxportal.models.auth import Role
    return _make_user("admin@absolutsport.com.br", "Admin User", Role.ADMIN)


@pytest.fixture()
def client_user():
    from paxportal.models.auth import Role
    return _make_user("cliente@acmeviagens.com.br", "Cliente Acme", Role.CLIENT)


@pytest.fixture()
def auth_headers():
    """Return a callable: auth_headers(user) → Authorization header dict."""
    from paxportal.services.jwt_service import generate_access_token

    def _headers(user):
        token = generate_access_token(user.id, user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ── Sales log & capture ──────────────────────────────────────────────────


@pytest.fixture()
def make_line():
    """Return a callable creating one SalesOrder line (flushed)."""
    from paxportal.models.sales_order import SalesOrder
    from paxportal.services.sales_order_service import compute_hash

    def _make(proposal="20250602", line_number=1, **overrides):
        values = {
            "status": "CONFIRMED",
            "client_name": "Cliente Acme",
            "client_email": "cliente@acmeviagens.com.br",
            "company": "Acme Viagens",
            "game": "Brazil x Morocco",
            "hotel": "Hotel Meridien",
            "room_type": "double",
            "number_of_rooms": 2,
            "number_of_pax": 5,
            "check_in": "2026-06-12",
            "check_out": "2026-06-15",
            "ticket_category": "CAT 1",
            "seller": "Ana",
        }
        values.update(overrides)
        raw = {"PROPOSAL": proposal, "#": line_number, **values}
        so = SalesOrder(
            proposal=proposal,
            line_number=line_number,
            raw_data=raw,
            raw_hash=compute_hash(raw),
            **values,
        )
        _db.session.add(so)
        _db.session.flush()
        return so

    return _make


@pytest.fixture()
def dispatched(make_line, admin_user):
    """Proposal 20250602 (5 pax in 2 doubles) dispatched via MANUAL_LINK.

    Returns a dict with the access, form instance, slots and client user.
    """
    from paxportal.models.auth import User
    from paxportal.models.capture import ClientProposalAccess
    from paxportal.services.capture_service import dispatch_capture

    make_line()
    result = dispatch_capture("20250602", "MANUAL_LINK", admin_user.id)
    access = ClientProposalAccess.query.filter_by(access_token=result["access_token"]).one()
    instance = access.form_instance
    return {
        "result": result,
        "access": access,
        "instance": instance,
        "slots": list(instance.slots),
        "client": _db.session.get(User, access.user_id),
    }
