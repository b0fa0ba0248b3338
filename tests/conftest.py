"""
Shared pytest fixtures for the Academy Enrollment API test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - member / other_member / admin: Pre-created accounts
    - *_identity / *_headers: Identity objects and bearer headers for them
    - program / inactive_program / enrollment: Catalog and enrollment rows

Rows are created under the system principal because the storage policies
are active in the testing configuration.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from academy import create_app
from academy.core.identity import ROLE_ADMINISTRATOR, ROLE_MEMBER, Identity
from academy.models import db as _db
from academy.models.account import Account
from academy.models.catalog import TrainingProgram
from academy.models.enrollment import Enrollment
from academy.services import payment_service
from academy.services.jwt_service import issue_token
from academy.services.security_observability import reset_security_events
from academy.storage.context import system_context
from academy.utils.crypto import hash_password

PASSWORD = "Str0ng-Passw0rd!"


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
        reset_security_events()
        yield
        reset_security_events()
        _db.session.rollback()
        _db.session.remove()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Accounts ─────────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def password_hash():
    """One bcrypt hash shared by every fixture account (hashing is slow)."""
    return hash_password(PASSWORD)


def create_account(password_hash, *, email, full_name="Test Member", role=ROLE_MEMBER):
    with system_context() as s:
        account = Account(
            email=email,
            full_name=full_name,
            password_hash=password_hash,
            role=role,
            is_admin=role == ROLE_ADMINISTRATOR,
        )
        s.add(account)
        s.flush()
    return account


def identity_for(account) -> Identity:
    return Identity(
        id=account.id, role=account.role, email=account.email, elevated=account.is_admin,
    )


def headers_for(account) -> dict:
    token = issue_token(account.id, account.role, account.email, account.is_admin)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def member(password_hash):
    return create_account(password_hash, email="member@academy.test", full_name="Asha Member")


@pytest.fixture()
def other_member(password_hash):
    return create_account(password_hash, email="other@academy.test", full_name="Ravi Other")


@pytest.fixture()
def admin(password_hash):
    return create_account(
        password_hash, email="admin@academy.test", full_name="Ada Admin", role=ROLE_ADMINISTRATOR,
    )


@pytest.fixture()
def member_identity(member):
    return identity_for(member)


@pytest.fixture()
def other_identity(other_member):
    return identity_for(other_member)


@pytest.fixture()
def admin_identity(admin):
    return identity_for(admin)


@pytest.fixture()
def member_headers(member):
    return headers_for(member)


@pytest.fixture()
def other_headers(other_member):
    return headers_for(other_member)


@pytest.fixture()
def admin_headers(admin):
    return headers_for(admin)


# ── Catalog & enrollments ────────────────────────────────────────────────


def create_program(*, title="Python Foundations", price="4999.00", is_active=True):
    with system_context() as s:
        program = TrainingProgram(
            title=title,
            description="Six weeks of practical Python",
            duration="6 weeks",
            price=Decimal(price),
            is_active=is_active,
        )
        s.add(program)
        s.flush()
    return program


def create_enrollment(user_id, program_id, status="awaiting_payment"):
    with system_context() as s:
        enrollment = Enrollment(user_id=user_id, training_program_id=program_id, status=status)
        s.add(enrollment)
        s.flush()
    return enrollment


@pytest.fixture()
def program():
    return create_program()


@pytest.fixture()
def inactive_program():
    return create_program(title="Retired Course", price="100.00", is_active=False)


@pytest.fixture()
def enrollment(member, program):
    return create_enrollment(member.id, program.id)


# ── Clock ────────────────────────────────────────────────────────────────


class FrozenClock:
    """Controllable clock for payment-window decisions."""

    def __init__(self, start):
        self.now = start

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def clock(monkeypatch):
    frozen = FrozenClock(datetime(2026, 3, 2, 10, 0, 0, tzinfo=timezone.utc))
    monkeypatch.setattr(payment_service, "_utcnow", lambda: frozen.now)
    return frozen


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def password():
    """Plain-text password of every fixture account."""
    return PASSWORD


@pytest.fixture()
def make_account(password_hash):
    def _make(email, *, full_name="Test Member", role=ROLE_MEMBER):
        return create_account(password_hash, email=email, full_name=full_name, role=role)
    return _make


@pytest.fixture()
def make_program():
    return create_program


@pytest.fixture()
def make_enrollment():
    return create_enrollment


@pytest.fixture()
def auth_headers():
    return headers_for
