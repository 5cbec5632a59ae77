"""Shared pytest fixtures: app, client, parishes, users and login helper."""

import os

import pytest

os.environ["DATABASE_URI"] = "sqlite://"  # In-memory database for tests
os.environ["APP_SECRET_KEY"] = "test-secret-key"

from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from models import Membership, Role, Tenant, User

TEST_PASSWORD = "segredo123"

TEST_OVERRIDES = {
    "TESTING": True,
    "WTF_CSRF_ENABLED": False,
    "RATELIMIT_ENABLED": False,
    "SESSION_COOKIE_SECURE": False,
}


def make_user(email, name=None, password=TEST_PASSWORD):
    """Create a user inside the current app context; returns its id."""
    user = User(
        email=email,
        name=name or email.split("@")[0].title(),
        password_hash=generate_password_hash(password),
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()
    return user.id


def make_tenant(name, slug, **fields):
    tenant = Tenant(name=name, slug=slug, status=fields.pop("status", "active"), **fields)
    db.session.add(tenant)
    db.session.flush()
    return tenant.id


def add_member(tenant_id, user_id, role=Role.MEMBER, status="active", **fields):
    membership = Membership(
        tenant_id=tenant_id, user_id=user_id, role=role, status=status, **fields
    )
    db.session.add(membership)
    db.session.flush()
    return membership.id


@pytest.fixture
def app():
    """Create application for testing."""
    application = create_app(TEST_OVERRIDES)
    yield application


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def login(client):
    """Return a helper that logs *user_id* into the test client session."""

    def _login(user_id):
        with client.session_transaction() as sess:
            sess["user_id"] = user_id
        return client

    return _login


@pytest.fixture
def parish(app):
    """A parish with one user per role, plus a second parish and an outsider.

    Returns a dict of IDs to avoid detached instance errors.
    """
    with app.app_context():
        tenant_id = make_tenant(
            "Paróquia São José", "paroquia-sao-jose",
            city="Maceió", region="AL",
            donation_key="contato@saojose.org.br", payee_name="Paroquia Sao Jose",
        )
        other_tenant_id = make_tenant("Paróquia Santa Rita", "paroquia-santa-rita")

        ids = {"tenant_id": tenant_id, "other_tenant_id": other_tenant_id}
        for key, role in (
            ("super_id", Role.SUPER_ADMIN),
            ("admin_id", Role.PARISH_ADMIN),
            ("clergy_id", Role.CLERGY),
            ("staff_id", Role.STAFF),
            ("coordinator_id", Role.COORDINATOR),
            ("operator_id", Role.POS_OPERATOR),
            ("member_id", Role.MEMBER),
        ):
            user_id = make_user(f"{role.value}@saojose.org.br")
            ids[key] = user_id
            ids[key.replace("_id", "_membership_id")] = add_member(tenant_id, user_id, role)

        ids["outsider_id"] = make_user("outsider@santarita.org.br")
        add_member(other_tenant_id, ids["outsider_id"], Role.PARISH_ADMIN)
        db.session.commit()
    return ids
