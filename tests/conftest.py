"""
Shared fixtures.

Two ways to talk to the app:
- service tests run inside `app_ctx` (one application context for the whole test)
- route tests only use `client`; their helpers open a short application context
  per call so every request gets a fresh `g`
"""

from types import SimpleNamespace

import pytest

from braincrm import create_app
from braincrm.cache import notify_changed
from braincrm.extensions import db
from braincrm.models import RolePermission
from braincrm.permissions import build_context
from braincrm.services.users import create_account

PASSWORD = "password123"


@pytest.fixture
def app():
    app = create_app("config.TestingConfig")
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════
# Service-level helpers (need app_ctx)
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def make_user(app_ctx):
    """make_user(role, email=None) -> committed User."""
    counter = {"n": 0}

    def _make(role="user", email=None, full_name=None):
        counter["n"] += 1
        email = email or f"{role}{counter['n']}@example.com"
        user = create_account(email, PASSWORD, full_name=full_name or f"{role} {counter['n']}", role=role)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def admin_user(make_user):
    return make_user("super_admin", email="root@example.com", full_name="Root Admin")


@pytest.fixture
def ctx(admin_user):
    """Acting super_admin context for service calls."""
    return build_context(admin_user)


# ═══════════════════════════════════════════════════════════════════
# Route-level helpers (no outer application context)
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def account(app):
    """account(role, email=None) -> SimpleNamespace(id, email, role)."""
    counter = {"n": 0}

    def _account(role="user", email=None):
        counter["n"] += 1
        email = email or f"{role}{counter['n']}@example.com"
        with app.app_context():
            user = create_account(email, PASSWORD, full_name=f"{role} {counter['n']}", role=role)
            db.session.commit()
            return SimpleNamespace(id=user.id, email=email, role=role)

    return _account


@pytest.fixture
def grant(app):
    """grant(role, module, *actions) stores one RolePermission row."""

    def _grant(role, module, *actions):
        with app.app_context():
            row = RolePermission(role=role, module=module)
            for action in ("view", "create", "edit", "delete"):
                setattr(row, f"can_{action}", action in actions)
            db.session.add(row)
            db.session.commit()
            notify_changed("role_permissions")

    return _grant


@pytest.fixture
def login(client):
    def _login(email, password=PASSWORD):
        return client.post("/auth/login", json={"email": email, "password": password})

    return _login


@pytest.fixture
def admin_client(client, account, login):
    admin = account("super_admin", email="root@example.com")
    response = login(admin.email)
    assert response.status_code == 200
    client.account = admin
    return client
