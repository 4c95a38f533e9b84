"""
Shared pytest fixtures for the Commissioning Report Editor test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin_user / editor_user / viewer_user: accounts with a role
    - admin_headers / editor_headers / viewer_headers / shared_headers:
      Authorization headers for a live capability session
    - seeded_template: default template seeded into the store
    - timers: manual timer factory for the debounced writer
"""

import pytest

from commissioning import create_app
from commissioning.models import db as _db

PASSWORD = "secret123"


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
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users & sessions ─────────────────────────────────────────────────────


def make_user(email, role=None, password=PASSWORD):
    """Create a user, optionally with a role. Commits."""
    from commissioning.services import auth_service

    if role is None:
        return auth_service.sign_up(email, password)
    return auth_service.create_user_with_role(email, password, role)


def sign_in_headers(client, email, password=PASSWORD):
    res = client.post("/api/v1/auth/sign-in", json={"email": email, "password": password})
    assert res.status_code == 200, res.get_json()
    return {"Authorization": f"Bearer {res.get_json()['token']}"}


@pytest.fixture()
def admin_user():
    return make_user("admin@example.com", "admin")


@pytest.fixture()
def editor_user():
    return make_user("editor@example.com", "editor")


@pytest.fixture()
def viewer_user():
    return make_user("viewer@example.com", "viewer")


@pytest.fixture()
def admin_headers(client, admin_user):
    return sign_in_headers(client, admin_user.email)


@pytest.fixture()
def editor_headers(client, editor_user):
    return sign_in_headers(client, editor_user.email)


@pytest.fixture()
def viewer_headers(client, viewer_user):
    return sign_in_headers(client, viewer_user.email)


@pytest.fixture()
def shared_headers(client, app):
    """Session opened with the shared edit password."""
    res = client.post("/api/v1/auth/unlock", json={"password": app.config["EDIT_PASSWORD"]})
    assert res.status_code == 200, res.get_json()
    return {"Authorization": f"Bearer {res.get_json()['token']}"}


@pytest.fixture()
def seeded_template():
    from commissioning.services import template_service

    template_service.seed_default_template()
    return template_service.load_template()


# ── Editor helpers ───────────────────────────────────────────────────────


class ManualTimer:
    def __init__(self, seconds, callback):
        self.seconds = seconds
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        """Run the callback as the timer thread would (even if cancelled)."""
        self.callback()


class ManualTimers:
    """Timer factory that records timers instead of starting threads."""

    def __init__(self):
        self.created: list[ManualTimer] = []

    def __call__(self, seconds, callback):
        timer = ManualTimer(seconds, callback)
        self.created.append(timer)
        return timer

    @property
    def armed(self) -> list[ManualTimer]:
        return [t for t in self.created if t.started and not t.cancelled]

    def fire_armed(self) -> int:
        armed = self.armed
        for timer in armed:
            timer.fire()
        return len(armed)


@pytest.fixture()
def timers():
    return ManualTimers()
