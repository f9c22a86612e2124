"""
Shared pytest fixtures for the Worktrack Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - freeze: pin ``clock.now()`` to a fixed local datetime
    - manager / group_head / team_lead / developer / other_developer: users
    - project: a project the ``developer`` is a member of
    - auth: Authorization header factory for a user
    - make_user / make_project / make_task: factories for extra rows
"""

from datetime import datetime

import pytest

from app import create_app
from app.models import db as _db
from app.models.auth import Project, ProjectMember, User, UserRole
from app.models.task import Task
from app.services import viewing_tracker
from app.services.jwt_service import generate_access_token
from app.utils import clock

# Thursday afternoon; most tests run "today" relative to this
DEFAULT_NOW = datetime(2024, 5, 2, 16, 0, 0)


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
        viewing_tracker.reset_backend()
        yield
        viewing_tracker.reset_backend()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Clock ────────────────────────────────────────────────────────────────


class FrozenClock:
    """Mutable stand-in for ``clock.now``."""

    def __init__(self, now):
        self.current = now

    def __call__(self):
        return self.current

    def set(self, value):
        self.current = value
        return value

    def advance(self, delta):
        self.current = self.current + delta
        return self.current


@pytest.fixture()
def freeze(monkeypatch):
    """Freeze ``clock.now()`` at DEFAULT_NOW; ``freeze.set`` / ``freeze.advance`` move it."""
    frozen = FrozenClock(DEFAULT_NOW)
    monkeypatch.setattr(clock, "now", frozen)
    return frozen


# ── Factories ────────────────────────────────────────────────────────────


def create_user(name, role=UserRole.DEVELOPER, email=None):
    user = User(
        name=name,
        email=email or f"{name.lower().replace(' ', '.')}@example.com",
        role=getattr(role, "value", role),
    )
    _db.session.add(user)
    _db.session.commit()
    return user


def create_project(name="Apollo", members=()):
    project = Project(name=name)
    _db.session.add(project)
    _db.session.flush()
    for user in members:
        _db.session.add(ProjectMember(project_id=project.id, user_id=user.id))
    _db.session.commit()
    return project


def create_task(project, title="Task", assignee=None, status="TODO"):
    task = Task(
        project_id=project.id,
        assignee_id=assignee.id if assignee else None,
        title=title,
        status=status,
    )
    _db.session.add(task)
    _db.session.commit()
    return task


@pytest.fixture()
def manager():
    return create_user("Maya Manager", UserRole.MANAGER)


@pytest.fixture()
def group_head():
    return create_user("Gil Head", UserRole.GROUP_HEAD)


@pytest.fixture()
def team_lead():
    return create_user("Tara Lead", UserRole.TEAM_LEAD)


@pytest.fixture()
def developer():
    return create_user("Dev One", UserRole.DEVELOPER)


@pytest.fixture()
def other_developer():
    return create_user("Dev Two", UserRole.DEVELOPER)


@pytest.fixture()
def project(developer):
    return create_project("Apollo", members=[developer])


@pytest.fixture()
def auth():
    """Return a function building an Authorization header for a user."""
    def _header(user):
        return {"Authorization": f"Bearer {generate_access_token(user.id, user.role)}"}
    return _header


@pytest.fixture()
def make_user():
    return create_user


@pytest.fixture()
def make_project():
    return create_project


@pytest.fixture()
def make_task():
    return create_task
