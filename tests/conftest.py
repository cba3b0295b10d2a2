"""
Shared pytest fixtures for the Team Project Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - seeded_roles: roles / permissions seeded from the default matrix
    - make_user, project, stage: row factories
"""

import pytest

from app import create_app
from app.core.domain import RoleName
from app.models import db as _db
from app.models.auth import Role, User
from app.models.project import Project, Stage
from app.services.permission_service import seed_permissions


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
        app.extensions.pop("permission_engine", None)
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def seeded_roles():
    seed_permissions()
    return {r.name: r for r in Role.query.all()}


@pytest.fixture()
def make_user(seeded_roles):
    """Factory: ``make_user("manager", email=...)`` → committed User."""
    counter = {"n": 0}

    def _make(role=RoleName.MANAGER.value, **kwargs):
        counter["n"] += 1
        role_row = seeded_roles.get(role)
        user = User(
            email=kwargs.pop("email", f"user{counter['n']}@example.com"),
            name=kwargs.pop("name", f"User {counter['n']}"),
            role_id=role_row.id if role_row else None,
            **kwargs,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def manager(make_user):
    return make_user("manager", name="Claire Martin")


@pytest.fixture()
def employee(make_user):
    return make_user("employee", name="Paul Durand")


@pytest.fixture()
def project(manager):
    proj = Project(title="Refonte du site", manager_id=manager.id, created_by_id=manager.id)
    _db.session.add(proj)
    _db.session.commit()
    return proj


@pytest.fixture()
def stage(project, manager):
    st = Stage(name="Design", project_id=project.id, position=0, created_by_id=manager.id)
    _db.session.add(st)
    _db.session.commit()
    return st
