"""
Shared pytest fixtures for the Stepwise test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - project: Pre-created Project entity (via the service layer)
    - case: Pre-created TestCase inside ``project``
"""

import pytest

from stepwise import create_app
from stepwise.models import db as _db
from stepwise.services import ordering_service


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


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project():
    """Create and return a Project."""
    return ordering_service.create_project({"name": "Checkout Flow"}, actor="tester")


@pytest.fixture()
def case(project):
    """Create and return an empty TestCase in ``project``."""
    return ordering_service.create_test_case(project.id, {"name": "Login"}, actor="tester")

