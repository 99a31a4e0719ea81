"""
Shared pytest fixtures for the Thesis Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - month: Pre-created Month 1
    - add_week: Factory for a week with one activity and one task
"""

import pytest

from thesis_tracker import create_app
from thesis_tracker.models import db as _db
from thesis_tracker.services.entity_service import create_entity


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


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
def month():
    """Create and return Month 1."""
    return create_entity("months", {"number": 1, "name": "Foundations"})


@pytest.fixture()
def add_week(month):
    """Factory: create a week holding one activity with one task.

    Returns a dict with the created ``week``, ``activity`` and ``task``.
    """

    def _add(number, *, critical=False, completed=False, task_critical=False, month_id=None):
        week = create_entity("weeks", {
            "month_id": month_id or month["id"],
            "number": number,
            "title": f"Week {number}",
        })
        activity = create_entity("activities", {
            "week_id": week["id"],
            "description": f"Experiments W{number}",
            "category": "Code",
            "is_critical": critical,
        })
        task = create_entity("tasks", {
            "activity_id": activity["id"],
            "description": f"Run batch W{number}",
            "completed": completed,
            "is_critical": task_critical,
        })
        return {"week": week, "activity": activity, "task": task}

    return _add
