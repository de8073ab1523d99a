"""
Shared pytest fixtures for the Tension Hub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - store: RecordStore bound to the test session
    - make_chart / make_action / make_child / make_dependency / make_profile:
      row factories that commit immediately
"""

from datetime import datetime, timezone

import pytest

from tension_hub import create_app
from tension_hub.models import db as _db
from tension_hub.models.chart import Action, ActionDependency, Chart
from tension_hub.models.profile import Profile
from tension_hub.services.record_store import RecordStore

# Fixed clock for analytics tests.
NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)

WORKSPACE = "ws-test"


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


@pytest.fixture()
def store():
    return RecordStore()


# ── Row factories ────────────────────────────────────────────────────────


@pytest.fixture()
def make_chart():
    def _make(title="Chart", workspace_id=WORKSPACE, **kw):
        chart = Chart(title=title, workspace_id=workspace_id, **kw)
        _db.session.add(chart)
        _db.session.commit()
        return chart
    return _make


@pytest.fixture()
def make_action():
    def _make(chart, title="Action", **kw):
        action = Action(chart_id=chart.id, title=title, **kw)
        _db.session.add(action)
        _db.session.commit()
        return action
    return _make


@pytest.fixture()
def make_child(make_chart, make_action):
    """Telescope: new action in ``parent`` linked to a new child chart.

    Returns (action, child_chart).
    """
    def _make(parent, title="Child", **chart_kw):
        action = make_action(parent, title=f"{title} action")
        child = make_chart(
            title=title, workspace_id=parent.workspace_id,
            parent_action_id=action.id, **chart_kw,
        )
        action.child_chart_id = child.id
        action.has_sub_chart = True
        _db.session.commit()
        return action, child
    return _make


@pytest.fixture()
def make_dependency():
    def _make(blocker, blocked):
        dep = ActionDependency(blocker_action_id=blocker.id, blocked_action_id=blocked.id)
        _db.session.add(dep)
        _db.session.commit()
        return dep
    return _make


@pytest.fixture()
def make_profile():
    def _make(email, name=None):
        profile = Profile(email=email, name=name)
        _db.session.add(profile)
        _db.session.commit()
        return profile
    return _make
