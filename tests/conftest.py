"""
Shared fixtures for the studio test suite.

Every test runs against a fresh in-memory SQLite database. The
environment is configured before `studio` is imported because settings
are read once and cached.
"""
import json
import os
from datetime import datetime, timedelta

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["SESSION_SECRET"] = "test-session-secret-with-at-least-32-chars"
os.environ["CREDENTIALS_ENCRYPTION_KEY"] = "test-encryption-passphrase"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["ALLOWED_EMAIL_DOMAIN"] = "jkkn.ac.in"
os.environ["ENABLE_AUDIT_LOGGING"] = "false"
os.environ["RATE_LIMIT_PER_MINUTE"] = "30"

import pytest
from fastapi.testclient import TestClient

from studio.api.main import app
from studio.core.rate_limiter import get_rate_limiter
from studio.core.security import create_session_token, hash_password
from studio.database.connection import get_database, reset_database
from studio.database.init_db import init_tables
from studio.database.models import Event, EventAdmin, Institution, User


@pytest.fixture(autouse=True)
def fresh_database():
    """A new in-memory database and an empty rate limiter per test."""
    reset_database()
    init_tables()
    get_rate_limiter().reset()
    yield
    reset_database()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def load():
    """Read a row back as a dict (None when missing) for asserting state."""

    def reader(model, row_id):
        with get_database().get_session() as session:
            row = session.get(model, row_id)
            return row.to_dict() if row else None

    return reader


@pytest.fixture
def count():
    def counter(model, **filters):
        with get_database().get_session() as session:
            return session.query(model).filter_by(**filters).count()

    return counter


def _make_user(email, role="learner", name=None, institution_id=None, password=None):
    with get_database().get_session() as session:
        user = User(
            email=email,
            name=name or email.split("@")[0].title(),
            role=role,
            institution_id=institution_id,
            password_hash=hash_password(password) if password else None,
        )
        session.add(user)
        session.flush()
        return user.id


def auth_headers(user_id, email):
    return {"Authorization": f"Bearer {create_session_token(user_id, email)}"}


@pytest.fixture
def make_user():
    """Factory returning (user_id, headers) for a new user."""

    def factory(email, role="learner", **kwargs):
        user_id = _make_user(email, role=role, **kwargs)
        return user_id, auth_headers(user_id, email)

    return factory


@pytest.fixture
def institution():
    with get_database().get_session() as session:
        row = Institution(slug="jkkn-engineering", name="JKKN College of Engineering", short_name="JKKNCET")
        session.add(row)
        session.flush()
        return row.id


@pytest.fixture
def superadmin(make_user):
    return make_user("root@jkkn.ac.in", role="superadmin")


@pytest.fixture
def learner(make_user, institution):
    return make_user("learner@jkkn.ac.in", institution_id=institution)


@pytest.fixture
def other_learner(make_user, institution):
    return make_user("second@jkkn.ac.in", institution_id=institution)


@pytest.fixture
def institution_admin(make_user, institution):
    return make_user("principal@jkkn.ac.in", role="institution_admin", institution_id=institution)


@pytest.fixture
def event():
    now = datetime.utcnow()
    with get_database().get_session() as session:
        row = Event(
            slug="appathon-2",
            name="Appathon 2.0",
            start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=30),
            is_active=True,
        )
        session.add(row)
        session.flush()
        return row.id


@pytest.fixture
def event_admin(make_user, event):
    user_id, headers = make_user("coordinator@jkkn.ac.in")
    with get_database().get_session() as session:
        session.add(EventAdmin(event_id=event, user_id=user_id, role="admin"))
    return user_id, headers


class FakeResponse:
    """Minimal stand-in for `requests.Response`."""

    def __init__(self, payload=None, status_code=200):
        self._payload = payload or {}
        self.status_code = status_code

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        return self._payload

    @property
    def text(self):
        return json.dumps(self._payload)


@pytest.fixture
def fake_response():
    return FakeResponse


STEP_PAYLOADS = {
    1: {
        "data": {
            "selected_question": "Hostel students wait too long for drinking water",
            "refined_statement": "Hostel students lose 20 minutes every morning queueing for water",
            "frequency": "daily",
            "pain_level": 7,
        }
    },
    2: {
        "data": {
            "primary_users": "hostel students",
            "specific_trigger": "every morning before class",
            "problem_description": "Only one purifier serves 300 students",
            "where_occurs": "boys hostel",
            "pain_level": 8,
            "current_workaround": "carrying bottles from the canteen",
        },
        "interviews": [
            {"interviewee_name": "Ravi", "interviewee_role": "student", "pain_level": 9, "key_quote": "I skip breakfast"},
            {"interviewee_name": "Meena", "interviewee_role": "warden", "pain_level": 6},
        ],
    },
    3: {"data": {"complained_before": True, "doing_something": True, "light_up_at_solution": True,
                 "ask_when_can_use": True}},
    4: {"data": {"workflow_type": "MONITORING"}},
    5: {"data": {"generated_prompt": "Build me a monitoring app"}},
    6: {"data": {"lovable_project_url": "https://lovable.dev/projects/water"}},
    7: {"data": {"deployed_url": "https://water.example.app"}},
    8: {"data": {"total_users": 40, "time_saved_minutes": 30}},
}


@pytest.fixture
def walk_cycle(client):
    """Create a cycle and complete its steps up to `through` over the API."""

    def walker(headers, through=8, name="Hostel water queue"):
        cycle_id = client.post("/api/cycles", json={"name": name}, headers=headers).json()["id"]
        for step in range(1, through + 1):
            body = {**STEP_PAYLOADS[step], "complete": True}
            response = client.put(f"/api/cycles/{cycle_id}/steps/{step}", json=body, headers=headers)
            assert response.status_code == 200, response.json()
        return cycle_id

    return walker
