from datetime import datetime, timedelta, timezone
from functools import partial

import pytest
from fastapi.testclient import TestClient

from api import security
from api.config import Settings
from api.main import create_app
from api.routers import auth as auth_router
from campus_planner.models import ScheduleEntry, Task, User
from llm.llm_client import LLMClient

NOW = datetime(2026, 3, 4, 8, 0, tzinfo=timezone.utc)  # a Wednesday


class FakeProvider:
    def __init__(self, response_text: str = "", error: Exception = None):
        self._response_text = response_text
        self._error = error
        self.calls = []

    def generate(self, *, system: str, user: str, temperature: float = 0.2) -> str:
        self.calls.append({"system": system, "user": user, "temperature": temperature})
        if self._error is not None:
            raise self._error
        return self._response_text


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def fake_provider_factory():
    def _make(response_text: str = "", error: Exception = None):
        return FakeProvider(response_text, error=error)
    return _make


@pytest.fixture
def offline_provider():
    return FakeProvider(error=RuntimeError("model offline"))


@pytest.fixture
def make_task():
    def _make(**overrides) -> Task:
        data = {
            "user_id": "u1",
            "title": "Essay",
            "category": "assignment",
            "estimated_duration": 60,
            "deadline": NOW + timedelta(days=2),
        }
        data.update(overrides)
        return Task(**data)
    return _make


@pytest.fixture
def make_entry():
    def _make(start: datetime, end: datetime, **overrides) -> ScheduleEntry:
        data = {
            "user_id": "u1",
            "type": "timetable",
            "title": "Lecture",
            "start_time": start,
            "end_time": end,
        }
        data.update(overrides)
        return ScheduleEntry(**data)
    return _make


@pytest.fixture
def make_user():
    def _make(**overrides) -> User:
        data = {
            "name": "Ada",
            "email": "ada@uni.edu",
            "password_hash": "x",
            "university": "State U",
            "course": "CS",
            "year": 2,
        }
        data.update(overrides)
        return User(**data)
    return _make


@pytest.fixture
def test_settings() -> Settings:
    return Settings(environment="test", jwt_secret="test-secret", sweeps_enabled=False)


@pytest.fixture
def app_factory(monkeypatch, test_settings):
    # full-strength hashing makes every registration slow
    monkeypatch.setattr(
        auth_router, "hash_password", partial(security.hash_password, iterations=1_000)
    )

    def _make(provider=None, settings: Settings = None):
        provider = provider or FakeProvider(error=RuntimeError("model offline"))
        return create_app(settings or test_settings, llm_client=LLMClient(provider=provider))
    return _make


@pytest.fixture
def app(app_factory):
    return app_factory()


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def register():
    def _register(client: TestClient, email: str = "ada@uni.edu") -> dict:
        r = client.post(
            "/auth/register",
            json={
                "name": "Ada",
                "email": email,
                "password": "secret123",
                "university": "State U",
                "course": "CS",
                "year": 2,
            },
        )
        assert r.status_code == 201, r.text
        return {"Authorization": f"Bearer {r.json()['token']}"}
    return _register


@pytest.fixture
def auth_headers(client, register):
    return register(client)


class _Request:
    def __init__(self, result=None, error: Exception = None):
        self._result = result
        self._error = error

    def execute(self):
        if self._error is not None:
            raise self._error
        return self._result


class FakeGoogle:
    """Stands in for googleapiclient services; records every request made."""

    def __init__(self, events=(), error: Exception = None):
        self.events_data = list(events)
        self.error = error
        self.calls = []

    def build(self, name, version, credentials=None, cache_discovery=True):
        self.calls.append(("build", name, version))
        return self

    def _request(self, call, result=None):
        self.calls.append(call)
        return _Request(result, self.error)

    # calendar v3
    def events(self):
        return self

    def list(self, **kwargs):
        return self._request(("list", kwargs), {"items": self.events_data})

    def insert(self, calendarId, body):
        return self._request(("insert", body), {"id": "evt-new", **body})

    def patch(self, calendarId, eventId, body):
        return self._request(("patch", eventId, body), {"id": eventId, **body})

    def delete(self, calendarId, eventId):
        return self._request(("delete", eventId), "")

    # forms v1
    def forms(self):
        return self

    def responses(self):
        return self

    def create(self, formId, body):
        return self._request(("submit", formId, body), {"responseId": "resp-1"})

    # sheets v4
    def spreadsheets(self):
        return self

    def values(self):
        return self

    def get(self, spreadsheetId, range):
        return self._request(("read", spreadsheetId, range), {"values": [["Name", "Grade"], ["Ada", "A"]]})

    def update(self, spreadsheetId, range, valueInputOption, body):
        return self._request(
            ("write", spreadsheetId, range, valueInputOption, body), {"updatedCells": 2}
        )


@pytest.fixture
def fake_google():
    return FakeGoogle
