import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import requests

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("GCG_DATABASE_URL", "sqlite://")
os.environ.setdefault("GCG_GEOLOCATION_ENABLED", "false")

from backend.careergate.database import build_engine, build_session_factory, init_db  # noqa: E402
from backend.careergate.identity import ClientIdentity  # noqa: E402
from backend.careergate.service import AnalyticsService  # noqa: E402
from backend.careergate.storage import MemoryStorage  # noqa: E402

START = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeResponse:
    def __init__(self, payload, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeHttp:
    """Stands in for requests.Session in geolocation lookups."""

    def __init__(self, payload=None, status_code: int = 200, error: Exception = None) -> None:
        self.payload = payload
        self.status_code = status_code
        self.error = error
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        if self.error is not None:
            raise self.error
        return FakeResponse(self.payload, self.status_code)


CLIENT_IP = "8.8.8.8"

IPAPI_PAYLOAD = {
    "ip": "203.0.113.7",
    "city": "Kozhikode",
    "region": "Kerala",
    "country_name": "India",
    "country_code": "IN",
    "postal": "673001",
    "latitude": 11.2588,
    "longitude": 75.7804,
    "org": "AS9829 National Internet Backbone",
}


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'analytics.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def broken_session_factory(tmp_path):
    # No tables: every query fails with OperationalError.
    engine = build_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def durable():
    return MemoryStorage()


@pytest.fixture
def make_service(session_factory, clock, durable):
    def factory(identity=None, storage=None, **kwargs):
        if identity is None:
            identity = ClientIdentity(storage if storage is not None else durable, MemoryStorage())
        sessions = kwargs.pop("session_factory", session_factory)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("app_id", "test-app")
        return AnalyticsService(sessions, identity, **kwargs)

    return factory
