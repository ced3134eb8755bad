# tests/conftest.py
from datetime import datetime

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.db.session import build_session_factory, reset_db
from app.main import create_app
from app.services.holiday_calendar import StaticHolidayCalendar
from app.services.series_manager import SeriesManager

TEST_DB_URL = "sqlite+aiosqlite://"


class FrozenClock:
    """
    Injectable "now" for the manager; tests move it by assigning `now`.
    """

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def build_test_engine():
    # One shared in-memory connection so every session sees the same DB.
    return create_async_engine(
        TEST_DB_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest_asyncio.fixture
async def engine():
    """
    Fresh in-memory database per test, schema built from Base.metadata.
    """
    test_engine = build_test_engine()
    await reset_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 1, 1, 8, 0))


@pytest.fixture
def holiday_calendar() -> StaticHolidayCalendar:
    return StaticHolidayCalendar()


@pytest.fixture
def manager(session_factory, holiday_calendar, clock) -> SeriesManager:
    return SeriesManager(
        session_factory=session_factory,
        holiday_calendar=holiday_calendar,
        clock=clock,
    )


def _weekly_payload(**overrides) -> dict:
    payload = {
        "patient_id": "patient-1",
        "provider_id": "dr-house",
        "appointment_type_id": "physio",
        "frequency": "weekly",
        "time_of_day": "10:00",
        "day_of_week": 0,
        "start_date": "2025-01-06",
        "occurrences": 4,
        "duration_minutes": 30,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def weekly_payload():
    """
    Builder for a weekly Monday 10:00 series of four 30-minute sessions
    starting 2025-01-06; keyword arguments override fields.
    """
    return _weekly_payload


@pytest.fixture(scope="session")
def client() -> TestClient:
    """
    Shared TestClient for endpoints that need no database.
    """
    app = create_app(create_schema=False)
    with TestClient(app) as test_client:
        yield test_client
