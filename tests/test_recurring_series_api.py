# tests/test_recurring_series_api.py
from datetime import date, datetime
from http import HTTPStatus

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies.series_manager import get_series_manager
from app.db.session import build_session_factory, reset_db
from app.main import create_app
from app.services.holiday_calendar import StaticHolidayCalendar
from app.services.series_manager import SeriesManager
from conftest import FrozenClock, build_test_engine


@pytest.fixture
def api_client():
    """
    TestClient wired to a SeriesManager over an in-memory database.

    The schema is created through the client's portal so the database
    lives on the same event loop that serves requests.
    """
    engine = build_test_engine()
    manager = SeriesManager(
        session_factory=build_session_factory(engine),
        holiday_calendar=StaticHolidayCalendar({"US": [date(2025, 1, 20)]}),
        clock=FrozenClock(datetime(2025, 1, 1, 8, 0)),
    )

    app = create_app(create_schema=False)
    app.dependency_overrides[get_series_manager] = lambda: manager

    with TestClient(app) as client:
        client.portal.call(reset_db, engine)
        yield client
        client.portal.call(engine.dispose)


def _create(client, weekly_payload, **overrides) -> dict:
    response = client.post("/recurring-series", json=weekly_payload(**overrides))
    assert response.status_code == HTTPStatus.CREATED, response.text
    return response.json()


def test_create_series_returns_series_and_occurrences(api_client, weekly_payload):
    data = _create(api_client, weekly_payload)

    assert data["series"]["frequency"] == "weekly"
    assert data["series"]["end_date"] == "2025-01-27"
    assert data["series"]["exceptions"] == ["2025-01-20"]
    assert [o["start_time"] for o in data["occurrences"]] == [
        "2025-01-06T10:00:00",
        "2025-01-13T10:00:00",
        "2025-01-27T10:00:00",
    ]


def test_create_series_rejects_contradictory_rule(api_client, weekly_payload):
    response = api_client.post(
        "/recurring-series",
        json=weekly_payload(frequency="monthly", day_of_month=3, use_same_weekday_of_month=True),
    )

    # Request bodies are validated by FastAPI before reaching the manager.
    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY


def test_get_series_includes_occurrences_by_default(api_client, weekly_payload):
    created = _create(api_client, weekly_payload)
    series_id = created["series"]["id"]

    response = api_client.get(f"/recurring-series/{series_id}")
    assert response.status_code == HTTPStatus.OK
    data = response.json()
    assert [o["position"] for o in data["expanded_occurrences"]] == [1, 2, 3]

    response = api_client.get(f"/recurring-series/{series_id}", params={"include_occurrences": False})
    assert response.json()["expanded_occurrences"] is None


def test_get_unknown_series_returns_404(api_client):
    response = api_client.get("/recurring-series/999")

    assert response.status_code == HTTPStatus.NOT_FOUND
    assert "999" in response.json()["detail"]


def test_list_patient_series(api_client, weekly_payload):
    first = _create(api_client, weekly_payload)
    second = _create(api_client, weekly_payload, start_date="2025-03-03")

    response = api_client.get("/recurring-series/patient/patient-1", params={"order": "asc"})

    assert response.status_code == HTTPStatus.OK
    assert [s["id"] for s in response.json()] == [first["series"]["id"], second["series"]["id"]]


def test_patch_this_and_future(api_client, weekly_payload):
    created = _create(api_client, weekly_payload)
    series_id = created["series"]["id"]

    response = api_client.patch(
        f"/recurring-series/{series_id}",
        json={"mode": "thisAndFuture", "start_position": 2, "status": "cancelled"},
    )

    assert response.status_code == HTTPStatus.OK, response.text
    data = response.json()
    assert data["mode"] == "thisAndFuture"
    assert data["series"]["status"] == "partially_cancelled"
    assert [o["position"] for o in data["updated_occurrences"]] == [2, 3]


def test_patch_with_stale_version_returns_409(api_client, weekly_payload):
    created = _create(api_client, weekly_payload)
    series = created["series"]

    response = api_client.patch(
        f"/recurring-series/{series['id']}",
        json={"mode": "all", "notes": "late edit", "expected_version": series["version"] + 5},
    )

    assert response.status_code == HTTPStatus.CONFLICT
    assert response.json()["current_version"] == series["version"]


def test_patch_unresolvable_target_returns_400(api_client, weekly_payload):
    created = _create(api_client, weekly_payload)

    response = api_client.patch(
        f"/recurring-series/{created['series']['id']}",
        json={"mode": "thisAndFuture", "start_position": 42, "notes": "x"},
    )

    assert response.status_code == HTTPStatus.BAD_REQUEST


def test_cancel_series(api_client, weekly_payload):
    created = _create(api_client, weekly_payload)

    response = api_client.post(
        f"/recurring-series/{created['series']['id']}/cancel",
        json={"mode": "all", "reason": "Moved to another clinic"},
    )

    assert response.status_code == HTTPStatus.OK
    assert response.json() == {
        "series_id": created["series"]["id"],
        "mode": "all",
        "series_status": "cancelled",
        "cancelled_count": 3,
    }
