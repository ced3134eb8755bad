# app/services/holiday_calendar.py
from __future__ import annotations

import logging
from datetime import date as date_type
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

import httpx

from app.core.config import get_settings
from app.core.exceptions import SchedulingError

logger = logging.getLogger(__name__)


class HolidayCalendarError(SchedulingError):
    """
    Raised when the holiday source cannot be queried or returns an
    unusable payload.
    """


class HolidayCalendar(Protocol):
    """
    Source of non-bookable calendar dates for a jurisdiction.
    """

    async def get_holidays_in_range(
        self,
        start: date_type,
        end: date_type,
        jurisdiction: str,
    ) -> set[date_type]:
        ...


def _check_range(start: date_type, end: date_type) -> None:
    if start > end:
        raise HolidayCalendarError("Start date must be on or before end date")


class StaticHolidayCalendar:
    """
    Holiday calendar backed by an explicit mapping of jurisdiction -> dates.

    Instances are immutable after construction; callers wanting different
    data build a new calendar and inject it.
    """

    def __init__(self, holidays: Optional[Mapping[str, Iterable[date_type]]] = None) -> None:
        self._holidays: Dict[str, frozenset[date_type]] = {
            jurisdiction.upper(): frozenset(dates)
            for jurisdiction, dates in (holidays or {}).items()
        }

    async def get_holidays_in_range(
        self,
        start: date_type,
        end: date_type,
        jurisdiction: str,
    ) -> set[date_type]:
        _check_range(start, end)
        dates = self._holidays.get(jurisdiction.upper(), frozenset())
        return {d for d in dates if start <= d <= end}


class HttpHolidayCalendar:
    """
    Holiday calendar backed by a public-holiday REST API.

    Expects the endpoint shape:

        GET {base_url}/PublicHolidays/{year}/{country}
        -> [{"date": "2025-01-01", "localName": "...", ...}, ...]

    One request is issued per calendar year touched by the range. Results are
    not cached between calls, so every scheduling operation sees fresh data.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def _fetch_year(self, client: httpx.AsyncClient, year: int, jurisdiction: str) -> List[Any]:
        url = f"{self._base_url}/PublicHolidays/{year}/{jurisdiction.upper()}"
        try:
            resp = await client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise HolidayCalendarError(f"Holiday API request failed: {exc}") from exc

        if resp.status_code // 100 != 2:
            raise HolidayCalendarError(
                f"Holiday API GET failed (status={resp.status_code}): {resp.text}"
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise HolidayCalendarError("Invalid holiday API response (body is not JSON)") from exc
        if not isinstance(payload, list):
            raise HolidayCalendarError("Invalid holiday API response (expected a list)")
        return payload

    async def get_holidays_in_range(
        self,
        start: date_type,
        end: date_type,
        jurisdiction: str,
    ) -> set[date_type]:
        _check_range(start, end)

        holidays: set[date_type] = set()
        async with httpx.AsyncClient(
            timeout=self._timeout_seconds,
            transport=self._transport,
        ) as client:
            for year in range(start.year, end.year + 1):
                for entry in await self._fetch_year(client, year, jurisdiction):
                    try:
                        holiday = date_type.fromisoformat(entry["date"])
                    except (KeyError, TypeError, ValueError) as exc:
                        raise HolidayCalendarError(
                            f"Invalid holiday entry in API response: {entry!r}"
                        ) from exc
                    if start <= holiday <= end:
                        holidays.add(holiday)

        logger.debug(f"Fetched {len(holidays)} holidays for {jurisdiction} between {start} and {end}")
        return holidays


def get_holiday_calendar() -> HolidayCalendar:
    """
    Build the holiday calendar configured in application settings.

    Without HOLIDAY_API_BASE_URL an empty static calendar is returned, so
    holiday skipping is a no-op until a source is configured or injected.
    """
    settings = get_settings()
    if settings.HOLIDAY_API_BASE_URL:
        return HttpHolidayCalendar(
            base_url=str(settings.HOLIDAY_API_BASE_URL),
            timeout_seconds=settings.HOLIDAY_API_TIMEOUT_SECONDS,
        )
    return StaticHolidayCalendar()
