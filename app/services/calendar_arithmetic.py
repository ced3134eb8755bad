# app/services/calendar_arithmetic.py
"""
Pure date-stepping helpers used by the recurrence rules.

Nothing in here touches the database or the clock.
"""
from __future__ import annotations

import calendar
from datetime import date as date_type, timedelta

SATURDAY = 5
SUNDAY = 6


def add_days(day: date_type, days: int) -> date_type:
    return day + timedelta(days=days)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    """
    Move (year, month) by `months` calendar months.
    """
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def add_months(day: date_type, months: int, day_of_month: int | None = None) -> date_type:
    """
    Add calendar months to `day`.

    The resulting day-of-month is `day_of_month` (or `day.day`), clamped to
    the length of the target month: Jan 31 + 1 month -> Feb 28/29.
    """
    year, month = shift_month(day.year, day.month, months)
    wanted = day_of_month if day_of_month is not None else day.day
    return date_type(year, month, min(wanted, days_in_month(year, month)))


def weekday_ordinal(day: date_type) -> int:
    """
    Which occurrence of its weekday `day` is within its month (1-5).

    The 15th of a month is always the 3rd of its weekday.
    """
    return (day.day - 1) // 7 + 1


def nth_weekday_of_month(year: int, month: int, weekday: int, ordinal: int) -> date_type:
    """
    Return the `ordinal`-th `weekday` (0=Monday) of the given month.

    When the month has fewer than `ordinal` such weekdays (a "5th Friday" in
    a month with four Fridays) the last one in the month is returned.
    """
    first = date_type(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    candidate_day = 1 + offset + (ordinal - 1) * 7
    last_day = days_in_month(year, month)
    while candidate_day > last_day:
        candidate_day -= 7
    return date_type(year, month, candidate_day)


def same_weekday_in_future_month(day: date_type, months: int) -> date_type:
    """
    Same relative weekday `months` months after `day`.

    For example the 3rd Tuesday of March -> the 3rd Tuesday of April.
    """
    year, month = shift_month(day.year, day.month, months)
    return nth_weekday_of_month(year, month, day.weekday(), weekday_ordinal(day))


def next_weekday_on_or_after(day: date_type, weekday: int) -> date_type:
    return day + timedelta(days=(weekday - day.weekday()) % 7)


def next_day_of_month_on_or_after(day: date_type, day_of_month: int) -> date_type:
    """
    First date >= `day` whose day-of-month is `day_of_month` (clamped to the
    month length).
    """
    candidate = add_months(day, 0, day_of_month)
    if candidate < day:
        candidate = add_months(day, 1, day_of_month)
    return candidate


def is_weekend(day: date_type) -> bool:
    return day.weekday() in (SATURDAY, SUNDAY)
