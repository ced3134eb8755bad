# tests/test_calendar_arithmetic.py
from datetime import date

from app.services.calendar_arithmetic import (
    add_days,
    add_months,
    days_in_month,
    is_weekend,
    next_day_of_month_on_or_after,
    next_weekday_on_or_after,
    nth_weekday_of_month,
    same_weekday_in_future_month,
    shift_month,
    weekday_ordinal,
)


def test_add_days_crosses_month_and_year():
    assert add_days(date(2024, 12, 30), 3) == date(2025, 1, 2)
    assert add_days(date(2025, 3, 1), -1) == date(2025, 2, 28)


def test_days_in_month_handles_leap_years():
    assert days_in_month(2024, 2) == 29
    assert days_in_month(2025, 2) == 28
    assert days_in_month(2025, 4) == 30


def test_shift_month_wraps_years_in_both_directions():
    assert shift_month(2025, 11, 3) == (2026, 2)
    assert shift_month(2025, 1, -1) == (2024, 12)
    assert shift_month(2025, 6, 0) == (2025, 6)


def test_add_months_clamps_to_month_length():
    """
    Jan 31 + 1 month lands on the last day of February, leap year or not.
    """
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)


def test_add_months_does_not_drift_after_a_short_month():
    # Stepping from the original day keeps the 31st once months are long again.
    assert add_months(date(2025, 1, 31), 2) == date(2025, 3, 31)
    assert add_months(date(2025, 1, 15), 1, day_of_month=30) == date(2025, 2, 28)


def test_weekday_ordinal():
    assert weekday_ordinal(date(2025, 1, 1)) == 1
    assert weekday_ordinal(date(2025, 1, 21)) == 3
    assert weekday_ordinal(date(2025, 1, 31)) == 5


def test_nth_weekday_of_month():
    # 3rd Tuesday of January 2025
    assert nth_weekday_of_month(2025, 1, 1, 3) == date(2025, 1, 21)
    # 1st Monday of January 2025
    assert nth_weekday_of_month(2025, 1, 0, 1) == date(2025, 1, 6)


def test_nth_weekday_of_month_clamps_missing_ordinal_to_last():
    """
    February 2025 has only four Fridays; a "5th Friday" is the last one.
    """
    assert nth_weekday_of_month(2025, 2, 4, 5) == date(2025, 2, 28)


def test_same_weekday_in_future_month():
    assert same_weekday_in_future_month(date(2025, 1, 21), 1) == date(2025, 2, 18)
    # 5th Friday of January -> last Friday of February -> 5th Friday of May
    assert same_weekday_in_future_month(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert same_weekday_in_future_month(date(2025, 1, 31), 4) == date(2025, 5, 30)


def test_next_weekday_on_or_after():
    assert next_weekday_on_or_after(date(2025, 1, 1), 0) == date(2025, 1, 6)
    assert next_weekday_on_or_after(date(2025, 1, 6), 0) == date(2025, 1, 6)


def test_next_day_of_month_on_or_after():
    assert next_day_of_month_on_or_after(date(2025, 1, 20), 15) == date(2025, 2, 15)
    assert next_day_of_month_on_or_after(date(2025, 1, 10), 15) == date(2025, 1, 15)
    assert next_day_of_month_on_or_after(date(2025, 2, 1), 31) == date(2025, 2, 28)


def test_is_weekend():
    assert is_weekend(date(2025, 1, 4)) is True
    assert is_weekend(date(2025, 1, 5)) is True
    assert is_weekend(date(2025, 1, 6)) is False
