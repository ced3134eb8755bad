# tests/test_recurrence_rules.py
from datetime import date
from types import SimpleNamespace

import pytest

from app.core.exceptions import ValidationError
from app.services.recurrence_rules import (
    BiweeklyRule,
    CustomIntervalRule,
    MonthlyByDateRule,
    MonthlyByWeekdayRule,
    WeeklyRule,
    derive_end_date,
    rule_for_series,
)


def _definition(**overrides) -> SimpleNamespace:
    values = {
        "frequency": "weekly",
        "start_date": date(2025, 1, 1),
        "day_of_week": None,
        "day_of_month": None,
        "use_same_weekday_of_month": False,
        "custom_interval_days": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_weekly_rule_aligns_to_day_of_week():
    """
    A Monday series starting on a Wednesday begins the following Monday.
    """
    rule = rule_for_series(_definition(day_of_week=0))

    assert isinstance(rule, WeeklyRule)
    assert rule.anchor == date(2025, 1, 6)
    assert [rule.nominal_date(i) for i in range(3)] == [
        date(2025, 1, 6),
        date(2025, 1, 13),
        date(2025, 1, 20),
    ]


def test_weekly_rule_without_day_of_week_uses_start_date():
    rule = rule_for_series(_definition())
    assert rule.anchor == date(2025, 1, 1)
    assert rule.nominal_date(1) == date(2025, 1, 8)


def test_biweekly_rule_steps_fourteen_days():
    rule = rule_for_series(
        _definition(frequency="biweekly", start_date=date(2025, 1, 7), day_of_week=1)
    )

    assert isinstance(rule, BiweeklyRule)
    assert rule.nominal_date(0) == date(2025, 1, 7)
    assert rule.nominal_date(1) == date(2025, 1, 21)
    assert rule.nominal_date(2) == date(2025, 2, 4)


def test_custom_interval_rule():
    rule = rule_for_series(_definition(frequency="custom", custom_interval_days=10))

    assert isinstance(rule, CustomIntervalRule)
    assert rule.nominal_date(3) == date(2025, 1, 31)


def test_monthly_by_date_clamps_and_recovers():
    rule = rule_for_series(
        _definition(frequency="monthly", start_date=date(2025, 1, 31), day_of_month=31)
    )

    assert isinstance(rule, MonthlyByDateRule)
    assert [rule.nominal_date(i) for i in range(4)] == [
        date(2025, 1, 31),
        date(2025, 2, 28),
        date(2025, 3, 31),
        date(2025, 4, 30),
    ]


def test_monthly_by_date_aligns_to_next_matching_day():
    rule = rule_for_series(
        _definition(frequency="monthly", start_date=date(2025, 1, 20), day_of_month=15)
    )
    assert rule.anchor == date(2025, 2, 15)


def test_monthly_defaults_to_start_day():
    rule = rule_for_series(_definition(frequency="monthly", start_date=date(2025, 1, 10)))
    assert rule.nominal_date(1) == date(2025, 2, 10)


def test_monthly_same_weekday_keeps_ordinal():
    """
    3rd Tuesday of January -> 3rd Tuesday of February.
    """
    rule = rule_for_series(
        _definition(
            frequency="monthly",
            start_date=date(2025, 1, 21),
            use_same_weekday_of_month=True,
        )
    )

    assert isinstance(rule, MonthlyByWeekdayRule)
    assert rule.nominal_date(1) == date(2025, 2, 18)


def test_custom_without_interval_is_rejected():
    with pytest.raises(ValidationError):
        rule_for_series(_definition(frequency="custom"))


def test_monthly_day_and_same_weekday_are_exclusive():
    with pytest.raises(ValidationError):
        rule_for_series(
            _definition(frequency="monthly", day_of_month=5, use_same_weekday_of_month=True)
        )


def test_unknown_frequency_is_rejected():
    with pytest.raises(ValidationError) as exc_info:
        rule_for_series(_definition(frequency="daily"))
    assert "daily" in exc_info.value.message


def test_derive_end_date_counts_occurrences_minus_one_steps():
    rule = WeeklyRule(anchor=date(2025, 1, 6))

    assert derive_end_date(rule, 4) == date(2025, 1, 27)
    assert derive_end_date(rule, 1) == date(2025, 1, 6)


def test_derive_end_date_past_supported_range_is_rejected():
    weekly = WeeklyRule(anchor=date(9999, 12, 6))
    monthly = MonthlyByDateRule(anchor=date(9999, 10, 15), day_of_month=15)

    with pytest.raises(ValidationError):
        derive_end_date(weekly, 52)
    with pytest.raises(ValidationError):
        derive_end_date(monthly, 12)


def test_alignment_past_supported_range_is_rejected():
    # 9999-12-31 is a Friday; the next Monday does not exist.
    with pytest.raises(ValidationError):
        rule_for_series(_definition(start_date=date(9999, 12, 31), day_of_week=0))
