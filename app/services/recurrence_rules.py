# app/services/recurrence_rules.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date as date_type
from typing import Protocol, Union

from app.core.exceptions import ValidationError
from app.schemas.recurring_series import Frequency
from app.services.calendar_arithmetic import (
    add_days,
    add_months,
    next_day_of_month_on_or_after,
    next_weekday_on_or_after,
    same_weekday_in_future_month,
)


class _RuleSource(Protocol):
    frequency: str
    start_date: date_type
    day_of_week: int | None
    day_of_month: int | None
    use_same_weekday_of_month: bool | None
    custom_interval_days: int | None


@dataclass(frozen=True)
class WeeklyRule:
    anchor: date_type
    interval_days = 7

    def nominal_date(self, index: int) -> date_type:
        return add_days(self.anchor, index * self.interval_days)


@dataclass(frozen=True)
class BiweeklyRule(WeeklyRule):
    interval_days = 14


@dataclass(frozen=True)
class CustomIntervalRule:
    anchor: date_type
    interval_days: int

    def nominal_date(self, index: int) -> date_type:
        return add_days(self.anchor, index * self.interval_days)


@dataclass(frozen=True)
class MonthlyByDateRule:
    anchor: date_type
    day_of_month: int

    def nominal_date(self, index: int) -> date_type:
        return add_months(self.anchor, index, self.day_of_month)


@dataclass(frozen=True)
class MonthlyByWeekdayRule:
    """
    "The Nth <weekday> of every month", N taken from the anchor date.

    Months without an Nth such weekday fall back to the last one; the
    following month goes back to the Nth.
    """

    anchor: date_type

    def nominal_date(self, index: int) -> date_type:
        return same_weekday_in_future_month(self.anchor, index)


RecurrenceRule = Union[
    WeeklyRule,
    BiweeklyRule,
    CustomIntervalRule,
    MonthlyByDateRule,
    MonthlyByWeekdayRule,
]


def rule_for_series(series: _RuleSource) -> RecurrenceRule:
    """
    Build the recurrence rule described by a series definition.

    The anchor (nominal date of position 1's slot) is the first date on or
    after `start_date` matching the rule: the configured weekday for weekly
    and biweekly series, the configured day-of-month for monthly-by-date
    series, and `start_date` itself otherwise.

    Every nominal date is computed from the anchor and an index, so an
    auto-reschedule shift never moves the cadence.
    """
    try:
        return _build_rule(series)
    except (OverflowError, ValueError) as exc:
        raise ValidationError(
            f"start_date {series.start_date} cannot be aligned within the supported date range"
        ) from exc


def _build_rule(series: _RuleSource) -> RecurrenceRule:
    try:
        frequency = Frequency(series.frequency)
    except ValueError:
        raise ValidationError(f"Unsupported frequency '{series.frequency}'")

    start = series.start_date

    if frequency in (Frequency.WEEKLY, Frequency.BIWEEKLY):
        anchor = start
        if series.day_of_week is not None:
            anchor = next_weekday_on_or_after(start, series.day_of_week)
        if frequency == Frequency.WEEKLY:
            return WeeklyRule(anchor=anchor)
        return BiweeklyRule(anchor=anchor)

    if frequency == Frequency.MONTHLY:
        if series.use_same_weekday_of_month:
            if series.day_of_month is not None:
                raise ValidationError(
                    "day_of_month and use_same_weekday_of_month are mutually exclusive"
                )
            return MonthlyByWeekdayRule(anchor=start)
        day_of_month = series.day_of_month or start.day
        return MonthlyByDateRule(
            anchor=next_day_of_month_on_or_after(start, day_of_month),
            day_of_month=day_of_month,
        )

    if frequency == Frequency.CUSTOM:
        if not series.custom_interval_days or series.custom_interval_days < 1:
            raise ValidationError("custom_interval_days must be >= 1 for custom frequency")
        return CustomIntervalRule(anchor=start, interval_days=series.custom_interval_days)

    raise ValidationError(f"Unsupported frequency '{series.frequency}'")


def derive_end_date(rule: RecurrenceRule, occurrences: int) -> date_type:
    """
    End date reached after `occurrences - 1` steps of `rule`.
    """
    try:
        return rule.nominal_date(max(occurrences, 1) - 1)
    except (OverflowError, ValueError) as exc:
        raise ValidationError("occurrences run past the supported date range") from exc
