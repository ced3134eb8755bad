# app/services/recurrence_generator.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date as date_type, datetime, timedelta
from typing import List, Optional

from app.core.exceptions import ValidationError
from app.models.recurring_series import RecurringSeries
from app.services.availability import AvailabilityChecker
from app.services.calendar_arithmetic import add_days, is_weekend
from app.services.recurrence_rules import rule_for_series

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES = 100


@dataclass
class OccurrenceDraft:
    """
    A materialized occurrence that has not been persisted yet.
    """

    position: int
    nominal_start_time: datetime
    start_time: datetime
    end_time: datetime

    @property
    def was_rescheduled(self) -> bool:
        return self.start_time != self.nominal_start_time


@dataclass
class GenerationResult:
    """
    Output of one generation run.

    Besides the drafts, the nominal dates that produced no occurrence are
    reported per cause so the caller can record them on the series.
    """

    occurrences: List[OccurrenceDraft] = field(default_factory=list)
    holiday_skips: List[date_type] = field(default_factory=list)
    exception_skips: List[date_type] = field(default_factory=list)
    unavailable_skips: List[date_type] = field(default_factory=list)


class RecurrenceGenerator:
    """
    Expands a series definition into an ordered list of occurrence drafts.

    Rules
    -----
    1) Nominal dates come from the series' recurrence rule, starting at the
       rule's anchor and always stepping from the unshifted cadence.
    2) Holidays (when `skip_holidays`) and exception dates are skipped and
       consume no position.
    3) A busy nominal slot is skipped, or with `auto_reschedule` moved to
       the first free weekday (same time of day, not a holiday) within
       `reschedule_window_days` after the nominal date.
    4) Generation stops past `end_date` or once `occurrences` (or the hard
       cap) drafts exist.

    The generator only reads from its collaborators; persisting drafts is
    the caller's job.
    """

    def __init__(
        self,
        availability: AvailabilityChecker,
        max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
    ) -> None:
        self.availability = availability
        self.max_occurrences = max_occurrences

    async def generate(
        self,
        series: RecurringSeries,
        holidays: set[date_type],
    ) -> GenerationResult:
        if series.end_date < series.start_date:
            raise ValidationError("end_date must be on or after start_date")

        rule = rule_for_series(series)
        limit = min(series.occurrences or self.max_occurrences, self.max_occurrences)
        duration = timedelta(minutes=series.duration_minutes)
        exceptions = series.exception_dates()
        skip_holidays = bool(series.skip_holidays)

        result = GenerationResult()
        index = 0

        while len(result.occurrences) < limit:
            try:
                nominal_day = rule.nominal_date(index)
            except (OverflowError, ValueError):
                # Stepped past the last representable date.
                break
            index += 1
            if nominal_day > series.end_date:
                break

            if nominal_day in exceptions:
                logger.debug(f"Series {series.id}: {nominal_day} is an exception date, skipping")
                result.exception_skips.append(nominal_day)
                continue

            if skip_holidays and nominal_day in holidays:
                logger.debug(f"Series {series.id}: {nominal_day} is a holiday, skipping")
                result.holiday_skips.append(nominal_day)
                continue

            nominal_start = datetime.combine(nominal_day, series.time_of_day)
            if nominal_start > datetime.max - duration:
                break
            start_time: Optional[datetime] = nominal_start

            if not await self._is_free(series, nominal_start, duration, result):
                start_time = None
                if series.auto_reschedule:
                    start_time = await self._find_reschedule_slot(
                        series,
                        nominal_start,
                        duration,
                        holidays if skip_holidays else set(),
                        exceptions,
                        result,
                    )

            if start_time is None:
                logger.debug(f"Series {series.id}: no free slot for {nominal_day}, skipping")
                result.unavailable_skips.append(nominal_day)
                continue

            result.occurrences.append(
                OccurrenceDraft(
                    position=len(result.occurrences) + 1,
                    nominal_start_time=nominal_start,
                    start_time=start_time,
                    end_time=start_time + duration,
                )
            )

        return result

    async def _find_reschedule_slot(
        self,
        series: RecurringSeries,
        nominal_start: datetime,
        duration: timedelta,
        holidays: set[date_type],
        exceptions: set[date_type],
        result: GenerationResult,
    ) -> Optional[datetime]:
        window = series.reschedule_window_days or 0
        for offset in range(1, window + 1):
            try:
                candidate_day = add_days(nominal_start.date(), offset)
            except OverflowError:
                return None
            if is_weekend(candidate_day) or candidate_day in holidays or candidate_day in exceptions:
                continue

            candidate = datetime.combine(candidate_day, series.time_of_day)
            if candidate > datetime.max - duration:
                return None
            if await self._is_free(series, candidate, duration, result):
                return candidate
        return None

    async def _is_free(
        self,
        series: RecurringSeries,
        start: datetime,
        duration: timedelta,
        result: GenerationResult,
    ) -> bool:
        end = start + duration
        # Drafts from this run are not persisted yet, so the checker can't see them.
        for draft in result.occurrences:
            if draft.start_time < end and draft.end_time > start:
                return False
        return await self.availability.is_slot_free(series.provider_id, start, end)
