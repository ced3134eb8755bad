# app/schemas/recurring_series.py
from __future__ import annotations

from datetime import date, datetime, time
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Frequency(str, Enum):
    """
    Supported recurrence frequencies.
    """

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class SeriesStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    PARTIALLY_CANCELLED = "partially_cancelled"


class OccurrenceStatus(str, Enum):
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no-show"


class UpdateMode(str, Enum):
    THIS = "this"
    THIS_AND_FUTURE = "thisAndFuture"
    ALL = "all"


class CancelMode(str, Enum):
    ALL = "all"
    FUTURE = "future"


def _to_local_naive(value: datetime | None) -> datetime | None:
    """
    Scheduling works on naive local wall-clock times; aware inputs are
    converted to the server's local zone first.
    """
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


# --------------------------------------------------------------------------
# Create schema
# --------------------------------------------------------------------------

class SeriesCreate(BaseModel):
    """
    Definition of a new recurring series.

    Either `end_date` or `occurrences` must be provided; when only the count
    is given the end date is derived from the recurrence rule.
    """

    patient_id: str = Field(..., min_length=1, description="Patient identifier.")
    provider_id: str = Field(..., min_length=1, description="Provider (doctor) identifier.")
    appointment_type_id: str = Field(..., min_length=1, description="Appointment type identifier.")

    frequency: Frequency = Field(..., examples=["weekly"])
    time_of_day: time = Field(
        ...,
        description="Local time of day (24-hour HH:MM) at which occurrences start.",
        examples=["10:00"],
    )
    day_of_week: int | None = Field(
        default=None,
        ge=0,
        le=6,
        description="Weekday for weekly/biweekly series (0=Monday .. 6=Sunday).",
    )
    day_of_month: int | None = Field(
        default=None,
        ge=1,
        le=31,
        description="Day of month for monthly series, clamped to short months.",
    )
    use_same_weekday_of_month: bool = Field(
        default=False,
        description="Monthly on the same ordinal weekday as start_date (e.g. 3rd Tuesday).",
    )
    custom_interval_days: int | None = Field(default=None, ge=1, le=365)

    start_date: date = Field(..., examples=["2025-01-07"])
    end_date: date | None = Field(default=None, examples=["2025-03-25"])
    occurrences: int | None = Field(default=None, ge=1, le=52)
    duration_minutes: int = Field(..., ge=5, le=180)

    notes: str | None = Field(default=None, max_length=500)
    skip_holidays: bool = True
    auto_reschedule: bool = False
    reschedule_window_days: int | None = Field(default=None, ge=0, le=14)
    jurisdiction: str | None = Field(
        default=None,
        min_length=2,
        max_length=8,
        description="Holiday jurisdiction; defaults to the configured one.",
    )

    @field_validator("time_of_day")
    @classmethod
    def _strip_seconds(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0, tzinfo=None)

    @model_validator(mode="after")
    def _check_rule(self) -> "SeriesCreate":
        if self.frequency == Frequency.CUSTOM and self.custom_interval_days is None:
            raise ValueError("custom_interval_days is required for custom frequency")
        if self.day_of_month is not None and self.use_same_weekday_of_month:
            raise ValueError("day_of_month and use_same_weekday_of_month are mutually exclusive")
        if self.end_date is None and self.occurrences is None:
            raise ValueError("either end_date or occurrences must be provided")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


# --------------------------------------------------------------------------
# Update patches, one closed variant per update mode
# --------------------------------------------------------------------------

class ThisOccurrencePatch(BaseModel):
    """
    Edit exactly one occurrence, identified by position or calendar date.
    """

    mode: Literal["this"] = "this"
    position: int | None = Field(default=None, ge=1)
    occurrence_date: date | None = None

    notes: str | None = Field(default=None, max_length=500)
    status: OccurrenceStatus | None = None
    cancellation_reason: str | None = Field(default=None, max_length=500)
    start_time: datetime | None = Field(
        default=None,
        description="Move this occurrence to a new start time.",
    )
    expected_version: int | None = None

    @field_validator("start_time")
    @classmethod
    def _naive_start_time(cls, value: datetime | None) -> datetime | None:
        return _to_local_naive(value)

    @model_validator(mode="after")
    def _check_target(self) -> "ThisOccurrencePatch":
        if self.position is None and self.occurrence_date is None:
            raise ValueError("position or occurrence_date is required")
        if self.notes is None and self.status is None and self.start_time is None:
            raise ValueError("at least one of notes, status or start_time must be set")
        return self


class ThisAndFuturePatch(BaseModel):
    """
    Edit one occurrence and every later one; the target is the occurrence at
    `start_position` or the first one starting at/after `start_date`.
    """

    mode: Literal["thisAndFuture"] = "thisAndFuture"
    start_position: int | None = Field(default=None, ge=1)
    start_date: datetime | None = None

    notes: str | None = Field(default=None, max_length=500)
    status: Literal["cancelled"] | None = None
    expected_version: int | None = None

    @field_validator("start_date")
    @classmethod
    def _naive_start_date(cls, value: datetime | None) -> datetime | None:
        return _to_local_naive(value)

    @model_validator(mode="after")
    def _check_fields(self) -> "ThisAndFuturePatch":
        if self.notes is None and self.status is None:
            raise ValueError("at least one of notes or status must be set")
        return self


class AllOccurrencesPatch(BaseModel):
    """
    Edit the series template and all of its future occurrences.
    """

    mode: Literal["all"] = "all"
    notes: str | None = Field(default=None, max_length=500)
    status: SeriesStatus | None = None
    expected_version: int | None = None

    @model_validator(mode="after")
    def _check_fields(self) -> "AllOccurrencesPatch":
        if self.notes is None and self.status is None:
            raise ValueError("at least one of notes or status must be set")
        return self


SeriesPatch = ThisOccurrencePatch | ThisAndFuturePatch | AllOccurrencesPatch

SeriesPatchBody = Annotated[SeriesPatch, Field(discriminator="mode")]


class SeriesPatchRequest(BaseModel):
    """
    Envelope used to parse an untyped patch payload into its mode variant.
    """

    patch: SeriesPatch = Field(..., discriminator="mode")


# --------------------------------------------------------------------------
# Cancellation / filters
# --------------------------------------------------------------------------

class CancelRequest(BaseModel):
    reason: str = Field(default="", max_length=500)
    mode: CancelMode = CancelMode.ALL
    from_date: datetime | None = Field(
        default=None,
        description="For mode=future: cancel occurrences starting at/after this instant (default now).",
    )
    expected_version: int | None = None

    @field_validator("from_date")
    @classmethod
    def _naive_from_date(cls, value: datetime | None) -> datetime | None:
        return _to_local_naive(value)


class SeriesFilters(BaseModel):
    status: SeriesStatus | None = None
    start_date: date | None = Field(
        default=None,
        description="Only series ending on/after this date.",
    )
    end_date: date | None = Field(
        default=None,
        description="Only series starting on/before this date.",
    )
    order: Literal["asc", "desc"] = Field(
        default="desc",
        description="Sort by series start date; newest first by default.",
    )


# --------------------------------------------------------------------------
# Read schemas
# --------------------------------------------------------------------------

class OccurrenceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    series_id: int | None
    position: int | None
    patient_id: str
    provider_id: str
    appointment_type_id: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    nominal_start_time: datetime | None = None
    status: OccurrenceStatus
    notes: str | None = None
    is_modified_occurrence: bool
    cancellation_reason: str | None = None


class SeriesRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: str
    provider_id: str
    appointment_type_id: str
    frequency: Frequency
    time_of_day: time
    day_of_week: int | None = None
    day_of_month: int | None = None
    use_same_weekday_of_month: bool
    custom_interval_days: int | None = None
    start_date: date
    end_date: date
    occurrences: int | None = None
    duration_minutes: int
    skip_holidays: bool
    auto_reschedule: bool
    reschedule_window_days: int
    jurisdiction: str
    status: SeriesStatus
    notes: str | None = None
    exceptions: list[date] = Field(default_factory=list)
    occurrence_refs: list[int] = Field(default_factory=list)
    version: int
    expanded_occurrences: list[OccurrenceRead] | None = Field(
        default=None,
        description="Occurrences ordered by position, when requested.",
    )


class SeriesWithOccurrences(BaseModel):
    series: SeriesRead
    occurrences: list[OccurrenceRead]


class SeriesUpdateResult(BaseModel):
    mode: UpdateMode
    series: SeriesRead
    updated_occurrences: list[OccurrenceRead]


class SeriesCancelResult(BaseModel):
    series_id: int
    mode: CancelMode
    series_status: SeriesStatus
    cancelled_count: int
