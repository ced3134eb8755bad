# app/services/series_manager.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date as date_type, datetime
from typing import AsyncIterator, Callable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import Settings, get_settings
from app.core.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from app.models.occurrence import Occurrence
from app.models.recurring_series import RecurringSeries
from app.schemas.recurring_series import (
    AllOccurrencesPatch,
    CancelMode,
    CancelRequest,
    OccurrenceRead,
    OccurrenceStatus,
    SeriesCancelResult,
    SeriesCreate,
    SeriesFilters,
    SeriesPatch,
    SeriesPatchRequest,
    SeriesRead,
    SeriesStatus,
    SeriesUpdateResult,
    SeriesWithOccurrences,
    ThisAndFuturePatch,
    ThisOccurrencePatch,
    UpdateMode,
)
from app.services.availability import AvailabilityChecker, SqlAvailabilityChecker
from app.services.calendar_arithmetic import add_days
from app.services.holiday_calendar import HolidayCalendar
from app.services.recurrence_generator import OccurrenceDraft, RecurrenceGenerator
from app.services.recurrence_rules import derive_end_date, rule_for_series

logger = logging.getLogger(__name__)

SERIES_CANCELLED_REASON = "Series cancelled"
OCCURRENCE_CANCELLED_REASON = "Cancelled by user"

_INACTIVE_FOR_UPDATE = (OccurrenceStatus.CANCELLED.value, OccurrenceStatus.NO_SHOW.value)
_INACTIVE_FOR_CANCEL = _INACTIVE_FOR_UPDATE + (OccurrenceStatus.COMPLETED.value,)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse(model: Type[ModelT], payload) -> ModelT:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid {model.__name__} payload",
            details=exc.errors(include_url=False, include_context=False),
        ) from exc


def _nominal_day(occurrence: Occurrence) -> date_type:
    return (occurrence.nominal_start_time or occurrence.start_time).date()


class SeriesManager:
    """
    Lifecycle operations for recurring series.

    Every public operation opens one session from `session_factory` and runs
    all of its reads and writes inside a single transaction: leaving the
    block commits, any exception (including task cancellation) rolls back
    every write made so far and is re-raised unchanged. Concurrent writes to
    the same series are detected through the series' version counter and
    surface as ConflictError.

    Parameters
    ----------
    session_factory:
        Factory producing AsyncSession objects bound to the scheduling DB.
    holiday_calendar:
        Source of non-bookable dates, queried fresh on every generation.
    availability_factory:
        Builds the availability checker for the operation's session.
    clock:
        Returns the current local wall-clock time ("now").
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        holiday_calendar: HolidayCalendar,
        availability_factory: Callable[[AsyncSession], AvailabilityChecker] = SqlAvailabilityChecker,
        clock: Callable[[], datetime] = datetime.now,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session_factory = session_factory
        self.holiday_calendar = holiday_calendar
        self.availability_factory = availability_factory
        self.clock = clock
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self, operation: str, **context) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    yield session
            except StaleDataError as exc:
                logger.error(f"{operation} aborted by concurrent modification {context}: {exc}")
                raise ConflictError(
                    "Series was modified concurrently; reload it and retry"
                ) from exc
            except BaseException as exc:
                logger.error(f"{operation} failed and was rolled back {context}: {exc!r}")
                raise

    async def _load_series(
        self,
        session: AsyncSession,
        series_id: int,
        lock: bool = False,
    ) -> RecurringSeries:
        series = await session.get(RecurringSeries, series_id, with_for_update=lock)
        if series is None:
            raise NotFoundError(f"Recurring series with id={series_id} not found")
        return series

    @staticmethod
    def _check_version(series: RecurringSeries, expected_version: Optional[int]) -> None:
        if expected_version is not None and expected_version != series.version:
            raise ConflictError(
                f"Series {series.id} is at version {series.version}, "
                f"expected {expected_version}",
                current_version=series.version,
            )

    async def _occurrences_excluding(
        self,
        session: AsyncSession,
        series_id: int,
        statuses: tuple[str, ...],
    ) -> List[Occurrence]:
        stmt = (
            select(Occurrence)
            .where(
                Occurrence.series_id == series_id,
                Occurrence.status.not_in(statuses),
            )
            .order_by(Occurrence.start_time, Occurrence.position)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_series(self, definition: SeriesCreate | dict) -> SeriesWithOccurrences:
        """
        Create a series and generate its occurrences in one transaction.

        Nominal dates skipped because of a holiday are recorded as series
        exceptions so that a later regeneration reproduces this run even if
        the holiday source changes.
        """
        definition = _parse(SeriesCreate, definition)
        series = self._build_series(definition)

        logger.info(
            f"Creating recurring series for patient={series.patient_id} "
            f"provider={series.provider_id} frequency={series.frequency}"
        )

        async with self._transaction(
            "create_series",
            patient_id=series.patient_id,
            provider_id=series.provider_id,
        ) as session:
            session.add(series)
            await session.flush()

            holidays = await self._holidays_for(series)
            generator = RecurrenceGenerator(
                availability=self.availability_factory(session),
                max_occurrences=self.settings.MAX_GENERATED_OCCURRENCES,
            )
            result = await generator.generate(series, holidays)

            occurrences = [self._build_occurrence(series, draft) for draft in result.occurrences]
            session.add_all(occurrences)
            await session.flush()

            series.occurrence_refs = [occ.id for occ in occurrences]
            if result.holiday_skips:
                series.add_exceptions(result.holiday_skips)
            await session.flush()

            response = SeriesWithOccurrences(
                series=SeriesRead.model_validate(series),
                occurrences=[OccurrenceRead.model_validate(occ) for occ in occurrences],
            )

        logger.info(
            f"Created recurring series id={series.id} with {len(occurrences)} occurrences "
            f"({len(result.holiday_skips)} holiday, {len(result.unavailable_skips)} unavailable skips)"
        )
        return response

    def _build_series(self, definition: SeriesCreate) -> RecurringSeries:
        if definition.occurrences and definition.occurrences > self.settings.MAX_SERIES_OCCURRENCES:
            raise ValidationError(
                f"occurrences must be at most {self.settings.MAX_SERIES_OCCURRENCES}"
            )

        window = definition.reschedule_window_days
        if window is None:
            window = self.settings.DEFAULT_RESCHEDULE_WINDOW_DAYS

        series = RecurringSeries(
            patient_id=definition.patient_id,
            provider_id=definition.provider_id,
            appointment_type_id=definition.appointment_type_id,
            frequency=definition.frequency.value,
            time_of_day=definition.time_of_day,
            day_of_week=definition.day_of_week,
            day_of_month=definition.day_of_month,
            use_same_weekday_of_month=definition.use_same_weekday_of_month,
            custom_interval_days=definition.custom_interval_days,
            start_date=definition.start_date,
            end_date=definition.end_date,
            occurrences=definition.occurrences,
            duration_minutes=definition.duration_minutes,
            notes=definition.notes,
            skip_holidays=definition.skip_holidays,
            auto_reschedule=definition.auto_reschedule,
            reschedule_window_days=window,
            jurisdiction=(definition.jurisdiction or self.settings.HOLIDAY_JURISDICTION).upper(),
            status=SeriesStatus.ACTIVE.value,
            exceptions=[],
            occurrence_refs=[],
        )

        rule = rule_for_series(series)
        if series.end_date is None:
            series.end_date = derive_end_date(rule, definition.occurrences)
        if series.end_date < series.start_date:
            raise ValidationError("end_date must be on or after start_date")
        return series

    async def _holidays_for(self, series: RecurringSeries) -> set[date_type]:
        if not series.skip_holidays:
            return set()
        end = series.end_date
        if series.auto_reschedule:
            try:
                end = add_days(end, series.reschedule_window_days)
            except OverflowError:
                end = date_type.max
        return await self.holiday_calendar.get_holidays_in_range(
            series.start_date,
            end,
            series.jurisdiction,
        )

    @staticmethod
    def _build_occurrence(series: RecurringSeries, draft: OccurrenceDraft) -> Occurrence:
        return Occurrence(
            series_id=series.id,
            position=draft.position,
            patient_id=series.patient_id,
            provider_id=series.provider_id,
            appointment_type_id=series.appointment_type_id,
            start_time=draft.start_time,
            end_time=draft.end_time,
            duration_minutes=series.duration_minutes,
            nominal_start_time=draft.nominal_start_time,
            status=OccurrenceStatus.SCHEDULED.value,
            notes=series.notes,
            is_modified_occurrence=False,
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_series_by_id(
        self,
        series_id: int,
        include_occurrences: bool = False,
    ) -> SeriesRead:
        async with self.session_factory() as session:
            series = await self._load_series(session, series_id)
            read = SeriesRead.model_validate(series)

            if include_occurrences:
                stmt = (
                    select(Occurrence)
                    .where(Occurrence.series_id == series_id)
                    .order_by(Occurrence.position)
                )
                result = await session.execute(stmt)
                read.expanded_occurrences = [
                    OccurrenceRead.model_validate(occ) for occ in result.scalars().all()
                ]

        return read

    async def get_series_for_patient(
        self,
        patient_id: str,
        filters: SeriesFilters | dict | None = None,
    ) -> List[SeriesRead]:
        """
        List a patient's series.

        `start_date`/`end_date` select series whose [start_date, end_date]
        window overlaps the requested range.
        """
        filters = _parse(SeriesFilters, filters or {})

        stmt = select(RecurringSeries).where(RecurringSeries.patient_id == patient_id)
        if filters.status is not None:
            stmt = stmt.where(RecurringSeries.status == filters.status.value)
        if filters.start_date is not None:
            stmt = stmt.where(RecurringSeries.end_date >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(RecurringSeries.start_date <= filters.end_date)

        if filters.order == "asc":
            stmt = stmt.order_by(RecurringSeries.start_date.asc(), RecurringSeries.id.asc())
        else:
            stmt = stmt.order_by(RecurringSeries.start_date.desc(), RecurringSeries.id.desc())

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [SeriesRead.model_validate(s) for s in result.scalars().all()]

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update_series(
        self,
        series_id: int,
        patch: SeriesPatch | dict,
    ) -> SeriesUpdateResult:
        """
        Apply `patch` with the propagation semantics of its mode.

        Returns the series and the occurrences touched by this call.
        """
        patch = self._parse_patch(patch)
        logger.info(f"Updating recurring series id={series_id} mode={patch.mode}")

        async with self._transaction("update_series", series_id=series_id, mode=patch.mode) as session:
            series = await self._load_series(session, series_id, lock=True)
            self._check_version(series, patch.expected_version)

            now = self.clock()
            active = await self._occurrences_excluding(session, series_id, _INACTIVE_FOR_UPDATE)

            if isinstance(patch, AllOccurrencesPatch):
                updated = self._apply_to_all(series, active, patch, now)
            elif isinstance(patch, ThisAndFuturePatch):
                updated = self._apply_to_this_and_future(series, active, patch)
            elif isinstance(patch, ThisOccurrencePatch):
                updated = await self._apply_to_one(session, series, active, patch)
            else:
                raise ValidationError(f"Unsupported update mode '{getattr(patch, 'mode', None)}'")

            # Always touch the series so its version guards this write.
            series.updated_at = now
            await session.flush()

            response = SeriesUpdateResult(
                mode=UpdateMode(patch.mode),
                series=SeriesRead.model_validate(series),
                updated_occurrences=[OccurrenceRead.model_validate(occ) for occ in updated],
            )

        logger.info(
            f"Updated recurring series id={series_id} mode={patch.mode} "
            f"occurrences_touched={len(response.updated_occurrences)}"
        )
        return response

    @staticmethod
    def _parse_patch(patch: SeriesPatch | dict) -> SeriesPatch:
        if isinstance(patch, (ThisOccurrencePatch, ThisAndFuturePatch, AllOccurrencesPatch)):
            return patch
        return _parse(SeriesPatchRequest, {"patch": patch}).patch

    @staticmethod
    def _cancel_occurrence(occurrence: Occurrence, reason: str) -> None:
        occurrence.status = OccurrenceStatus.CANCELLED.value
        occurrence.cancellation_reason = reason

    def _apply_to_all(
        self,
        series: RecurringSeries,
        active: List[Occurrence],
        patch: AllOccurrencesPatch,
        now: datetime,
    ) -> List[Occurrence]:
        cancelling = patch.status == SeriesStatus.CANCELLED

        if patch.notes is not None:
            series.notes = patch.notes
        if patch.status is not None:
            series.status = patch.status.value

        updated: List[Occurrence] = []
        for occ in active:
            if occ.start_time <= now:
                continue

            touched = False
            if patch.notes is not None:
                occ.notes = patch.notes
                touched = True
            if cancelling and occ.status == OccurrenceStatus.SCHEDULED.value:
                self._cancel_occurrence(occ, SERIES_CANCELLED_REASON)
                touched = True
            if touched:
                updated.append(occ)

        return updated

    @staticmethod
    def _resolve_future_target(active: List[Occurrence], patch: ThisAndFuturePatch) -> int:
        if not active:
            raise BadRequestError("Series has no active occurrences to update")

        if patch.start_date is not None:
            for index, occ in enumerate(active):
                if occ.start_time >= patch.start_date:
                    return index
            raise BadRequestError(
                f"No active occurrence starts on or after {patch.start_date.isoformat()}"
            )

        if patch.start_position is not None:
            for index, occ in enumerate(active):
                if occ.position == patch.start_position:
                    return index
            raise BadRequestError(f"No active occurrence at position {patch.start_position}")

        return 0

    def _apply_to_this_and_future(
        self,
        series: RecurringSeries,
        active: List[Occurrence],
        patch: ThisAndFuturePatch,
    ) -> List[Occurrence]:
        index = self._resolve_future_target(active, patch)
        targets = active[index:]
        updated: List[Occurrence] = []

        if patch.status == OccurrenceStatus.CANCELLED.value:
            cancelled_days = []
            for occ in targets:
                if occ.status != OccurrenceStatus.SCHEDULED.value:
                    continue
                self._cancel_occurrence(occ, SERIES_CANCELLED_REASON)
                cancelled_days.append(_nominal_day(occ))
                updated.append(occ)

            series.add_exceptions(cancelled_days)
            if index == 0:
                series.status = SeriesStatus.CANCELLED.value
            else:
                series.status = SeriesStatus.PARTIALLY_CANCELLED.value

        if patch.notes is not None:
            series.notes = patch.notes
            for occ in targets:
                occ.notes = patch.notes
                if occ not in updated:
                    updated.append(occ)

        return sorted(updated, key=lambda occ: occ.position or 0)

    async def _apply_to_one(
        self,
        session: AsyncSession,
        series: RecurringSeries,
        active: List[Occurrence],
        patch: ThisOccurrencePatch,
    ) -> List[Occurrence]:
        if patch.occurrence_date is not None:
            target = next(
                (occ for occ in active if occ.start_time.date() == patch.occurrence_date),
                None,
            )
        else:
            target = next((occ for occ in active if occ.position == patch.position), None)

        if target is None:
            raise NotFoundError("Target occurrence not found in series")

        if patch.start_time is not None:
            new_start = patch.start_time
            new_end = new_start + (target.end_time - target.start_time)
            checker = self.availability_factory(session)
            if not await checker.is_slot_free(
                target.provider_id,
                new_start,
                new_end,
                exclude_occurrence_id=target.id,
            ):
                raise ConflictError(
                    f"Provider {target.provider_id} is not available at {new_start.isoformat()}"
                )
            target.reschedule(new_start)

        if patch.notes is not None:
            target.notes = patch.notes

        if patch.status is not None:
            target.status = patch.status.value
            if patch.status == OccurrenceStatus.CANCELLED:
                target.cancellation_reason = patch.cancellation_reason or OCCURRENCE_CANCELLED_REASON
                series.add_exceptions([_nominal_day(target)])

        target.is_modified_occurrence = True
        return [target]

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    async def cancel_series(
        self,
        series_id: int,
        request: CancelRequest | dict | None = None,
    ) -> SeriesCancelResult:
        """
        Cancel a whole series (`all`) or everything from a point in time on
        (`future`). Occurrences already cancelled, completed or marked
        no-show are never touched.
        """
        request = _parse(CancelRequest, request or {})
        logger.info(f"Cancelling recurring series id={series_id} mode={request.mode.value}")

        async with self._transaction("cancel_series", series_id=series_id, mode=request.mode.value) as session:
            series = await self._load_series(session, series_id, lock=True)
            self._check_version(series, request.expected_version)

            now = self.clock()
            candidates = await self._occurrences_excluding(session, series_id, _INACTIVE_FOR_CANCEL)

            if request.mode == CancelMode.ALL:
                targets = [occ for occ in candidates if occ.start_time > now]
                series.status = SeriesStatus.CANCELLED.value
            else:
                cancel_from = request.from_date or now
                targets = [occ for occ in candidates if occ.start_time >= cancel_from]

                first_start = await session.scalar(
                    select(func.min(Occurrence.start_time)).where(Occurrence.series_id == series_id)
                )
                if first_start is None or cancel_from <= first_start:
                    series.status = SeriesStatus.CANCELLED.value
                else:
                    series.status = SeriesStatus.PARTIALLY_CANCELLED.value
                series.add_exceptions(_nominal_day(occ) for occ in targets)

            for occ in targets:
                self._cancel_occurrence(occ, request.reason)

            series.updated_at = now
            await session.flush()

            response = SeriesCancelResult(
                series_id=series.id,
                mode=request.mode,
                series_status=SeriesStatus(series.status),
                cancelled_count=len(targets),
            )

        logger.info(
            f"Cancelled recurring series id={series_id} mode={request.mode.value} "
            f"cancelled_count={response.cancelled_count}"
        )
        return response
