# app/api/routes/recurring_series.py
from datetime import date as date_type
from http import HTTPStatus
from typing import Literal

from fastapi import APIRouter, Depends, Path, Query

from app.api.dependencies.series_manager import get_series_manager
from app.schemas.recurring_series import (
    CancelRequest,
    SeriesCancelResult,
    SeriesCreate,
    SeriesFilters,
    SeriesPatchBody,
    SeriesRead,
    SeriesStatus,
    SeriesUpdateResult,
    SeriesWithOccurrences,
)
from app.services.series_manager import SeriesManager

router = APIRouter(prefix="/recurring-series", tags=["Recurring Series"])


@router.post(
    "",
    response_model=SeriesWithOccurrences,
    status_code=HTTPStatus.CREATED,
    summary="Create a recurring appointment series",
    description=(
        "Create a recurring series and generate all of its occurrences in a "
        "single transaction.\n\n"
        "Nominal dates falling on holidays (when `skip_holidays`) are skipped "
        "and recorded as series exceptions. Busy slots are skipped, or moved "
        "forward within `reschedule_window_days` when `auto_reschedule` is set."
    ),
    responses={
        400: {"description": "The recurrence definition is contradictory."},
        502: {"description": "The holiday calendar could not be queried."},
    },
)
async def create_series(
    payload: SeriesCreate,
    manager: SeriesManager = Depends(get_series_manager),
) -> SeriesWithOccurrences:
    return await manager.create_series(payload)


@router.get(
    "/patient/{patient_id}",
    response_model=list[SeriesRead],
    summary="List a patient's recurring series",
    description=(
        "Return the recurring series of a patient, newest first by default.\n\n"
        "`start_date`/`end_date` keep only series whose window overlaps the range."
    ),
)
async def list_patient_series(
    patient_id: str = Path(..., description="Patient identifier."),
    status: SeriesStatus | None = Query(default=None, description="Filter by series status."),
    start_date: date_type | None = Query(default=None, description="Series ending on/after this date."),
    end_date: date_type | None = Query(default=None, description="Series starting on/before this date."),
    order: Literal["asc", "desc"] = Query(default="desc", description="Sort by start date."),
    manager: SeriesManager = Depends(get_series_manager),
) -> list[SeriesRead]:
    filters = SeriesFilters(
        status=status,
        start_date=start_date,
        end_date=end_date,
        order=order,
    )
    return await manager.get_series_for_patient(patient_id, filters)


@router.get(
    "/{series_id}",
    response_model=SeriesRead,
    summary="Get a recurring series",
    responses={404: {"description": "Series not found."}},
)
async def get_series(
    series_id: int = Path(..., ge=1, description="Series identifier."),
    include_occurrences: bool = Query(
        default=True,
        description="Embed the series' occurrences ordered by position.",
    ),
    manager: SeriesManager = Depends(get_series_manager),
) -> SeriesRead:
    return await manager.get_series_by_id(series_id, include_occurrences=include_occurrences)


@router.patch(
    "/{series_id}",
    response_model=SeriesUpdateResult,
    summary="Update a recurring series",
    description=(
        "Apply a patch to a series. The `mode` field selects how far it propagates:\n\n"
        "- `this`: one occurrence (by `position` or `occurrence_date`), flagged as modified\n"
        "- `thisAndFuture`: the target occurrence and all later ones\n"
        "- `all`: the series template and every future occurrence\n\n"
        "Send `expected_version` to reject the patch if the series changed meanwhile."
    ),
    responses={
        400: {"description": "The update target cannot be resolved."},
        404: {"description": "Series or occurrence not found."},
        409: {"description": "Version mismatch or slot conflict."},
    },
)
async def update_series(
    payload: SeriesPatchBody,
    series_id: int = Path(..., ge=1),
    manager: SeriesManager = Depends(get_series_manager),
) -> SeriesUpdateResult:
    return await manager.update_series(series_id, payload)


@router.post(
    "/{series_id}/cancel",
    response_model=SeriesCancelResult,
    summary="Cancel a recurring series",
    description=(
        "`mode=all` cancels every future occurrence and the series itself. "
        "`mode=future` cancels occurrences starting at/after `from_date` "
        "(default now) and records their dates as series exceptions."
    ),
    responses={
        404: {"description": "Series not found."},
        409: {"description": "Version mismatch."},
    },
)
async def cancel_series(
    payload: CancelRequest,
    series_id: int = Path(..., ge=1),
    manager: SeriesManager = Depends(get_series_manager),
) -> SeriesCancelResult:
    return await manager.cancel_series(series_id, payload)
