# app/api/errors.py
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    SchedulingError,
    ValidationError,
)
from app.services.holiday_calendar import HolidayCalendarError


def _status_for(exc: SchedulingError) -> HTTPStatus:
    if isinstance(exc, NotFoundError):
        return HTTPStatus.NOT_FOUND
    if isinstance(exc, ConflictError):
        return HTTPStatus.CONFLICT
    if isinstance(exc, BadRequestError):
        return HTTPStatus.BAD_REQUEST
    if isinstance(exc, HolidayCalendarError):
        return HTTPStatus.BAD_GATEWAY
    return HTTPStatus.INTERNAL_SERVER_ERROR


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    """
    Map engine errors onto HTTP responses using FastAPI's `detail` shape.
    """
    body: dict = {"detail": exc.message}
    if isinstance(exc, ValidationError) and exc.details:
        body["errors"] = exc.details
    if isinstance(exc, ConflictError) and exc.current_version is not None:
        body["current_version"] = exc.current_version
    return JSONResponse(status_code=_status_for(exc), content=jsonable_encoder(body))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SchedulingError, scheduling_error_handler)
