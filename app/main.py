# app/main.py
import logging

from fastapi import FastAPI

from app.api.errors import register_exception_handlers
from app.api.routes import health, recurring_series
from app.core.config import get_settings
from app.db.session import init_db_for_startup


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(create_schema: bool = True) -> FastAPI:
    """
    Application factory for the Recurring Scheduler service.

    `create_schema=False` skips table creation on startup (tests provide
    their own database).
    """
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Recurring appointment scheduling engine: expands recurrence rules into\n"
            "bookable occurrences, skipping holidays and busy slots, and keeps series\n"
            "consistent through per-occurrence, this-and-future and whole-series edits."
        ),
        version="0.1.0",
    )

    # Routers
    app.include_router(health.router)
    app.include_router(recurring_series.router)

    register_exception_handlers(app)

    if create_schema:
        @app.on_event("startup")
        async def on_startup() -> None:  # pragma: no cover
            await init_db_for_startup()

    return app


app = create_app()
