# app/api/dependencies/series_manager.py
from functools import lru_cache

from app.db.session import AsyncSessionLocal
from app.services.holiday_calendar import get_holiday_calendar
from app.services.series_manager import SeriesManager


@lru_cache()
def get_series_manager() -> SeriesManager:
    """
    FastAPI dependency returning the application's SeriesManager.

    The manager is stateless apart from its collaborators; each call it
    serves opens and closes its own session. Tests override this dependency
    to inject an in-memory database and fake collaborators.
    """
    return SeriesManager(
        session_factory=AsyncSessionLocal,
        holiday_calendar=get_holiday_calendar(),
    )
