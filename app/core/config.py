# app/core/config.py
from functools import lru_cache

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global application configuration.

    Values are loaded from environment variables at runtime.

    These settings drive:
    - DB connection
    - Holiday calendar source and default jurisdiction
    - Generation limits for recurring series
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Recurring Scheduler"
    APP_ENV: str = Field("local", description="Environment name: local/dev/stage/prod")

    DB_URL: str = Field(
        "sqlite+aiosqlite:///./recurring_scheduler.db",
        description="SQLAlchemy-compatible async database URL",
    )

    LOG_LEVEL: str = Field("INFO", description="Root logging level.")

    # --- Holiday calendar ---
    HOLIDAY_JURISDICTION: str = Field(
        default="US",
        description="Jurisdiction (ISO country code) used for holiday lookups.",
    )
    HOLIDAY_API_BASE_URL: AnyHttpUrl | None = Field(
        default=None,
        description=(
            "Base URL of a public-holiday REST API exposing "
            "/PublicHolidays/{year}/{country}. When unset, the static "
            "in-process calendar is used."
        ),
    )
    HOLIDAY_API_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="HTTP timeout applied to holiday API calls.",
    )

    # --- Generation limits ---
    MAX_GENERATED_OCCURRENCES: int = Field(
        default=100,
        description="Hard cap on materialized occurrences when no count is given.",
    )
    MAX_SERIES_OCCURRENCES: int = Field(
        default=52,
        description="Upper bound accepted for an explicit occurrences count.",
    )
    DEFAULT_RESCHEDULE_WINDOW_DAYS: int = Field(
        default=3,
        description="Days scanned forward when auto-rescheduling a busy slot.",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Using LRU cache ensures settings are read and validated only once,
    while still being easily importable across the app.
    """
    return Settings()
