# app/db/session.py
import os

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.core.config import get_settings
from app.db.base import Base

# Registers the ORM models on Base.metadata
from app.models import occurrence, recurring_series  # noqa: E402,F401

settings = get_settings()

# Detect if we're running under pytest
IS_TEST = "PYTEST_CURRENT_TEST" in os.environ

# ---------------------------------------------------------------------------
# Main application engine + session factory
# ---------------------------------------------------------------------------
engine = create_async_engine(
    settings.DB_URL,
    echo=False,
    # Tests build their own engines; NullPool avoids sharing connections
    # across event loops if the main one is touched.
    poolclass=NullPool if IS_TEST else None,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
    class_=AsyncSession,
)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Build a session factory configured like the application's default one.

    Every scheduling operation opens exactly one session from this factory
    and runs all of its reads and writes in a single transaction.
    """
    return async_sessionmaker(
        bind=bind,
        autoflush=False,
        expire_on_commit=False,
        class_=AsyncSession,
    )


async def init_db_for_startup(bind: AsyncEngine | None = None) -> None:
    """
    Create missing tables on application startup.

    Typically you'd eventually replace this with Alembic migrations.
    """
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def reset_db(bind: AsyncEngine) -> None:
    """
    TEST-ONLY: drop and recreate every table on `bind`.
    """
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
