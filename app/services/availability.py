# app/services/availability.py
from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.occurrence import Occurrence
from app.schemas.recurring_series import OccurrenceStatus


class AvailabilityChecker(Protocol):
    """
    Answers whether a provider is free for a half-open interval [start, end).
    """

    async def is_slot_free(
        self,
        provider_id: str,
        start: datetime,
        end: datetime,
        exclude_occurrence_id: Optional[int] = None,
    ) -> bool:
        ...


class SqlAvailabilityChecker:
    """
    Availability backed by the occurrences table.

    A slot is taken when another `scheduled` occurrence of the same provider
    overlaps it. Queries run through the caller's session, so they see the
    rows already written by the surrounding transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def is_slot_free(
        self,
        provider_id: str,
        start: datetime,
        end: datetime,
        exclude_occurrence_id: Optional[int] = None,
    ) -> bool:
        stmt = select(func.count(Occurrence.id)).where(
            Occurrence.provider_id == provider_id,
            Occurrence.status == OccurrenceStatus.SCHEDULED.value,
            Occurrence.start_time < end,
            Occurrence.end_time > start,
        )
        if exclude_occurrence_id is not None:
            stmt = stmt.where(Occurrence.id != exclude_occurrence_id)

        result = await self.session.execute(stmt)
        return result.scalar_one() == 0
