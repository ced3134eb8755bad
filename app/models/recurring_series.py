# app/models/recurring_series.py
from datetime import date
from typing import Iterable

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    String,
    Text,
    Time,
    func,
)

from app.db.base import Base


class RecurringSeries(Base):
    """
    Recurrence definition for a patient/provider pair.

    The series references its materialized occurrences through
    `occurrence_refs` (ordered by position) and keeps the calendar dates
    excluded from its pattern in `exceptions`. Both JSON columns are always
    reassigned, never mutated in place, so the ORM sees the change.
    """

    __tablename__ = "recurring_series"

    id = Column(Integer, primary_key=True, index=True)

    patient_id = Column(String(64), nullable=False, index=True)
    provider_id = Column(String(64), nullable=False, index=True)
    appointment_type_id = Column(String(64), nullable=False)

    frequency = Column(String(16), nullable=False)
    time_of_day = Column(Time, nullable=False)
    day_of_week = Column(Integer, nullable=True)
    day_of_month = Column(Integer, nullable=True)
    use_same_weekday_of_month = Column(Boolean, nullable=False, default=False)
    custom_interval_days = Column(Integer, nullable=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    occurrences = Column(Integer, nullable=True)
    duration_minutes = Column(Integer, nullable=False)

    skip_holidays = Column(Boolean, nullable=False, default=True)
    auto_reschedule = Column(Boolean, nullable=False, default=False)
    reschedule_window_days = Column(Integer, nullable=False, default=3)
    jurisdiction = Column(String(8), nullable=False, default="US")

    status = Column(String(32), nullable=False, default="active", index=True)
    notes = Column(Text, nullable=True)
    exceptions = Column(JSON, nullable=False, default=list)
    occurrence_refs = Column(JSON, nullable=False, default=list)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __mapper_args__ = {"version_id_col": version}

    def exception_dates(self) -> set[date]:
        return {date.fromisoformat(value) for value in (self.exceptions or [])}

    def add_exceptions(self, dates: Iterable[date]) -> None:
        """
        Merge `dates` into the exception list, keeping it sorted and free of
        duplicate calendar dates.
        """
        merged = self.exception_dates() | set(dates)
        self.exceptions = [d.isoformat() for d in sorted(merged)]

    def __repr__(self) -> str:
        return (
            f"<RecurringSeries id={self.id} patient_id={self.patient_id} "
            f"frequency={self.frequency} status={self.status}>"
        )
