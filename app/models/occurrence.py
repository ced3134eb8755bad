# app/models/occurrence.py
from datetime import datetime, timedelta

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from app.db.base import Base


class Occurrence(Base):
    """
    A single concrete appointment instance.

    Occurrences generated from a recurring series carry the owning
    `series_id` and a dense 1-based `position`; standalone appointments
    leave both empty.
    """

    __tablename__ = "appointment_occurrences"

    id = Column(Integer, primary_key=True, index=True)

    series_id = Column(
        Integer,
        ForeignKey("recurring_series.id"),
        nullable=True,
        index=True,
    )
    position = Column(Integer, nullable=True)

    patient_id = Column(String(64), nullable=False, index=True)
    provider_id = Column(String(64), nullable=False)
    appointment_type_id = Column(String(64), nullable=False)

    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)

    # Pattern time before any auto-reschedule shift applied at generation.
    nominal_start_time = Column(DateTime, nullable=True)

    status = Column(String(32), nullable=False, default="scheduled")
    notes = Column(Text, nullable=True)
    is_modified_occurrence = Column(Boolean, nullable=False, default=False)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_appointment_occurrences_provider_start", "provider_id", "start_time"),
        Index("ix_appointment_occurrences_series_position", "series_id", "position"),
    )

    def reschedule(self, start_time: datetime) -> None:
        self.start_time = start_time
        self.end_time = start_time + timedelta(minutes=self.duration_minutes)

    def __repr__(self) -> str:
        return (
            f"<Occurrence id={self.id} series_id={self.series_id} "
            f"position={self.position} start={self.start_time} status={self.status}>"
        )