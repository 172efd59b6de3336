"""
Komuchi API — Job Model
========================

What:  The `jobs` table: one row per unit of background work on a recording.

Lifecycle:
    pending ──worker picks up──▶ running ──▶ complete | failed

    started_at is stamped on every transition to running (attempts is
    incremented at the same time); completed_at on complete or failed.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from komuchi.database import Base
from komuchi.models.base import created_at_column, id_column
from komuchi.models.enums import JobStatus

if TYPE_CHECKING:
    from komuchi.models.recording import Recording


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[str] = id_column()
    recording_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("recordings.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=JobStatus.PENDING.value)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = created_at_column()

    recording: Mapped["Recording"] = relationship(back_populates="jobs")

    __table_args__ = (
        Index("ix_jobs_recording_type_status", "recording_id", "type", "status"),
    )

    def __repr__(self) -> str:
        return f"<Job(id={self.id}, type='{self.type}', status='{self.status}')>"
