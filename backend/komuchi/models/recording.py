"""
Komuchi API — Recording, Transcript and Debrief Models
=======================================================

What:  `recordings` plus its one-to-one products `transcripts` and `debriefs`.

Recording lifecycle (status):
    pending ──complete-upload──▶ uploaded ──job created──▶ processing
    processing ──debrief saved──▶ complete
    processing ──any job fails──▶ failed ──retry──▶ processing

    object_key is assigned at creation so that the signed upload URL can be
    handed out immediately; the object itself exists only after the client
    PUTs the bytes.

Query patterns:
    - list by user, newest first        → ix_recordings_user_created
    - list by user filtered on status   → ix_recordings_user_status
    - day context: user + created_at range
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON, BigInteger, Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from komuchi.database import Base
from komuchi.models.base import created_at_column, id_column, updated_at_column
from komuchi.models.enums import RecordingMode, RecordingStatus

if TYPE_CHECKING:
    from komuchi.models.chat import ChatSession
    from komuchi.models.job import Job
    from komuchi.models.user import User


class Recording(Base):
    __tablename__ = "recordings"

    id: Mapped[str] = id_column()
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    mode: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RecordingMode.GENERAL.value
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RecordingStatus.PENDING.value
    )

    object_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    original_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    duration_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    user: Mapped["User"] = relationship(back_populates="recordings")
    transcript: Mapped[Optional["Transcript"]] = relationship(
        back_populates="recording",
        cascade="all, delete-orphan",
        uselist=False,
    )
    debrief: Mapped[Optional["Debrief"]] = relationship(
        back_populates="recording",
        cascade="all, delete-orphan",
        uselist=False,
    )
    jobs: Mapped[List["Job"]] = relationship(
        back_populates="recording",
        cascade="all, delete-orphan",
        order_by="Job.created_at",
    )
    chat_sessions: Mapped[List["ChatSession"]] = relationship(
        back_populates="recording",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_recordings_user_created", "user_id", "created_at"),
        Index("ix_recordings_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Recording(id={self.id}, status='{self.status}', mode='{self.mode}')>"


class Transcript(Base):
    """
    Output of a TRANSCRIBE job.

    segments: [{"start": float, "end": float, "text": str, "speaker": str | None}]
    """

    __tablename__ = "transcripts"

    id: Mapped[str] = id_column()
    recording_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("recordings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    segments: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    language: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = created_at_column()

    recording: Mapped["Recording"] = relationship(back_populates="transcript")


class Debrief(Base):
    """
    Output of a DEBRIEF job.

    sections: [{"title": str, "content": str, "order": int}], parsed from the
    `## ` headings of the markdown.
    """

    __tablename__ = "debriefs"

    id: Mapped[str] = id_column()
    recording_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("recordings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    markdown: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sections: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = created_at_column()

    recording: Mapped["Recording"] = relationship(back_populates="debrief")
