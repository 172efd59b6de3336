"""
Komuchi API — User Model
=========================

What:  The `users` table. A user is identified by the X-User-ID header; the
       id is caller-chosen and the row is provisioned on first sight.
Voice profile:
    has_voice_profile flags whether a speaker embedding is enrolled.
    voice_embedding holds the float vector returned by the diarization
    service (JSON, so it works on both PostgreSQL and SQLite).
"""

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from komuchi.database import Base
from komuchi.models.base import created_at_column, id_column, updated_at_column

if TYPE_CHECKING:
    from komuchi.models.chat import ChatSession
    from komuchi.models.recording import Recording


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = id_column()
    email: Mapped[Optional[str]] = mapped_column(String(320), unique=True, nullable=True)

    has_voice_profile: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    voice_embedding: Mapped[Optional[List[float]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    recordings: Mapped[List["Recording"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
    )
    chat_sessions: Mapped[List["ChatSession"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r})>"
