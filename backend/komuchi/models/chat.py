"""
Komuchi API — Chat Session and Message Models
==============================================

A chat session is scoped either to a calendar day (session_date set,
recording_id NULL) or to one recording (recording_id set, session_date
NULL). The two unique constraints make get-or-create idempotent per scope;
NULLs never collide in a unique index, so the two kinds coexist.
"""

from datetime import date, datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from komuchi.database import Base
from komuchi.models.base import created_at_column, id_column, updated_at_column

if TYPE_CHECKING:
    from komuchi.models.recording import Recording
    from komuchi.models.user import User


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id: Mapped[str] = id_column()
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    session_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    recording_id: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("recordings.id", ondelete="CASCADE"), nullable=True
    )
    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    user: Mapped["User"] = relationship(back_populates="chat_sessions")
    recording: Mapped[Optional["Recording"]] = relationship(back_populates="chat_sessions")
    messages: Mapped[List["ChatMessage"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ChatMessage.created_at",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "session_date", name="uq_chat_sessions_user_date"),
        UniqueConstraint("user_id", "recording_id", name="uq_chat_sessions_user_recording"),
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[str] = id_column()
    session_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = created_at_column()

    session: Mapped["ChatSession"] = relationship(back_populates="messages")

    __table_args__ = (
        Index("ix_chat_messages_session_created", "session_id", "created_at"),
    )
