"""Initial schema: users, recordings, transcripts, debriefs, jobs, chat

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

Ids are String(64) so that caller-chosen user ids and generated UUID4
strings share one column type. JSON columns (segments, sections,
voice_embedding) work on PostgreSQL and SQLite alike.

Rollback: downgrade() drops every table (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True) -> list:
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False))
    return cols


def _recording_fk(unique: bool = False) -> sa.Column:
    return sa.Column(
        "recording_id",
        sa.String(64),
        sa.ForeignKey("recordings.id", ondelete="CASCADE"),
        nullable=False,
        unique=unique,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(320), nullable=True, unique=True),
        sa.Column("has_voice_profile", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("voice_embedding", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_created_at", "users", ["created_at"])

    op.create_table(
        "recordings",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("mode", sa.String(20), nullable=False, server_default="general"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("object_key", sa.String(512), nullable=True),
        sa.Column("original_filename", sa.String(255), nullable=True),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("duration_seconds", sa.Float(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_recordings_created_at", "recordings", ["created_at"])
    # "my recordings, newest first" and "my failed recordings"
    op.create_index("ix_recordings_user_created", "recordings", ["user_id", "created_at"])
    op.create_index("ix_recordings_user_status", "recordings", ["user_id", "status"])

    op.create_table(
        "transcripts",
        sa.Column("id", sa.String(64), primary_key=True),
        _recording_fk(unique=True),
        sa.Column("text", sa.Text(), nullable=False, server_default=""),
        sa.Column("segments", sa.JSON(), nullable=False),
        sa.Column("language", sa.String(16), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_transcripts_created_at", "transcripts", ["created_at"])

    op.create_table(
        "debriefs",
        sa.Column("id", sa.String(64), primary_key=True),
        _recording_fk(unique=True),
        sa.Column("markdown", sa.Text(), nullable=False, server_default=""),
        sa.Column("sections", sa.JSON(), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index("ix_debriefs_created_at", "debriefs", ["created_at"])

    op.create_table(
        "jobs",
        sa.Column("id", sa.String(64), primary_key=True),
        _recording_fk(),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_jobs_created_at", "jobs", ["created_at"])
    # has_active_job lookups
    op.create_index("ix_jobs_recording_type_status", "jobs", ["recording_id", "type", "status"])

    op.create_table(
        "chat_sessions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("session_date", sa.Date(), nullable=True),
        sa.Column(
            "recording_id",
            sa.String(64),
            sa.ForeignKey("recordings.id", ondelete="CASCADE"),
            nullable=True,
        ),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "session_date", name="uq_chat_sessions_user_date"),
        sa.UniqueConstraint("user_id", "recording_id", name="uq_chat_sessions_user_recording"),
    )
    op.create_index("ix_chat_sessions_created_at", "chat_sessions", ["created_at"])

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "session_id",
            sa.String(64),
            sa.ForeignKey("chat_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index("ix_chat_messages_created_at", "chat_messages", ["created_at"])
    op.create_index("ix_chat_messages_session_created", "chat_messages", ["session_id", "created_at"])


def downgrade() -> None:
    for table in ("chat_messages", "chat_sessions", "jobs", "debriefs", "transcripts", "recordings", "users"):
        op.drop_table(table)
