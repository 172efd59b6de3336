"""
Komuchi API — Chat Context Builder
===================================

What:  Collects transcripts and debriefs into the text block that grounds
       chat replies.
Scopes:
    day        every recording the user created on that UTC date that has
               a transcript, oldest first
    recording  a single recording owned by the user

Block format (one per recording):
    ### <title> (<HH:MM> UTC, <mode>)
    Debrief:
    <markdown>            (omitted when no debrief yet)
    Transcript:
    <text>

The joined context is cut at settings.context_max_chars.
"""

import datetime as dt
import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from komuchi.config import settings
from komuchi.exceptions import NotFoundError
from komuchi.models.recording import Recording, Transcript
from komuchi.schemas.chat import DayContext, RecordingContext

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n[context truncated]"


def day_bounds(day: dt.date) -> tuple[dt.datetime, dt.datetime]:
    start = dt.datetime.combine(day, dt.time.min, tzinfo=dt.timezone.utc)
    return start, start + dt.timedelta(days=1)


def format_recording_block(recording: Recording) -> str:
    created = recording.created_at.strftime("%H:%M") if recording.created_at else "--:--"
    parts = [f"### {recording.title} ({created} UTC, {recording.mode})"]
    if recording.debrief is not None and recording.debrief.markdown.strip():
        parts.append("Debrief:\n" + recording.debrief.markdown.strip())
    if recording.transcript is not None:
        parts.append("Transcript:\n" + recording.transcript.text.strip())
    return "\n".join(parts)


def truncate_context(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(limit - len(TRUNCATION_MARKER), 0)] + TRUNCATION_MARKER


class ContextService:
    async def get_day_context(self, db: AsyncSession, user_id: str, day: dt.date) -> DayContext:
        start, end = day_bounds(day)
        result = await db.execute(
            select(Recording)
            .join(Transcript, Transcript.recording_id == Recording.id)
            .where(
                Recording.user_id == user_id,
                Recording.created_at >= start,
                Recording.created_at < end,
            )
            .options(selectinload(Recording.transcript), selectinload(Recording.debrief))
            .execution_options(populate_existing=True)
            .order_by(Recording.created_at.asc())
        )
        recordings: List[Recording] = list(result.scalars().all())
        if not recordings:
            return DayContext(context="", recording_count=0, has_content=False, recording_ids=[])

        context = truncate_context(
            "\n\n".join(format_recording_block(r) for r in recordings),
            settings.context_max_chars,
        )
        logger.debug("Day context for %s on %s: %d recordings, %d chars", user_id, day, len(recordings), len(context))
        return DayContext(
            context=context,
            recording_count=len(recordings),
            has_content=True,
            recording_ids=[r.id for r in recordings],
        )

    async def get_recording_context(
        self, db: AsyncSession, recording_id: str, user_id: str
    ) -> RecordingContext:
        result = await db.execute(
            select(Recording)
            .where(Recording.id == recording_id, Recording.user_id == user_id)
            .options(selectinload(Recording.transcript), selectinload(Recording.debrief))
            .execution_options(populate_existing=True)
        )
        recording = result.scalar_one_or_none()
        if recording is None:
            raise NotFoundError(resource="recording", resource_id=recording_id)
        if recording.transcript is None:
            return RecordingContext(context="", has_content=False)
        return RecordingContext(
            context=truncate_context(format_recording_block(recording), settings.context_max_chars),
            has_content=True,
        )


context_service = ContextService()
