"""
Komuchi API — Chat Context Builder Tests
=========================================

What we test:
    ✅ day context: only that UTC day, only transcribed recordings, oldest first
    ✅ block contents (title, mode, debrief, transcript)
    ✅ empty day
    ✅ recording context and ownership
    ✅ truncation
"""

from datetime import date, datetime, timezone

import pytest

from komuchi.exceptions import NotFoundError
from komuchi.services.context_service import TRUNCATION_MARKER, context_service, truncate_context

DAY = date(2026, 3, 14)


def at(hour: int, day: int = 14) -> datetime:
    return datetime(2026, 3, day, hour, 0, tzinfo=timezone.utc)


class TestDayContext:
    @pytest.mark.asyncio
    async def test_collects_transcribed_recordings_of_the_day(self, db_session, factory):
        user = await factory.user()
        late = await factory.recording(user, title="Evening call", created_at=at(18))
        early = await factory.recording(user, title="Morning standup", created_at=at(8))
        await factory.recording(user, title="Untranscribed", created_at=at(12))
        other_day = await factory.recording(user, title="Yesterday", created_at=at(10, day=13))
        await factory.transcript(late, "Late words")
        await factory.transcript(early, "Early words")
        await factory.debrief(early, "## Summary\n- Early summary")
        await factory.transcript(other_day, "Old words")

        ctx = await context_service.get_day_context(db_session, user.id, DAY)

        assert ctx.has_content is True
        assert ctx.recording_count == 2
        assert ctx.recording_ids == [early.id, late.id]
        assert ctx.context.index("Morning standup") < ctx.context.index("Evening call")
        assert "Debrief:\n## Summary\n- Early summary" in ctx.context
        assert "Transcript:\nEarly words" in ctx.context
        assert "(08:00 UTC, meeting)" in ctx.context
        assert "Old words" not in ctx.context
        assert "Untranscribed" not in ctx.context

    @pytest.mark.asyncio
    async def test_other_users_are_excluded(self, db_session, factory):
        me = await factory.user("me")
        them = await factory.user("them")
        theirs = await factory.recording(them, created_at=at(9))
        await factory.transcript(theirs, "Secret")

        ctx = await context_service.get_day_context(db_session, me.id, DAY)
        assert ctx.has_content is False

    @pytest.mark.asyncio
    async def test_empty_day(self, db_session, factory):
        user = await factory.user()
        ctx = await context_service.get_day_context(db_session, user.id, DAY)
        assert ctx.context == ""
        assert ctx.recording_count == 0
        assert ctx.has_content is False
        assert ctx.recording_ids == []


class TestRecordingContext:
    @pytest.mark.asyncio
    async def test_with_transcript(self, db_session, factory):
        user = await factory.user()
        recording = await factory.recording(user, title="Pitch")
        await factory.transcript(recording, "Pricing came up twice.")

        ctx = await context_service.get_recording_context(db_session, recording.id, user.id)
        assert ctx.has_content is True
        assert "### Pitch" in ctx.context
        assert "Pricing came up twice." in ctx.context

    @pytest.mark.asyncio
    async def test_without_transcript(self, db_session, factory):
        user = await factory.user()
        recording = await factory.recording(user)
        ctx = await context_service.get_recording_context(db_session, recording.id, user.id)
        assert ctx.has_content is False
        assert ctx.context == ""

    @pytest.mark.asyncio
    async def test_foreign_recording_is_not_found(self, db_session, factory):
        owner = await factory.user("owner")
        await factory.user("other")
        recording = await factory.recording(owner)
        with pytest.raises(NotFoundError):
            await context_service.get_recording_context(db_session, recording.id, "other")


class TestTruncate:
    def test_short_text_untouched(self):
        assert truncate_context("abc", 10) == "abc"

    def test_long_text_cut_with_marker(self):
        result = truncate_context("x" * 5000, 1000)
        assert len(result) == 1000
        assert result.endswith(TRUNCATION_MARKER)
