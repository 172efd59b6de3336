"""
Komuchi API — Chat Service
===========================

What:  Day- and recording-scoped chat sessions, AI openers and replies.

Opener flow (POST /api/chat/opener):
    session has an assistant message? ──yes──▶ return it (alreadyHasOpener=true)
            │no
            ▼
    build context ──has content──▶ chat provider writes an opener
            │no content
            ▼
    fixed invitation to record something
            ▼
    store as assistant message (alreadyHasOpener=false)

Reply flow (POST /api/chat/message):
    store user message → system prompt from context + last N messages
    → chat provider → store assistant message

Sessions are get-or-create per (user, date) or (user, recording). Two
concurrent first requests can both try to insert; the unique constraints
reject the second, which rolls back and re-reads the winner's row.
"""

import datetime as dt
import logging
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from komuchi.config import settings
from komuchi.exceptions import LLMServiceError, NotFoundError, ValidationError
from komuchi.models.chat import ChatMessage, ChatSession
from komuchi.models.enums import ChatRole
from komuchi.schemas.ai import ChatTurn
from komuchi.services import prompts
from komuchi.services.ai_providers import get_chat_service
from komuchi.services.context_service import context_service
from komuchi.services.recordings_service import recordings_service

logger = logging.getLogger(__name__)


def parse_session_date(value: Optional[str | dt.date]) -> dt.date:
    """YYYY-MM-DD string (or date) → date; None means today in UTC."""
    if value is None or value == "":
        return dt.datetime.now(dt.timezone.utc).date()
    if isinstance(value, dt.date):
        return value
    try:
        return dt.date.fromisoformat(value)
    except ValueError:
        raise ValidationError(message=f"Invalid date '{value}'. Expected YYYY-MM-DD.", field="date")


class ChatService:
    # ── Sessions ──────────────────────────────────────────────────────────
    async def get_or_create_chat_session(
        self, db: AsyncSession, user_id: str, session_date: str | dt.date | None
    ) -> ChatSession:
        day = parse_session_date(session_date)
        query = select(ChatSession).where(
            ChatSession.user_id == user_id,
            ChatSession.session_date == day,
        )
        return await self._get_or_create(
            db, query, ChatSession(user_id=user_id, session_date=day, recording_id=None)
        )

    async def get_or_create_recording_chat_session(
        self, db: AsyncSession, user_id: str, recording_id: str
    ) -> ChatSession:
        await recordings_service.require_recording(db, recording_id, user_id)
        query = select(ChatSession).where(
            ChatSession.user_id == user_id,
            ChatSession.recording_id == recording_id,
        )
        return await self._get_or_create(
            db, query, ChatSession(user_id=user_id, session_date=None, recording_id=recording_id)
        )

    async def resolve_session(
        self,
        db: AsyncSession,
        user_id: str,
        session_date: str | dt.date | None = None,
        recording_id: Optional[str] = None,
    ) -> ChatSession:
        if session_date is not None and recording_id:
            raise ValidationError(message="Provide either date or recordingId, not both")
        if recording_id:
            return await self.get_or_create_recording_chat_session(db, user_id, recording_id)
        return await self.get_or_create_chat_session(db, user_id, session_date)

    async def _get_or_create(self, db: AsyncSession, query, candidate: ChatSession) -> ChatSession:
        existing = (await db.execute(query)).scalar_one_or_none()
        if existing is not None:
            return existing
        db.add(candidate)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            existing = (await db.execute(query)).scalar_one_or_none()
            if existing is None:
                raise
            return existing
        logger.info(
            "Chat session %s created (user=%s, date=%s, recording=%s)",
            candidate.id, candidate.user_id, candidate.session_date, candidate.recording_id,
        )
        return candidate

    # ── Messages ──────────────────────────────────────────────────────────
    async def add_chat_message(
        self, db: AsyncSession, session_id: str, role: ChatRole | str, content: str
    ) -> ChatMessage:
        try:
            role_value = ChatRole(role).value
        except ValueError:
            raise ValidationError(message=f"Invalid role '{role}'", field="role")
        if not content or not content.strip():
            raise ValidationError(message="Message content must not be empty", field="content")

        session = await db.get(ChatSession, session_id)
        if session is None:
            raise NotFoundError(resource="chat session", resource_id=session_id)

        now = dt.datetime.now(dt.timezone.utc)
        message = ChatMessage(session_id=session_id, role=role_value, content=content.strip(), created_at=now)
        db.add(message)
        session.updated_at = now
        await db.flush()
        return message

    async def get_session_messages(
        self, db: AsyncSession, session_id: str, limit: Optional[int] = None
    ) -> List[ChatMessage]:
        """Oldest first. With `limit`, the most recent `limit` messages (still oldest first)."""
        query = select(ChatMessage).where(ChatMessage.session_id == session_id)
        if limit:
            query = query.order_by(ChatMessage.created_at.desc()).limit(limit)
            rows = list((await db.execute(query)).scalars().all())
            return list(reversed(rows))
        query = query.order_by(ChatMessage.created_at.asc())
        return list((await db.execute(query)).scalars().all())

    async def get_first_assistant_message(self, db: AsyncSession, session_id: str) -> Optional[ChatMessage]:
        result = await db.execute(
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id, ChatMessage.role == ChatRole.ASSISTANT.value)
            .order_by(ChatMessage.created_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ── AI turns ──────────────────────────────────────────────────────────
    async def _context_for(self, db: AsyncSession, session: ChatSession) -> Tuple[str, bool]:
        if session.recording_id:
            ctx = await context_service.get_recording_context(db, session.recording_id, session.user_id)
            return ctx.context, ctx.has_content
        ctx = await context_service.get_day_context(db, session.user_id, session.session_date)
        return ctx.context, ctx.has_content

    async def generate_opener(
        self,
        db: AsyncSession,
        user_id: str,
        session_date: str | dt.date | None = None,
        recording_id: Optional[str] = None,
    ) -> Tuple[ChatSession, ChatMessage, bool]:
        """Returns (session, opener message, already_had_opener)."""
        session = await self.resolve_session(db, user_id, session_date, recording_id)

        existing = await self.get_first_assistant_message(db, session.id)
        if existing is not None:
            return session, existing, True

        context, has_content = await self._context_for(db, session)
        if has_content:
            content = await get_chat_service().chat(
                prompts.build_system_prompt(context),
                [ChatTurn(role=ChatRole.USER.value, content=prompts.OPENER_INSTRUCTION)],
            )
        else:
            content = prompts.NO_CONTENT_OPENER

        message = await self.add_chat_message(db, session.id, ChatRole.ASSISTANT, content or prompts.NO_CONTENT_OPENER)
        logger.info("Opener generated for session %s (context=%s)", session.id, has_content)
        return session, message, False

    async def send_message(
        self,
        db: AsyncSession,
        user_id: str,
        content: str,
        session_date: str | dt.date | None = None,
        recording_id: Optional[str] = None,
    ) -> Tuple[ChatSession, ChatMessage, ChatMessage]:
        session = await self.resolve_session(db, user_id, session_date, recording_id)
        user_message = await self.add_chat_message(db, session.id, ChatRole.USER, content)

        context, _ = await self._context_for(db, session)
        history = await self.get_session_messages(db, session.id, limit=settings.chat_history_limit)
        reply = await get_chat_service().chat(
            prompts.build_system_prompt(context),
            [ChatTurn(role=m.role, content=m.content) for m in history],
        )
        if not reply or not reply.strip():
            logger.warning("Chat provider returned an empty reply for session %s", session.id)
            raise LLMServiceError(message="AI chat returned an empty reply", context={"sessionId": session.id})
        assistant_message = await self.add_chat_message(db, session.id, ChatRole.ASSISTANT, reply)
        return session, user_message, assistant_message


chat_service = ChatService()
