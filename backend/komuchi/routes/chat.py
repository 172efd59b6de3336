"""
Komuchi API — Chat Routes
==========================

    GET  /api/chat/session?date|recordingId     session + messages (get-or-create)
    POST /api/chat/opener   {date? | recordingId?}
    POST /api/chat/message  {content, date? | recordingId?}

Scope defaults to today's (UTC) day session. Passing both a date and a
recordingId is a validation error.
"""

import datetime as dt
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from komuchi.auth import get_current_user
from komuchi.database import get_db_session
from komuchi.models.chat import ChatSession
from komuchi.models.user import User
from komuchi.schemas.chat import (
    ChatMessageResponse,
    ChatSessionResponse,
    OpenerRequest,
    OpenerResponse,
    SendMessageRequest,
    SendMessageResponse,
)
from komuchi.schemas.common import error_responses
from komuchi.services.chat_service import chat_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Chat"])


def _session_response(session: ChatSession, messages) -> ChatSessionResponse:
    return ChatSessionResponse(
        session_id=session.id,
        session_date=session.session_date,
        recording_id=session.recording_id,
        messages=[ChatMessageResponse.model_validate(m) for m in messages],
    )


@router.get(
    "/session",
    response_model=ChatSessionResponse,
    responses=error_responses(400, 401, 404),
    summary="Get (or start) the chat session for a day or a recording",
)
async def get_session(
    date: Optional[dt.date] = Query(default=None, description="YYYY-MM-DD; defaults to today (UTC)"),
    recording_id: Optional[str] = Query(default=None, alias="recordingId"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ChatSessionResponse:
    session = await chat_service.resolve_session(db, user.id, date, recording_id)
    messages = await chat_service.get_session_messages(db, session.id)
    return _session_response(session, messages)


@router.post(
    "/opener",
    response_model=OpenerResponse,
    responses=error_responses(400, 401, 404, 503),
    summary="Get the assistant's opening message, generating it on first call",
)
async def create_opener(
    body: OpenerRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> OpenerResponse:
    _, message, already = await chat_service.generate_opener(
        db, user.id, session_date=body.date, recording_id=body.recording_id
    )
    return OpenerResponse(
        already_has_opener=already,
        message=ChatMessageResponse.model_validate(message),
    )


@router.post(
    "/message",
    response_model=SendMessageResponse,
    responses=error_responses(400, 401, 404, 503),
    summary="Send a message and get the assistant's reply",
)
async def send_message(
    body: SendMessageRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SendMessageResponse:
    session, user_message, assistant_message = await chat_service.send_message(
        db, user.id, body.content, session_date=body.date, recording_id=body.recording_id
    )
    return SendMessageResponse(
        session_id=session.id,
        user_message=ChatMessageResponse.model_validate(user_message),
        assistant_message=ChatMessageResponse.model_validate(assistant_message),
    )
