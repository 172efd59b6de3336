"""Chat session, opener and message payloads."""

import datetime as dt
from typing import List, Optional

from pydantic import Field, model_validator

from komuchi.schemas.common import CamelModel


class ChatScope(CamelModel):
    """A chat is scoped to a day or to a recording, never both."""

    date: Optional[dt.date] = None
    recording_id: Optional[str] = None

    @model_validator(mode="after")
    def check_single_scope(self) -> "ChatScope":
        if self.date is not None and self.recording_id is not None:
            raise ValueError("Provide either date or recordingId, not both")
        return self


class OpenerRequest(ChatScope):
    pass


class SendMessageRequest(ChatScope):
    content: str = Field(..., min_length=1, max_length=8000)


class ChatMessageResponse(CamelModel):
    id: str
    role: str
    content: str
    created_at: dt.datetime


class ChatSessionResponse(CamelModel):
    session_id: str
    session_date: Optional[dt.date] = None
    recording_id: Optional[str] = None
    messages: List[ChatMessageResponse] = []


class OpenerResponse(CamelModel):
    already_has_opener: bool
    message: ChatMessageResponse


class SendMessageResponse(CamelModel):
    session_id: str
    user_message: ChatMessageResponse
    assistant_message: ChatMessageResponse


class DayContext(CamelModel):
    context: str
    recording_count: int
    has_content: bool
    recording_ids: List[str] = []


class RecordingContext(CamelModel):
    context: str
    has_content: bool
