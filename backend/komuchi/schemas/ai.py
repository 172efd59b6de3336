"""Structured results returned by the AI providers."""

from typing import List, Optional

from pydantic import BaseModel, Field


class TranscriptSegment(BaseModel):
    start: float = 0.0
    end: float = 0.0
    text: str
    speaker: Optional[str] = None


class TranscriptionResult(BaseModel):
    text: str
    segments: List[TranscriptSegment] = Field(default_factory=list)
    language: Optional[str] = None
    duration: Optional[float] = None


class DebriefSection(BaseModel):
    title: str
    content: str
    order: int


class DebriefResult(BaseModel):
    markdown: str
    sections: List[DebriefSection] = Field(default_factory=list)


class ChatTurn(BaseModel):
    role: str
    content: str
