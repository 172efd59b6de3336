"""
Komuchi API — Recording, Job and Upload Schemas
================================================

Request bodies:
    CreateRecordingRequest   POST /api/recordings
    CompleteUploadRequest    POST /api/recordings/{id}/complete-upload

Response payloads (inside the {success, data} envelope):
    CreateRecordingData, RecordingResponse, RecordingDetailResponse,
    CompleteUploadData, JobResponse, UploadResult
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from komuchi.models.enums import RecordingMode
from komuchi.schemas.common import CamelModel


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════

class CreateRecordingRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    mode: RecordingMode
    mime_type: str = Field(..., min_length=1, max_length=100)
    original_filename: Optional[str] = Field(default=None, max_length=255)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("title must not be blank")
        return stripped

    @field_validator("mime_type")
    @classmethod
    def normalize_mime_type(cls, v: str) -> str:
        # "audio/webm;codecs=opus" → "audio/webm"
        return v.split(";", 1)[0].strip().lower()


class CompleteUploadRequest(CamelModel):
    file_size: int = Field(..., ge=1)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════

class CreateRecordingData(CamelModel):
    recording_id: str
    upload_url: str
    object_key: str
    expires_in: int


class CompleteUploadData(CamelModel):
    recording_id: str
    job_id: str
    status: str


class JobResponse(CamelModel):
    id: str
    recording_id: str
    type: str
    status: str
    error: Optional[str] = None
    attempts: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime


class TranscriptResponse(CamelModel):
    id: str
    text: str
    segments: List[Dict[str, Any]] = []
    language: Optional[str] = None
    created_at: datetime


class DebriefResponse(CamelModel):
    id: str
    markdown: str
    sections: List[Dict[str, Any]] = []
    created_at: datetime


class RecordingResponse(CamelModel):
    id: str
    user_id: str
    title: str
    mode: str
    status: str
    object_key: Optional[str] = None
    original_filename: Optional[str] = None
    mime_type: str
    file_size: Optional[int] = None
    duration_seconds: Optional[float] = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RecordingDetailResponse(RecordingResponse):
    """Built only from a Recording loaded with its transcript, debrief and jobs."""

    audio_url: Optional[str] = None
    transcript: Optional[TranscriptResponse] = None
    debrief: Optional[DebriefResponse] = None
    jobs: List[JobResponse] = []


class UploadResult(CamelModel):
    object_key: str
    size: int
