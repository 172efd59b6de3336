"""
Komuchi API — Voice Profile Routes
===================================

    GET    /api/voice-profile/status   {hasVoiceProfile}
    POST   /api/voice-profile          multipart `audio` → enrol speaker embedding
    DELETE /api/voice-profile          forget the embedding

Enrollment sends the clip to the diarization service and stores only the
returned embedding; the audio itself is not kept.
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from komuchi.auth import get_current_user
from komuchi.config import settings
from komuchi.database import get_db_session
from komuchi.exceptions import PayloadTooLargeError, ValidationError
from komuchi.models.user import User
from komuchi.schemas.common import MessageResponse, error_responses
from komuchi.schemas.voice_profile import VoiceProfileEnrolled, VoiceProfileStatus
from komuchi.services.diarization_client import diarization_client
from komuchi.services.recordings_service import validate_mime_type
from komuchi.services.users_service import users_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/voice-profile", tags=["Voice Profile"])


@router.get(
    "/status",
    response_model=VoiceProfileStatus,
    responses=error_responses(401),
    summary="Whether the caller has an enrolled voice profile",
)
async def get_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> VoiceProfileStatus:
    has_profile = await users_service.get_voice_profile_status(db, user.id)
    return VoiceProfileStatus(has_voice_profile=has_profile)


@router.post(
    "",
    response_model=VoiceProfileEnrolled,
    responses=error_responses(400, 401, 413, 503),
    summary="Enrol a voice profile from an audio sample",
)
async def enroll(
    audio: UploadFile = File(..., description="A short clip of the user speaking"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> VoiceProfileEnrolled:
    mime_type = validate_mime_type(audio.content_type or "")
    content = await audio.read()
    if not content:
        raise ValidationError(message="Audio file is empty", field="audio")
    if len(content) > settings.max_upload_size_bytes:
        raise PayloadTooLargeError(max_size_mb=settings.max_upload_size_mb)

    embedding = await diarization_client.embed(content, audio.filename or "voice-sample", mime_type)
    await users_service.save_voice_profile(db, user.id, embedding)
    return VoiceProfileEnrolled(embedding_dimensions=len(embedding))


@router.delete(
    "",
    response_model=MessageResponse,
    responses=error_responses(401),
    summary="Delete the caller's voice profile",
)
async def delete_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await users_service.delete_voice_profile(db, user.id)
    return MessageResponse(message="Voice profile deleted successfully")
