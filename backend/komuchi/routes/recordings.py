"""
Komuchi API — Recording & Job Routes
=====================================

What:  HTTP surface of the recording lifecycle.

Endpoints:
    POST   /api/recordings                          create (pending) + signed upload URL
    GET    /api/recordings?page&limit&status        newest-first page
    GET    /api/recordings/{id}                     detail with transcript, debrief, jobs, audioUrl
    POST   /api/recordings/{id}/complete-upload     pending → processing, enqueue TRANSCRIBE
    POST   /api/recordings/{id}/retry               failed → processing, re-run the failed stage
    DELETE /api/recordings/{id}                     remove the recording and its audio
    GET    /api/jobs/{id}                           poll a job

All responses use the {success, data} envelope. A recording owned by
someone else is indistinguishable from a missing one (404).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from komuchi.auth import get_current_user
from komuchi.database import get_db_session
from komuchi.exceptions import NotFoundError
from komuchi.models.enums import RecordingStatus
from komuchi.models.user import User
from komuchi.schemas.common import Envelope, MessageResponse, PaginatedEnvelope, error_responses
from komuchi.schemas.recording import (
    CompleteUploadData,
    CompleteUploadRequest,
    CreateRecordingData,
    CreateRecordingRequest,
    JobResponse,
    RecordingDetailResponse,
    RecordingResponse,
)
from komuchi.services.jobs_service import jobs_service
from komuchi.services.recordings_service import recordings_service
from komuchi.services.storage_service import object_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Recordings"])


@router.post(
    "/recordings",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[CreateRecordingData],
    responses=error_responses(400, 401),
    summary="Create a recording and get a signed upload URL",
)
async def create_recording(
    body: CreateRecordingRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[CreateRecordingData]:
    """
    Creates the recording in `pending` and returns a URL the client PUTs the
    raw audio bytes to. The URL expires after `expiresIn` seconds.
    """
    recording = await recordings_service.create_recording(
        db,
        user_id=user.id,
        title=body.title,
        mode=body.mode,
        mime_type=body.mime_type,
        original_filename=body.original_filename,
    )
    upload = await recordings_service.create_upload_url(recording)
    return Envelope(data=CreateRecordingData(**upload))


@router.get(
    "/recordings",
    response_model=PaginatedEnvelope[RecordingResponse],
    responses=error_responses(400, 401),
    summary="List the caller's recordings",
)
async def list_recordings(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status_filter: Optional[RecordingStatus] = Query(default=None, alias="status"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> PaginatedEnvelope[RecordingResponse]:
    result = await recordings_service.list_recordings_by_user(
        db, user.id, page=page, limit=limit, status=status_filter
    )
    return PaginatedEnvelope(
        data=[RecordingResponse.model_validate(r) for r in result["data"]],
        pagination=result["pagination"],
    )


@router.get(
    "/recordings/{recording_id}",
    response_model=Envelope[RecordingDetailResponse],
    responses=error_responses(401, 404),
    summary="Get a recording with its transcript, debrief and jobs",
)
async def get_recording(
    recording_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[RecordingDetailResponse]:
    recording = await recordings_service.get_recording_detail(db, recording_id, user.id)
    if recording is None:
        raise NotFoundError(resource="recording", resource_id=recording_id)

    detail = RecordingDetailResponse.model_validate(recording)
    # Audio is only readable once the bytes have landed
    if recording.object_key and recording.status != RecordingStatus.PENDING.value:
        detail.audio_url, _ = object_storage.create_download_url(recording.object_key)
    return Envelope(data=detail)


@router.post(
    "/recordings/{recording_id}/complete-upload",
    response_model=Envelope[CompleteUploadData],
    responses=error_responses(400, 401, 404, 503),
    summary="Confirm the upload and start processing",
)
async def complete_upload(
    recording_id: str,
    body: CompleteUploadRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[CompleteUploadData]:
    recording = await recordings_service.require_recording(db, recording_id, user.id)
    result = await recordings_service.start_processing(db, recording, body.file_size)
    return Envelope(data=CompleteUploadData(**result))


@router.post(
    "/recordings/{recording_id}/retry",
    response_model=Envelope[CompleteUploadData],
    responses=error_responses(400, 401, 404, 503),
    summary="Retry processing of a failed recording",
)
async def retry_recording(
    recording_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[CompleteUploadData]:
    recording = await recordings_service.require_recording(db, recording_id, user.id)
    result = await recordings_service.retry_processing(db, recording)
    return Envelope(data=CompleteUploadData(**result))


@router.delete(
    "/recordings/{recording_id}",
    response_model=MessageResponse,
    responses=error_responses(401, 404),
    summary="Delete a recording and its audio",
)
async def delete_recording(
    recording_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await recordings_service.delete_recording(db, recording_id, user.id)
    return MessageResponse(message="Recording deleted successfully")


@router.get(
    "/jobs/{job_id}",
    response_model=Envelope[JobResponse],
    responses=error_responses(401, 404),
    summary="Get a background job's status",
)
async def get_job(
    job_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[JobResponse]:
    job = await jobs_service.get_job_for_user(db, job_id, user.id)
    if job is None:
        raise NotFoundError(resource="job", resource_id=job_id)
    return Envelope(data=JobResponse.model_validate(job))
