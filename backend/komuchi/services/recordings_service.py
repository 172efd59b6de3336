"""
Komuchi API — Recording Service (Lifecycle Orchestrator)
=========================================================

What:  Creates recordings, hands out signed upload URLs, completes uploads
       and kicks off background processing.

Upload & processing flow:
    ┌────────────┐   ┌──────────────┐   ┌─────────────────┐   ┌────────────┐
    │ POST       │──▶│ PUT signed   │──▶│ POST complete-  │──▶│ RQ worker  │
    │ recordings │   │ upload URL   │   │ upload          │   │ TRANSCRIBE │
    │ (pending)  │   │ (bytes)      │   │ (processing)    │   │ → DEBRIEF  │
    └────────────┘   └──────────────┘   └─────────────────┘   └────────────┘

start_processing commits before enqueueing so that a fast worker never
looks up a Job row that is not yet visible. If the enqueue then fails, the
job and the recording are marked failed in a second commit and QueueError
propagates (503).
"""

import logging
import math
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from komuchi.exceptions import (
    InvalidFileTypeError,
    InvalidStateError,
    NotFoundError,
    QueueError,
    ValidationError,
)
from komuchi.models.enums import JobStatus, JobType, RecordingMode, RecordingStatus
from komuchi.models.job import Job
from komuchi.models.recording import Recording
from komuchi.services.jobs_service import jobs_service
from komuchi.services.queue import job_queue
from komuchi.services.storage_service import MIME_EXTENSIONS, object_storage

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset(MIME_EXTENSIONS)


def validate_mime_type(mime_type: str) -> str:
    normalized = (mime_type or "").split(";", 1)[0].strip().lower()
    if normalized not in ALLOWED_MIME_TYPES:
        raise InvalidFileTypeError(mime_type=mime_type, allowed=list(ALLOWED_MIME_TYPES))
    return normalized


class RecordingsService:
    # ── Creation & lookup ─────────────────────────────────────────────────
    async def create_recording(
        self,
        db: AsyncSession,
        user_id: str,
        title: str,
        mode: RecordingMode | str,
        mime_type: str,
        original_filename: Optional[str] = None,
    ) -> Recording:
        """Create a `pending` recording with its object key already assigned."""
        mime = validate_mime_type(mime_type)
        try:
            mode_value = RecordingMode(mode).value
        except ValueError:
            raise ValidationError(message=f"Invalid mode '{mode}'", field="mode")

        recording = Recording(
            user_id=user_id,
            title=title,
            mode=mode_value,
            mime_type=mime,
            original_filename=original_filename,
            status=RecordingStatus.PENDING.value,
        )
        db.add(recording)
        await db.flush()

        recording.object_key = object_storage.build_object_key(user_id, recording.id, mime)
        await db.flush()
        logger.info("Recording %s created for user %s (%s, %s)", recording.id, user_id, mode_value, mime)
        return recording

    async def create_upload_url(self, recording: Recording) -> Dict[str, Any]:
        upload_url, expires_in = object_storage.create_upload_url(recording.object_key)
        return {
            "recording_id": recording.id,
            "upload_url": upload_url,
            "object_key": recording.object_key,
            "expires_in": expires_in,
        }

    async def get_recording(self, db: AsyncSession, recording_id: str) -> Optional[Recording]:
        return await db.get(Recording, recording_id)

    async def get_recording_by_user(
        self, db: AsyncSession, recording_id: str, user_id: str
    ) -> Optional[Recording]:
        """None when the recording is missing or belongs to someone else."""
        result = await db.execute(
            select(Recording).where(Recording.id == recording_id, Recording.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def require_recording(self, db: AsyncSession, recording_id: str, user_id: str) -> Recording:
        recording = await self.get_recording_by_user(db, recording_id, user_id)
        if recording is None:
            raise NotFoundError(resource="recording", resource_id=recording_id)
        return recording

    async def get_recording_detail(
        self, db: AsyncSession, recording_id: str, user_id: str
    ) -> Optional[Recording]:
        """Recording with transcript, debrief and jobs eagerly loaded."""
        result = await db.execute(
            select(Recording)
            .where(Recording.id == recording_id, Recording.user_id == user_id)
            .options(
                selectinload(Recording.transcript),
                selectinload(Recording.debrief),
                selectinload(Recording.jobs),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_recordings_by_user(
        self,
        db: AsyncSession,
        user_id: str,
        page: int = 1,
        limit: int = 20,
        status: Optional[RecordingStatus | str] = None,
    ) -> Dict[str, Any]:
        """
        Newest-first page of a user's recordings.

        Returns {"data": [Recording], "pagination": {page, limit, total, total_pages}}
        with total_pages = ceil(total / limit).
        """
        if page < 1 or limit < 1:
            raise ValidationError(message="page and limit must be positive integers")

        filters = [Recording.user_id == user_id]
        if status:
            try:
                filters.append(Recording.status == RecordingStatus(status).value)
            except ValueError:
                raise ValidationError(message=f"Invalid status '{status}'", field="status")

        total = (
            await db.execute(select(func.count(Recording.id)).where(*filters))
        ).scalar() or 0

        result = await db.execute(
            select(Recording)
            .where(*filters)
            .order_by(Recording.created_at.desc(), Recording.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "data": list(result.scalars().all()),
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if total else 0,
            },
        }

    # ── State transitions ─────────────────────────────────────────────────
    async def update_recording_status(
        self,
        db: AsyncSession,
        recording_id: str,
        status: RecordingStatus | str,
        error_message: Optional[str] = None,
    ) -> Recording:
        recording = await self.get_recording(db, recording_id)
        if recording is None:
            raise NotFoundError(resource="recording", resource_id=recording_id)
        recording.status = RecordingStatus(status).value
        if recording.status == RecordingStatus.FAILED.value:
            recording.error_message = error_message
        elif recording.status in (RecordingStatus.PROCESSING.value, RecordingStatus.COMPLETE.value):
            recording.error_message = None
        await db.flush()
        logger.info("Recording %s → %s", recording_id, recording.status)
        return recording

    async def set_recording_object_key(self, db: AsyncSession, recording_id: str, object_key: str) -> Recording:
        recording = await self.get_recording(db, recording_id)
        if recording is None:
            raise NotFoundError(resource="recording", resource_id=recording_id)
        object_storage.path_for(object_key)
        recording.object_key = object_key
        await db.flush()
        return recording

    async def complete_upload(self, db: AsyncSession, recording_id: str, file_size: int) -> Recording:
        recording = await self.get_recording(db, recording_id)
        if recording is None:
            raise NotFoundError(resource="recording", resource_id=recording_id)
        recording.file_size = file_size
        recording.status = RecordingStatus.UPLOADED.value
        await db.flush()
        return recording

    async def start_processing(self, db: AsyncSession, recording: Recording, file_size: int) -> Dict[str, Any]:
        """
        complete-upload orchestration.

        1. status must be pending              → else InvalidStateError
        2. the object must exist in storage    → else ValidationError
        3. mark uploaded with the reported size (the stored size wins if they differ)
        4. refuse when a TRANSCRIBE job is already active
        5. create the TRANSCRIBE job, set status processing, commit
        6. enqueue; on failure mark both failed and raise QueueError
        """
        if recording.status != RecordingStatus.PENDING.value:
            raise InvalidStateError(
                message=f"Recording is '{recording.status}'; only pending recordings can complete an upload",
                current_state=recording.status,
            )

        stored_size = await object_storage.object_size(recording.object_key)
        if stored_size is None:
            raise ValidationError(
                message="No uploaded audio found for this recording. Upload the file before completing.",
                field="objectKey",
            )
        if stored_size != file_size:
            logger.warning(
                "Recording %s: reported size %d differs from stored size %d",
                recording.id, file_size, stored_size,
            )

        await self.complete_upload(db, recording.id, stored_size)
        job = await self._start_job(db, recording, JobType.TRANSCRIBE)
        return {"recording_id": recording.id, "job_id": job.id, "status": recording.status}

    async def retry_processing(self, db: AsyncSession, recording: Recording) -> Dict[str, Any]:
        """Re-run the failed stage: TRANSCRIBE if no transcript exists, else DEBRIEF."""
        if recording.status != RecordingStatus.FAILED.value:
            raise InvalidStateError(
                message=f"Recording is '{recording.status}'; only failed recordings can be retried",
                current_state=recording.status,
            )
        detail = await self.get_recording_detail(db, recording.id, recording.user_id)
        job_type = JobType.DEBRIEF if detail.transcript is not None else JobType.TRANSCRIBE
        job = await self._start_job(db, detail, job_type)
        return {"recording_id": recording.id, "job_id": job.id, "status": detail.status}

    async def _start_job(self, db: AsyncSession, recording: Recording, job_type: JobType) -> Job:
        if await jobs_service.has_active_job(db, recording.id, job_type):
            raise InvalidStateError(
                message=f"A {job_type.value} job is already queued or running for this recording",
                current_state=recording.status,
            )

        job = await jobs_service.create_job(db, recording.id, job_type)
        await self.update_recording_status(db, recording.id, RecordingStatus.PROCESSING)
        await db.commit()

        try:
            if job_type is JobType.TRANSCRIBE:
                await job_queue.enqueue_transcription(job.id)
            else:
                await job_queue.enqueue_debrief(job.id)
        except QueueError as e:
            await jobs_service.update_job_status(db, job.id, JobStatus.FAILED, error=e.message)
            await self.update_recording_status(db, recording.id, RecordingStatus.FAILED, error_message=e.message)
            await db.commit()
            raise
        return job

    async def delete_recording(self, db: AsyncSession, recording_id: str, user_id: str) -> None:
        recording = await self.require_recording(db, recording_id, user_id)
        object_key = recording.object_key
        await db.delete(recording)
        await db.flush()
        if object_key:
            await object_storage.delete_object(object_key)
        logger.info("Recording %s deleted", recording_id)


recordings_service = RecordingsService()
