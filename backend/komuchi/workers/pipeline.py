"""
Komuchi API — Processing Pipeline
==================================

What:  The two background stages that turn uploaded audio into a debrief.

    TRANSCRIBE job                          DEBRIEF job
    ──────────────                          ───────────
    job → running, recording → processing   job → running
    provider.transcribe_audio(file)         provider.generate_debrief(transcript)
    replace transcript, set duration        replace debrief
    job → complete                          job → complete, recording → complete
    create + enqueue DEBRIEF job

Failure in either stage:
    rollback → job failed (error) → recording failed (error_message)
    → commit → re-raise so RQ records the failure too

Both stages are no-ops for unknown or already-complete jobs, so a job that
RQ delivers twice is processed once.
"""

import logging
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from komuchi.exceptions import InvalidStateError, NotFoundError
from komuchi.models.enums import JobStatus, JobType, RecordingStatus
from komuchi.models.job import Job
from komuchi.models.recording import Debrief, Recording, Transcript
from komuchi.services.ai_providers import get_debrief_service, get_transcription_service
from komuchi.services.jobs_service import jobs_service
from komuchi.services.queue import job_queue
from komuchi.services.recordings_service import recordings_service
from komuchi.services.storage_service import object_storage

logger = logging.getLogger(__name__)


async def _claim(db: AsyncSession, job_id: str, expected_type: JobType) -> Optional[Job]:
    job = await jobs_service.get_job(db, job_id)
    if job is None:
        logger.warning("Job %s not found; skipping", job_id)
        return None
    if job.status == JobStatus.COMPLETE.value:
        logger.info("Job %s already complete; skipping", job_id)
        return None
    if job.type != expected_type.value:
        raise InvalidStateError(
            message=f"Job {job_id} is a {job.type} job, expected {expected_type.value}",
            current_state=job.type,
        )
    return job


async def _fail(db: AsyncSession, job_id: str, recording_id: str, error: Exception) -> None:
    message = str(error) or type(error).__name__
    await db.rollback()
    await jobs_service.update_job_status(db, job_id, JobStatus.FAILED, error=message)
    await recordings_service.update_recording_status(
        db, recording_id, RecordingStatus.FAILED, error_message=message
    )
    await db.commit()
    logger.error("Job %s failed for recording %s: %s", job_id, recording_id, message)


async def _load_recording(db: AsyncSession, recording_id: str) -> Recording:
    recording = await recordings_service.get_recording(db, recording_id)
    if recording is None:
        raise NotFoundError(resource="recording", resource_id=recording_id)
    return recording


# ── TRANSCRIBE ────────────────────────────────────────────────────────────
async def process_transcription_job(db: AsyncSession, job_id: str) -> Optional[str]:
    """Run a TRANSCRIBE job. Returns the id of the DEBRIEF job it enqueued."""
    job = await _claim(db, job_id, JobType.TRANSCRIBE)
    if job is None:
        return None
    recording_id = job.recording_id

    try:
        await jobs_service.update_job_status(db, job_id, JobStatus.RUNNING)
        recording = await recordings_service.update_recording_status(
            db, recording_id, RecordingStatus.PROCESSING
        )
        await db.commit()

        if not recording.object_key:
            raise InvalidStateError(message="Recording has no uploaded audio", current_state=recording.status)
        audio_path = object_storage.path_for(recording.object_key)
        result = await get_transcription_service().transcribe_audio(str(audio_path), recording.mime_type)

        await db.execute(delete(Transcript).where(Transcript.recording_id == recording_id))
        db.add(
            Transcript(
                recording_id=recording_id,
                text=result.text,
                segments=[segment.model_dump() for segment in result.segments],
                language=result.language,
            )
        )
        if result.duration is not None:
            recording.duration_seconds = result.duration
        await jobs_service.update_job_status(db, job_id, JobStatus.COMPLETE)

        debrief_job = await jobs_service.create_job(db, recording_id, JobType.DEBRIEF)
        await db.commit()
    except Exception as e:
        await _fail(db, job_id, recording_id, e)
        raise

    logger.info(
        "Transcription complete for recording %s (%d chars, %d segments)",
        recording_id, len(result.text), len(result.segments),
    )

    try:
        await job_queue.enqueue_debrief(debrief_job.id)
    except Exception as e:
        await _fail(db, debrief_job.id, recording_id, e)
        raise
    return debrief_job.id


# ── DEBRIEF ───────────────────────────────────────────────────────────────
async def process_debrief_job(db: AsyncSession, job_id: str) -> None:
    job = await _claim(db, job_id, JobType.DEBRIEF)
    if job is None:
        return
    recording_id = job.recording_id

    try:
        await jobs_service.update_job_status(db, job_id, JobStatus.RUNNING)
        await db.commit()

        recording = await _load_recording(db, recording_id)
        transcript = (
            await recordings_service.get_recording_detail(db, recording_id, recording.user_id)
        ).transcript
        if transcript is None:
            raise InvalidStateError(
                message="Cannot generate a debrief before the recording is transcribed",
                current_state=recording.status,
            )

        result = await get_debrief_service().generate_debrief(
            transcript.text, recording.mode, recording.title
        )

        await db.execute(delete(Debrief).where(Debrief.recording_id == recording_id))
        db.add(
            Debrief(
                recording_id=recording_id,
                markdown=result.markdown,
                sections=[section.model_dump() for section in result.sections],
            )
        )
        await jobs_service.update_job_status(db, job_id, JobStatus.COMPLETE)
        await recordings_service.update_recording_status(db, recording_id, RecordingStatus.COMPLETE)
        await db.commit()
    except Exception as e:
        await _fail(db, job_id, recording_id, e)
        raise

    logger.info("Debrief complete for recording %s (%d sections)", recording_id, len(result.sections))
