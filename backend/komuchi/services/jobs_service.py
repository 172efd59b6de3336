"""
Komuchi API — Job Service
==========================

Bookkeeping for background jobs. The rows are the source of truth for job
state that clients poll; RQ only carries the job id to a worker.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from komuchi.exceptions import NotFoundError, ValidationError
from komuchi.models.base import utcnow
from komuchi.models.enums import ACTIVE_JOB_STATUSES, JobStatus, JobType
from komuchi.models.job import Job
from komuchi.models.recording import Recording

logger = logging.getLogger(__name__)


def _coerce(enum_cls, value, field: str):
    try:
        return enum_cls(value.value if isinstance(value, enum_cls) else value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(message=f"Invalid {field} '{value}'. Expected one of: {allowed}", field=field)


class JobsService:
    async def create_job(self, db: AsyncSession, recording_id: str, job_type: JobType | str) -> Job:
        job = Job(
            recording_id=recording_id,
            type=_coerce(JobType, job_type, "type").value,
            status=JobStatus.PENDING.value,
        )
        db.add(job)
        await db.flush()
        logger.info("Job %s created (%s) for recording %s", job.id, job.type, recording_id)
        return job

    async def get_job(self, db: AsyncSession, job_id: str) -> Optional[Job]:
        return await db.get(Job, job_id)

    async def get_job_for_user(self, db: AsyncSession, job_id: str, user_id: str) -> Optional[Job]:
        result = await db.execute(
            select(Job)
            .join(Recording, Recording.id == Job.recording_id)
            .where(Job.id == job_id, Recording.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_jobs_by_recording(self, db: AsyncSession, recording_id: str) -> List[Job]:
        result = await db.execute(
            select(Job).where(Job.recording_id == recording_id).order_by(Job.created_at.asc())
        )
        return list(result.scalars().all())

    async def update_job_status(
        self,
        db: AsyncSession,
        job_id: str,
        status: JobStatus | str,
        error: Optional[str] = None,
    ) -> Job:
        """
        Move a job to `status`.

        running          → started_at = now, attempts += 1, error cleared
        complete/failed  → completed_at = now; failed also records `error`
        """
        new_status = _coerce(JobStatus, status, "status")
        job = await self.get_job(db, job_id)
        if job is None:
            raise NotFoundError(resource="job", resource_id=job_id)

        now = utcnow()
        job.status = new_status.value
        if new_status is JobStatus.RUNNING:
            job.started_at = now
            job.completed_at = None
            job.attempts = (job.attempts or 0) + 1
            job.error = None
        elif new_status in (JobStatus.COMPLETE, JobStatus.FAILED):
            job.completed_at = now
            job.error = error if new_status is JobStatus.FAILED else None

        await db.flush()
        logger.info("Job %s → %s", job_id, job.status)
        return job

    async def has_active_job(self, db: AsyncSession, recording_id: str, job_type: JobType | str) -> bool:
        result = await db.execute(
            select(Job.id)
            .where(
                Job.recording_id == recording_id,
                Job.type == _coerce(JobType, job_type, "type").value,
                Job.status.in_(ACTIVE_JOB_STATUSES),
            )
            .limit(1)
        )
        return result.first() is not None


jobs_service = JobsService()
