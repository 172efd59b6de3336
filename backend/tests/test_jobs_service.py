"""
Komuchi API — Job Service Tests
================================

What we test:
    ✅ create_job validates the type
    ✅ status transitions stamp started_at / completed_at / attempts / error
    ✅ has_active_job only counts pending and running jobs
    ✅ get_job_for_user enforces ownership through the recording
"""

import pytest
import pytest_asyncio

from komuchi.exceptions import NotFoundError, ValidationError
from komuchi.models.enums import JobStatus, JobType
from komuchi.services.jobs_service import jobs_service


@pytest_asyncio.fixture
async def recording(factory):
    user = await factory.user("owner")
    return await factory.recording(user)


class TestCreateJob:
    @pytest.mark.asyncio
    async def test_creates_pending(self, db_session, recording):
        job = await jobs_service.create_job(db_session, recording.id, JobType.TRANSCRIBE)
        assert job.status == JobStatus.PENDING.value
        assert job.attempts == 0
        assert job.started_at is None

    @pytest.mark.asyncio
    async def test_accepts_string_type(self, db_session, recording):
        job = await jobs_service.create_job(db_session, recording.id, "DEBRIEF")
        assert job.type == "DEBRIEF"

    @pytest.mark.asyncio
    async def test_rejects_unknown_type(self, db_session, recording):
        with pytest.raises(ValidationError):
            await jobs_service.create_job(db_session, recording.id, "SUMMARIZE")


class TestUpdateJobStatus:
    @pytest.mark.asyncio
    async def test_running_then_complete(self, db_session, recording):
        job = await jobs_service.create_job(db_session, recording.id, JobType.TRANSCRIBE)

        await jobs_service.update_job_status(db_session, job.id, JobStatus.RUNNING)
        assert job.started_at is not None
        assert job.attempts == 1

        await jobs_service.update_job_status(db_session, job.id, JobStatus.COMPLETE)
        assert job.status == JobStatus.COMPLETE.value
        assert job.completed_at is not None
        assert job.error is None

    @pytest.mark.asyncio
    async def test_failed_records_error_and_rerun_clears_it(self, db_session, recording):
        job = await jobs_service.create_job(db_session, recording.id, JobType.TRANSCRIBE)
        await jobs_service.update_job_status(db_session, job.id, JobStatus.RUNNING)
        await jobs_service.update_job_status(db_session, job.id, JobStatus.FAILED, error="boom")
        assert job.error == "boom"

        await jobs_service.update_job_status(db_session, job.id, JobStatus.RUNNING)
        assert job.error is None
        assert job.attempts == 2
        assert job.completed_at is None

    @pytest.mark.asyncio
    async def test_unknown_job(self, db_session):
        with pytest.raises(NotFoundError):
            await jobs_service.update_job_status(db_session, "missing", JobStatus.RUNNING)

    @pytest.mark.asyncio
    async def test_invalid_status(self, db_session, recording):
        job = await jobs_service.create_job(db_session, recording.id, JobType.TRANSCRIBE)
        with pytest.raises(ValidationError):
            await jobs_service.update_job_status(db_session, job.id, "paused")


class TestQueries:
    @pytest.mark.asyncio
    async def test_has_active_job(self, db_session, recording):
        assert await jobs_service.has_active_job(db_session, recording.id, JobType.TRANSCRIBE) is False

        job = await jobs_service.create_job(db_session, recording.id, JobType.TRANSCRIBE)
        assert await jobs_service.has_active_job(db_session, recording.id, JobType.TRANSCRIBE) is True
        assert await jobs_service.has_active_job(db_session, recording.id, JobType.DEBRIEF) is False

        await jobs_service.update_job_status(db_session, job.id, JobStatus.FAILED, error="x")
        assert await jobs_service.has_active_job(db_session, recording.id, JobType.TRANSCRIBE) is False

    @pytest.mark.asyncio
    async def test_get_jobs_by_recording_in_creation_order(self, db_session, recording):
        first = await jobs_service.create_job(db_session, recording.id, JobType.TRANSCRIBE)
        second = await jobs_service.create_job(db_session, recording.id, JobType.DEBRIEF)
        jobs = await jobs_service.get_jobs_by_recording(db_session, recording.id)
        assert [j.id for j in jobs] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_get_job_for_user(self, db_session, factory, recording):
        await factory.user("intruder")
        job = await jobs_service.create_job(db_session, recording.id, JobType.TRANSCRIBE)
        assert (await jobs_service.get_job_for_user(db_session, job.id, "owner")).id == job.id
        assert await jobs_service.get_job_for_user(db_session, job.id, "intruder") is None
