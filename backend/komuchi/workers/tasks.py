"""
RQ entrypoints. RQ calls plain functions, so each task runs its pipeline
coroutine with asyncio.run on a NullPool engine that lives exactly as long
as the job.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from komuchi.database import create_worker_engine
from komuchi.services.ai_providers import reset_providers
from komuchi.workers.pipeline import process_debrief_job, process_transcription_job

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _run_with_session(step: Callable[[AsyncSession, str], Awaitable[T]], job_id: str) -> T:
    # Provider clients hold loop-bound state from any previous job
    reset_providers()
    engine = create_worker_engine()
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with session_factory() as session:
            return await step(session, job_id)
    finally:
        await engine.dispose()


def run_transcription_job(job_id: str):
    logger.info("Worker: transcription job %s", job_id)
    return asyncio.run(_run_with_session(process_transcription_job, job_id))


def run_debrief_job(job_id: str):
    logger.info("Worker: debrief job %s", job_id)
    return asyncio.run(_run_with_session(process_debrief_job, job_id))
