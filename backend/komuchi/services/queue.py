"""
Komuchi API — Background Job Queue
===================================

What:  Thin wrapper over an RQ queue on Redis.
How:   Tasks are enqueued by dotted path so the API process never imports
       worker-only code. The RQ job id is derived from our Job row id
       (`komuchi-<job id>`), so RQ entries can be traced back to Job rows.

    API ──enqueue(job.id)──▶ Redis ──▶ `komuchi-worker` ──▶ komuchi.workers.tasks

The Redis connection is created lazily; importing this module never
touches the network.
"""

import asyncio
import logging
from typing import Optional

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue

from komuchi.config import settings
from komuchi.exceptions import QueueError

logger = logging.getLogger(__name__)

TRANSCRIBE_TASK = "komuchi.workers.tasks.run_transcription_job"
DEBRIEF_TASK = "komuchi.workers.tasks.run_debrief_job"


class JobQueue:
    def __init__(self, redis_url: Optional[str] = None, queue_name: Optional[str] = None):
        self.redis_url = redis_url or settings.redis_url
        self.queue_name = queue_name or settings.queue_name
        self._connection: Optional[Redis] = None
        self._queue: Optional[Queue] = None

    @property
    def connection(self) -> Redis:
        if self._connection is None:
            self._connection = Redis.from_url(self.redis_url, socket_connect_timeout=2)
        return self._connection

    @property
    def queue(self) -> Queue:
        if self._queue is None:
            self._queue = Queue(self.queue_name, connection=self.connection)
        return self._queue

    def _enqueue(self, task: str, job_id: str, description: str) -> str:
        try:
            rq_job = self.queue.enqueue(
                task,
                job_id,
                job_id=f"komuchi-{job_id}",
                job_timeout=settings.job_timeout_seconds,
                result_ttl=settings.job_result_ttl_seconds,
                description=description,
                meta={"job_id": job_id},
            )
        except RedisError as e:
            logger.error("Failed to enqueue %s for job %s: %s", task, job_id, str(e))
            raise QueueError(context={"jobId": job_id, "error": str(e)})
        logger.info("RQ: enqueued %s as %s", task.rsplit(".", 1)[-1], rq_job.id)
        return rq_job.id

    async def enqueue_transcription(self, job_id: str) -> str:
        # rq is synchronous; keep the blocking Redis round-trip off the event loop
        return await asyncio.to_thread(
            self._enqueue, TRANSCRIBE_TASK, job_id, f"Transcribe recording (job {job_id[:8]})"
        )

    async def enqueue_debrief(self, job_id: str) -> str:
        return await asyncio.to_thread(
            self._enqueue, DEBRIEF_TASK, job_id, f"Generate debrief (job {job_id[:8]})"
        )

    async def ping(self) -> bool:
        try:
            return bool(await asyncio.to_thread(self.connection.ping))
        except RedisError as e:
            logger.debug("Redis ping failed: %s", str(e))
            return False


job_queue = JobQueue()
