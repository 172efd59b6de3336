"""
`komuchi-worker` console script: an RQ worker bound to the configured queue.

Run one or more alongside the API:
    komuchi-worker            # or: python -m komuchi.worker
"""

import logging

from rq import Worker

from komuchi.config import settings
from komuchi.logging_config import setup_logging
from komuchi.services.queue import job_queue

logger = logging.getLogger("komuchi.worker")


def main() -> None:
    setup_logging()
    logger.info(
        "Starting RQ worker on queue '%s' (transcription=%s, debrief=%s)",
        settings.queue_name,
        settings.transcription_provider,
        settings.debrief_provider,
    )
    worker = Worker([job_queue.queue], connection=job_queue.connection)
    worker.work(with_scheduler=False)


if __name__ == "__main__":
    main()
