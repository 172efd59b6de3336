"""
Komuchi API — Logging Setup
============================

Shared by the API lifespan and the RQ worker entrypoint so both processes
emit the same line format on stdout.
"""

import logging
import sys

from komuchi.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "rq.worker")


def setup_logging() -> None:
    """
    Configure the root logger once per process.

    force=True replaces any handlers installed by uvicorn or rq before us.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
