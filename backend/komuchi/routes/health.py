"""
Komuchi API — Health, Readiness & Diagnostics
==============================================

    GET /api/health            liveness: the process is up (always 200)
    GET /api/ready             readiness: database + Redis probes
    GET /api/health/detailed   readiness checks + config + memory (not in production)

Readiness status levels:
    ok         every dependency answered                         → 200
    degraded   Redis down (uploads can't start processing)       → 200
    unhealthy  database down (nothing works)                     → 503

Probes are cheap (SELECT 1, PING) because orchestrators call them every
few seconds. Neither path is rate limited or access-logged.
"""

import gc
import logging
import resource
import time
from datetime import datetime, timezone
from typing import Dict, Tuple

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from komuchi import __version__
from komuchi.config import settings
from komuchi.database import get_db_session
from komuchi.exceptions import NotFoundError
from komuchi.schemas.health import DependencyCheck, HealthResponse, ReadinessResponse
from komuchi.services.queue import job_queue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Health"])

_start_time = time.time()


def _base_payload(overall: str = "ok") -> dict:
    return {
        "status": overall,
        "service": settings.service_name,
        "version": __version__,
        "uptime": round(time.time() - _start_time, 2),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def _check_database(db: AsyncSession) -> DependencyCheck:
    start = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Readiness: database unreachable: %s", str(e))
        return DependencyCheck(status="unhealthy", error=type(e).__name__)
    return DependencyCheck(status="healthy", latencyMs=round((time.perf_counter() - start) * 1000, 2))


async def _check_redis() -> DependencyCheck:
    start = time.perf_counter()
    if not await job_queue.ping():
        return DependencyCheck(status="unhealthy", error="Redis did not answer PING")
    return DependencyCheck(status="healthy", latencyMs=round((time.perf_counter() - start) * 1000, 2))


async def _readiness(db: AsyncSession) -> Tuple[str, Dict[str, DependencyCheck]]:
    checks = {
        "database": await _check_database(db),
        "redis": await _check_redis(),
    }

    if checks["database"].status != "healthy":
        overall = "unhealthy"
    elif checks["redis"].status != "healthy":
        overall = "degraded"
    else:
        overall = "ok"
    return overall, checks


@router.get("/health", response_model=HealthResponse, summary="Liveness probe")
async def health() -> HealthResponse:
    return HealthResponse(**_base_payload())


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"description": "Database unreachable", "model": ReadinessResponse}},
    summary="Readiness probe (database and Redis)",
)
async def ready(response: Response, db: AsyncSession = Depends(get_db_session)) -> ReadinessResponse:
    overall, checks = await _readiness(db)
    if overall == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(**_base_payload(overall), checks=checks)


@router.get("/health/detailed", summary="Diagnostics (disabled in production)")
async def health_detailed(response: Response, db: AsyncSession = Depends(get_db_session)) -> dict:
    if settings.environment == "production":
        raise NotFoundError(resource="route")

    overall, checks = await _readiness(db)
    if overall == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    usage = resource.getrusage(resource.RUSAGE_SELF)
    return {
        **_base_payload(overall),
        "checks": {name: check.model_dump(exclude_none=True) for name, check in checks.items()},
        "config": {
            "environment": settings.environment,
            "port": settings.api_port,
            "rateLimit": {
                "enabled": settings.rate_limit_enabled,
                "max": settings.rate_limit_max,
                "windowSeconds": settings.rate_limit_window_seconds,
            },
            "maxUploadSizeMB": settings.max_upload_size_mb,
            "transcriptionProvider": settings.transcription_provider,
            "debriefProvider": settings.debrief_provider,
            "chatProvider": settings.chat_provider,
        },
        "memory": {
            # ru_maxrss is kilobytes on Linux
            "rss": usage.ru_maxrss * 1024,
            "maxRssKb": usage.ru_maxrss,
            "gcObjects": len(gc.get_objects()),
        },
    }
