"""
Komuchi API — Request Logging Middleware
=========================================

What:  One access-log line per request on the `komuchi.access` logger.

    POST /api/recordings 201 12.4ms [a1b2c3d4] user=u_123 from 10.0.0.7

Level follows the status: 5xx ERROR, 4xx WARNING, otherwise INFO.
Liveness and readiness probes are not logged. Request bodies (audio, chat
content) never are.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from komuchi.middleware.request_id import request_id_var

logger = logging.getLogger("komuchi.access")

QUIET_PATHS = frozenset({"/api/health", "/api/ready"})


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        rid = request_id_var.get("") or response.headers.get("X-Request-ID", "")
        user_id = request.headers.get("X-User-ID", "-")
        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] user=%s from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            user_id,
            client_ip(request),
            extra={
                "request_id": rid,
                "status": status,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response
