"""
Komuchi API — Rate Limiting Middleware
=======================================

What:  Per-IP sliding-window limiter: at most rate_limit_max requests in any
       rate_limit_window_seconds span.
How:   Each IP keeps a deque of request timestamps. Expired entries are
       dropped from the left on every request; a full deque means 429 with
       Retry-After set to when the oldest entry leaves the window.

State lives in process memory, so each API worker process limits on its
own. Probes and API docs are never limited. RATE_LIMIT_ENABLED=false turns
the limiter off (the test suite does this).
"""

import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from komuchi.config import settings
from komuchi.exceptions import RateLimitExceededError
from komuchi.middleware.logging import client_ip
from komuchi.middleware.request_id import REQUEST_ID_HEADER

logger = logging.getLogger(__name__)

EXCLUDED_PATHS = frozenset({"/api/health", "/api/ready", "/docs", "/openapi.json", "/redoc"})

# Sweep idle IPs every N recorded requests
CLEANUP_EVERY = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_requests: int = None, window_seconds: int = None, **kwargs):
        super().__init__(app, **kwargs)
        self.max_requests = max_requests or settings.rate_limit_max
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)
        self._seen = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not settings.rate_limit_enabled or request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        ip = client_ip(request)
        now = time.monotonic()
        window_start = now - self.window_seconds

        timestamps = self._requests[ip]
        while timestamps and timestamps[0] <= window_start:
            timestamps.popleft()

        if len(timestamps) >= self.max_requests:
            retry_after = int(timestamps[0] + self.window_seconds - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                ip, len(timestamps), self.window_seconds,
            )
            return self._reject(request, RateLimitExceededError(retry_after=retry_after))

        timestamps.append(now)
        self._seen += 1
        if self._seen % CLEANUP_EVERY == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    @staticmethod
    def _reject(request: Request, exc: RateLimitExceededError) -> JSONResponse:
        # Runs outside the app's exception handlers, so the error body is built here
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error,
                "message": exc.message,
                "details": exc.context,
                "requestId": request.headers.get(REQUEST_ID_HEADER, ""),
            },
            headers=exc.headers,
        )

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive = [ip for ip, ts in self._requests.items() if not ts or ts[-1] <= window_start]
        for ip in inactive:
            del self._requests[ip]
        if inactive:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive))
