"""
Komuchi API — Request ID Middleware
====================================

What:  Tags every request with an id, echoed back in `X-Request-ID`.
How:   Honours a client-supplied X-Request-ID (so the web/mobile client can
       correlate its own logs) when it is 1-64 characters of [A-Za-z0-9-],
       otherwise generates a short UUID. The id is stored in a ContextVar
       for loggers and error handlers, and on request.state for route
       handlers.

Error bodies carry the same id as `requestId`.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

_CLIENT_REQUEST_ID = re.compile(r"[A-Za-z0-9-]{1,64}")

# Coroutine-local: concurrent requests on one event loop each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def new_request_id() -> str:
    return str(uuid.uuid4())[:8]


def resolve_request_id(header_value: Optional[str]) -> str:
    """Client id if it is safe to echo into logs and headers, else a fresh one."""
    if header_value and _CLIENT_REQUEST_ID.fullmatch(header_value):
        return header_value
    return new_request_id()


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
