"""
Komuchi API — FastAPI Application Factory
==========================================

What:  Builds the FastAPI app: middleware, exception handlers, routers and
       the startup/shutdown lifespan.
Who:   uvicorn (`uvicorn komuchi.main:app`) and the test suite.

Application Architecture:
    ┌───────────────────────────────────────────────────────────────┐
    │                         FastAPI App                           │
    │                                                               │
    │  Middleware (outermost first):                                │
    │    RateLimit → RequestID → RequestLogging → GZip → CORS       │
    │                                                               │
    │  Routers:                                                     │
    │    recordings + jobs │ uploads │ chat │ voice-profile │ health │
    │                                                               │
    │  Exception handlers:                                          │
    │    KomuchiError          → its status + error label           │
    │    RequestValidationError→ 400 Validation Error               │
    │    HTTPException         → its status (404 Not Found, ...)    │
    │    Exception             → 500, generic message               │
    └───────────────────────────────────────────────────────────────┘

Error body (every non-2xx JSON response):
    {"error": "<label>", "message": "...", "details": ..., "requestId": "..."}
    `details` is only present for 4xx responses.

Lifecycle:
    Startup:  logging → config validation (logged, not fatal) → storage dir
    Shutdown: dispose the database engine
"""

import logging
from contextlib import asynccontextmanager
from http import HTTPStatus
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from komuchi import __version__
from komuchi.config import settings
from komuchi.database import dispose_engine
from komuchi.exceptions import DatabaseError, KomuchiError
from komuchi.logging_config import setup_logging
from komuchi.middleware.logging import RequestLoggingMiddleware
from komuchi.middleware.rate_limit import RateLimitMiddleware
from komuchi.middleware.request_id import RequestIDMiddleware, request_id_var
from komuchi.routes import chat, health, recordings, uploads, voice_profile

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Komuchi API %s starting (%s)", __version__, settings.environment)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving health checks so the problem is visible to operators
        logger.error("Configuration error: %s", str(e))

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())
    logger.info(
        "AI providers: transcription=%s debrief=%s chat=%s",
        settings.transcription_provider,
        settings.debrief_provider,
        settings.chat_provider,
    )
    logger.info("Server ready at http://%s:%d", settings.api_host, settings.api_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Komuchi API shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def request_id_for(request: Request) -> str:
    # The catch-all handler runs outside the middleware stack, after the ContextVar is reset
    return request_id_var.get("") or getattr(request.state, "request_id", "")


def error_body(request: Request, error: str, message: str, details: Optional[Any] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": error, "message": message}
    if details:
        body["details"] = details
    body["requestId"] = request_id_for(request)
    return body


def _field_name(loc) -> str:
    # ("body", "mimeType") → "mimeType"; ("query", "limit") → "limit"
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or "body"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(KomuchiError)
    async def handle_komuchi_error(request: Request, exc: KomuchiError):
        rid = request_id_for(request)
        if isinstance(exc, DatabaseError):
            logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
            message = "An internal error occurred. Please try again later."
        elif exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
            message = exc.message
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
            message = exc.message

        details = exc.context if exc.status_code < 500 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(request, exc.error, message, details),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        details = [
            {"field": _field_name(err.get("loc", ())), "message": err.get("msg", "Invalid value")}
            for err in exc.errors()
        ]
        message = "; ".join(f"{d['field']}: {d['message']}" for d in details) or "Invalid request"
        logger.warning("[%s] Request validation failed: %s", request_id_for(request), message)
        return JSONResponse(status_code=400, content=error_body(request, "Validation Error", message, details))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        label = HTTPStatus(exc.status_code).phrase
        message = exc.detail if isinstance(exc.detail, str) else label
        if exc.status_code == 404 and message == label:
            message = f"Route {request.method} {request.url.path} not found"
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(request, label, message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_for(request)
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=error_body(
                request,
                "Internal Server Error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Komuchi API",
        description=(
            "Record conversations, get AI transcripts and debriefs, and chat "
            "with your recordings by day or by recording."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware ────────────────────────────────────────────────────────
    # Starlette runs the last-added middleware first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    # ── Routers ───────────────────────────────────────────────────────────
    app.include_router(recordings.router)
    app.include_router(uploads.router)
    app.include_router(chat.router)
    app.include_router(voice_profile.router)
    app.include_router(health.router)

    return app


app = create_app()
