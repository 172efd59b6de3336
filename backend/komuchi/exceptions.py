"""
Komuchi API — Custom Exception Hierarchy
=========================================

What:  Application-specific exceptions carrying an HTTP status and the
       `error` label that clients see in the JSON body.
How:   Services raise these; the handlers registered in main.py render
       them as {"error", "message", "details", "requestId"}.

Exception Hierarchy:
    KomuchiError (base)                → 500
    ├── ValidationError                → 400 Validation Error
    │   ├── InvalidFileTypeError       → 400 Invalid File Type
    │   └── InvalidStateError          → 400 Invalid State
    ├── UnauthorizedError              → 401 Unauthorized
    ├── InvalidSignatureError          → 403 Forbidden
    ├── NotFoundError                  → 404 Not Found
    ├── PayloadTooLargeError           → 413 Payload Too Large
    ├── RateLimitExceededError         → 429 Too Many Requests
    ├── FileStorageError               → 500
    ├── DatabaseError                  → 500 (generic message only)
    └── ServiceUnavailableError        → 503 Service Unavailable
        ├── LLMServiceError
        ├── CircuitBreakerOpenError
        ├── QueueError
        └── ExternalServiceError
"""

from typing import Any, Dict, Optional


class KomuchiError(Exception):
    """
    Base exception for all Komuchi application errors.

    Attributes:
        message:  User-facing description, safe to return in a response.
        context:  Debug details. Logged, and returned as `details` only for
                  4xx errors.
    """

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    @property
    def headers(self) -> Dict[str, str]:
        return {}


class ValidationError(KomuchiError):
    """Client input failed a business rule (schema failures are mapped here too)."""

    status_code = 400
    error = "Validation Error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class InvalidFileTypeError(ValidationError):
    """The declared MIME type is not an accepted audio type."""

    error = "Invalid File Type"

    def __init__(self, mime_type: str, allowed: Optional[list] = None):
        super().__init__(
            message=f"File type '{mime_type}' is not supported. Upload an audio file.",
            field="mimeType",
            context={"mimeType": mime_type, "allowed": sorted(allowed or [])},
        )
        self.mime_type = mime_type


class InvalidStateError(ValidationError):
    """The resource is not in a state that allows the requested transition."""

    error = "Invalid State"

    def __init__(
        self,
        message: str = "Resource is not in a valid state for this operation",
        current_state: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if current_state:
            ctx["currentState"] = current_state
        super().__init__(message=message, context=ctx)
        self.current_state = current_state


class UnauthorizedError(KomuchiError):
    status_code = 401
    error = "Unauthorized"

    def __init__(self, message: str = "Missing X-User-ID header"):
        super().__init__(message=message)


class InvalidSignatureError(KomuchiError):
    """A signed upload/download URL was tampered with or has expired."""

    status_code = 403
    error = "Forbidden"

    def __init__(self, message: str = "Invalid or expired signature"):
        super().__init__(message=message)


class NotFoundError(KomuchiError):
    """
    A requested resource does not exist, or is not visible to the caller.

    Ownership failures deliberately use this type so that clients cannot
    probe for other users' ids.
    """

    status_code = 404
    error = "Not Found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource.capitalize()} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resourceId"] = resource_id
        super().__init__(message=message, context=ctx)


class PayloadTooLargeError(KomuchiError):
    status_code = 413
    error = "Payload Too Large"

    def __init__(self, max_size_mb: int):
        super().__init__(
            message=f"Upload exceeds the maximum size of {max_size_mb}MB",
            context={"maxSizeMB": max_size_mb},
        )


class RateLimitExceededError(KomuchiError):
    status_code = 429
    error = "Too Many Requests"

    def __init__(self, retry_after: int = 60, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["retryAfter"] = retry_after
        super().__init__(
            message=f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests.",
            context=ctx,
        )
        self.retry_after = retry_after

    @property
    def headers(self) -> Dict[str, str]:
        return {"Retry-After": str(self.retry_after)}


class FileStorageError(KomuchiError):
    """Reading, writing or deleting an object on the storage volume failed."""

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(KomuchiError):
    """
    A database operation failed unexpectedly.

    The response message is always generic; the context is logged
    server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ServiceUnavailableError(KomuchiError):
    status_code = 503
    error = "Service Unavailable"

    def __init__(
        self,
        message: str = "A required service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retryAfter"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after

    @property
    def headers(self) -> Dict[str, str]:
        if self.retry_after:
            return {"Retry-After": str(self.retry_after)}
        return {}


class LLMServiceError(ServiceUnavailableError):
    """An AI provider call failed after all retries."""

    def __init__(
        self,
        message: str = "AI service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, retry_after=retry_after, context=context)


class CircuitBreakerOpenError(ServiceUnavailableError):
    """
    A circuit breaker is OPEN after repeated failures.

    CLOSED → OPEN after cb_failure_threshold consecutive failures;
    OPEN → HALF_OPEN after cb_recovery_timeout seconds; one trial call
    then decides CLOSED or OPEN again. `service` names the upstream in
    the message ("AI", "Speaker diarization").
    """

    def __init__(
        self,
        recovery_time: int = 60,
        service: str = "AI",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=(
                f"{service} service is temporarily unavailable due to repeated failures. "
                f"It will be retried in approximately {recovery_time} seconds."
            ),
            retry_after=max(recovery_time, 1),
            context=context,
        )
        self.recovery_time = recovery_time


class QueueError(ServiceUnavailableError):
    """Redis or RQ rejected an enqueue or could not be reached."""

    def __init__(
        self,
        message: str = "Background job queue is unavailable",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ExternalServiceError(ServiceUnavailableError):
    """An HTTP dependency (diarization service) failed or returned garbage."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        service: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if service:
            ctx["service"] = service
        super().__init__(message=message, context=ctx)
