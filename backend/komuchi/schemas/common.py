"""
Komuchi API — Shared Schema Building Blocks
============================================

Every public payload is camelCase. CamelModel generates the aliases and
still accepts snake_case input (populate_by_name), so both `mimeType` and
`mime_type` validate. FastAPI serializes response models by alias.
"""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Envelope(CamelModel, Generic[T]):
    """`{"success": true, "data": ...}` wrapper used by the recordings API."""

    success: bool = True
    data: T


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class PaginatedEnvelope(CamelModel, Generic[T]):
    success: bool = True
    data: List[T]
    pagination: Pagination


class ErrorResponse(BaseModel):
    """Error body produced by the handlers in main.py (documentation only)."""

    error: str = Field(..., examples=["Validation Error"])
    message: str = Field(..., examples=["mimeType: Field required"])
    details: Optional[Any] = None
    requestId: str = Field(default="", examples=["a1b2c3d4"])


class MessageResponse(BaseModel):
    success: bool = True
    message: str


def error_responses(*codes: int) -> Dict[int, Dict[str, Any]]:
    """OpenAPI `responses=` entries for the given status codes."""
    descriptions = {
        400: "Invalid input or state",
        401: "Missing X-User-ID header",
        403: "Invalid or expired signature",
        404: "Resource not found",
        413: "Payload too large",
        429: "Rate limit exceeded",
        503: "Dependency unavailable",
    }
    return {
        code: {"description": descriptions.get(code, "Error"), "model": ErrorResponse}
        for code in codes
    }
