"""
Komuchi API — Signed Object Upload/Download
============================================

    PUT /api/uploads/{key}?expires&signature   raw audio bytes → storage
    GET /api/uploads/{key}?expires&signature   stored audio

These are the URLs handed out by POST /api/recordings (PUT) and
GET /api/recordings/{id} (audioUrl, GET). They carry no X-User-ID: the
HMAC signature over (method, key, expires) is the authorization.

The PUT body is streamed to disk and cut off at max_upload_size_mb, so an
oversized upload is rejected without being buffered in memory.
"""

import logging

from fastapi import APIRouter, Query, Request
from fastapi.responses import FileResponse

from komuchi.config import settings
from komuchi.exceptions import NotFoundError, PayloadTooLargeError, ValidationError
from komuchi.schemas.common import Envelope, error_responses
from komuchi.schemas.recording import UploadResult
from komuchi.services.storage_service import object_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/uploads", tags=["Uploads"])


@router.put(
    "/{object_key:path}",
    response_model=Envelope[UploadResult],
    responses=error_responses(400, 403, 413),
    summary="Upload audio bytes to a signed URL",
)
async def put_object(
    object_key: str,
    request: Request,
    expires: int = Query(...),
    signature: str = Query(..., min_length=1),
) -> Envelope[UploadResult]:
    object_storage.verify_signature("PUT", object_key, expires, signature)

    max_bytes = settings.max_upload_size_bytes
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise PayloadTooLargeError(max_size_mb=settings.max_upload_size_mb)

    size = await object_storage.put_stream(object_key, request.stream(), max_bytes)
    if size == 0:
        await object_storage.delete_object(object_key)
        raise ValidationError(message="Upload body must not be empty", field="body")

    return Envelope(data=UploadResult(object_key=object_key, size=size))


@router.get(
    "/{object_key:path}",
    response_class=FileResponse,
    responses=error_responses(403, 404),
    summary="Download audio from a signed URL",
)
async def get_object(
    object_key: str,
    expires: int = Query(...),
    signature: str = Query(..., min_length=1),
) -> FileResponse:
    object_storage.verify_signature("GET", object_key, expires, signature)
    path = object_storage.path_for(object_key)
    if not path.is_file():
        raise NotFoundError(resource="object", resource_id=object_key)
    return FileResponse(
        path=str(path),
        headers={"Cache-Control": "private, max-age=300"},
    )
