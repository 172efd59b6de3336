"""
Komuchi API — Object Storage Service
=====================================

What:  Stores recording audio on a local volume, addressed by object key,
       and issues HMAC-signed, expiring URLs for client uploads/downloads.
How:   aiofiles for all reads/writes; hmac + hashlib for URL signatures.
Who:   recordings_service (key + upload URL), uploads routes (PUT/GET),
       the worker pipeline (path of the audio to transcribe).

Object layout:
    storage/
    └── recordings/
        └── <sha256(user_id)>/
            └── <recording_id>.<ext>

Signed URL format:
    {public_base_url}/api/uploads/<object_key>?expires=<unix ts>&signature=<hex>

    signature = HMAC-SHA256(secret, "<METHOD>\\n<object_key>\\n<expires>")

    The method is part of the signed payload, so an upload URL cannot be
    replayed as a download URL (and vice versa).
"""

import hashlib
import hmac
import logging
import os
import time
from pathlib import Path
from typing import AsyncIterator, Optional, Tuple
from urllib.parse import quote, urlencode

import aiofiles

from komuchi.config import settings
from komuchi.exceptions import (
    FileStorageError,
    InvalidSignatureError,
    PayloadTooLargeError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# ── MIME → extension ──────────────────────────────────────────────────────
MIME_EXTENSIONS = {
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/wave": ".wav",
    "audio/webm": ".webm",
    "video/webm": ".webm",
    "audio/ogg": ".ogg",
    "audio/mp4": ".m4a",
    "audio/m4a": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/aac": ".aac",
    "audio/flac": ".flac",
    "audio/x-flac": ".flac",
}


class ObjectStorage:
    """
    Local-filesystem object store with signed URL support.

    Keys are always relative POSIX paths below storage_root. Any key that
    is absolute or contains `..` is rejected before touching the disk.
    """

    def __init__(self, storage_root: Optional[str] = None, signing_secret: Optional[str] = None):
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        self._secret = (signing_secret or settings.upload_signing_secret).encode("utf-8")
        logger.info("ObjectStorage initialized with storage_root=%s", self.storage_root)

    # ── Keys & paths ──────────────────────────────────────────────────────
    @staticmethod
    def build_object_key(user_id: str, recording_id: str, mime_type: str) -> str:
        ext = MIME_EXTENSIONS.get(mime_type, ".bin")
        return f"{ObjectStorage.user_prefix(user_id)}/{recording_id}{ext}"

    @staticmethod
    def user_prefix(user_id: str) -> str:
        # Hashed so distinct ids never share a directory and "." / ".." stay valid keys.
        digest = hashlib.sha256(user_id.encode("utf-8")).hexdigest()
        return f"recordings/{digest}"

    def path_for(self, object_key: str) -> Path:
        """Resolve an object key to an absolute path inside storage_root."""
        if not object_key or object_key.startswith("/") or ".." in Path(object_key).parts:
            raise ValidationError(message="Invalid object key", field="objectKey")
        path = (self.storage_root / object_key).resolve()
        if self.storage_root not in path.parents:
            raise ValidationError(message="Invalid object key", field="objectKey")
        return path

    # ── Signing ───────────────────────────────────────────────────────────
    def _sign(self, method: str, object_key: str, expires: int) -> str:
        payload = f"{method.upper()}\n{object_key}\n{expires}".encode("utf-8")
        return hmac.new(self._secret, payload, hashlib.sha256).hexdigest()

    def _signed_url(self, method: str, object_key: str, ttl: int) -> Tuple[str, int]:
        expires = int(time.time()) + ttl
        query = urlencode({"expires": expires, "signature": self._sign(method, object_key, expires)})
        base = settings.public_base_url.rstrip("/")
        return f"{base}/api/uploads/{quote(object_key)}?{query}", ttl

    def create_upload_url(self, object_key: str, ttl: Optional[int] = None) -> Tuple[str, int]:
        """Returns (url, expires_in_seconds) for a PUT of the object bytes."""
        return self._signed_url("PUT", object_key, ttl or settings.upload_url_ttl_seconds)

    def create_download_url(self, object_key: str, ttl: Optional[int] = None) -> Tuple[str, int]:
        return self._signed_url("GET", object_key, ttl or settings.upload_url_ttl_seconds)

    def verify_signature(self, method: str, object_key: str, expires: int, signature: str) -> None:
        """
        Raise InvalidSignatureError unless the signature matches and has not expired.

        compare_digest keeps the comparison constant-time.
        """
        if expires < int(time.time()):
            raise InvalidSignatureError("Signed URL has expired")
        expected = self._sign(method, object_key, expires)
        if not hmac.compare_digest(expected, signature or ""):
            raise InvalidSignatureError()

    # ── Object I/O ────────────────────────────────────────────────────────
    async def put_object(self, object_key: str, content: bytes) -> int:
        path = self.path_for(object_key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store object %s: %s", object_key, str(e))
            raise FileStorageError(
                message="Failed to save uploaded audio. Please try again.",
                context={"objectKey": object_key, "os_error": str(e)},
            )
        logger.info("Object stored: %s (%d bytes)", object_key, len(content))
        return len(content)

    async def put_stream(self, object_key: str, chunks: AsyncIterator[bytes], max_bytes: int) -> int:
        """
        Stream chunks to disk, aborting once max_bytes is exceeded.

        Writes go to a temporary sibling and are renamed into place, so a
        rejected or interrupted upload never leaves a partial object behind.
        """
        path = self.path_for(object_key)
        tmp_path = path.with_name(path.name + ".part")
        written = 0
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as f:
                async for chunk in chunks:
                    written += len(chunk)
                    if written > max_bytes:
                        raise PayloadTooLargeError(max_size_mb=max_bytes // (1024 * 1024))
                    await f.write(chunk)
            os.replace(tmp_path, path)
        except PayloadTooLargeError:
            await self._remove(tmp_path)
            raise
        except OSError as e:
            await self._remove(tmp_path)
            logger.error("Failed to stream object %s: %s", object_key, str(e))
            raise FileStorageError(
                message="Failed to save uploaded audio. Please try again.",
                context={"objectKey": object_key, "os_error": str(e)},
            )
        logger.info("Object stored: %s (%d bytes)", object_key, written)
        return written

    async def read_object(self, object_key: str) -> bytes:
        path = self.path_for(object_key)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise FileStorageError(
                message="Failed to read stored audio.",
                context={"objectKey": object_key, "os_error": str(e)},
            )

    async def object_exists(self, object_key: str) -> bool:
        return self.path_for(object_key).is_file()

    async def object_size(self, object_key: str) -> Optional[int]:
        path = self.path_for(object_key)
        if not path.is_file():
            return None
        return path.stat().st_size

    async def delete_object(self, object_key: str) -> bool:
        """Best-effort delete. Returns True if a file was removed."""
        try:
            path = self.path_for(object_key)
        except ValidationError:
            return False
        return await self._remove(path)

    async def delete_prefix(self, prefix: str) -> int:
        """Remove every object under a key prefix (e.g. all of a user's audio)."""
        root = self.path_for(prefix.rstrip("/"))
        if not root.is_dir():
            return 0
        removed = 0
        for path in sorted(root.rglob("*"), reverse=True):
            if path.is_file():
                removed += int(await self._remove(path))
            elif path.is_dir():
                path.rmdir()
        root.rmdir()
        return removed

    @staticmethod
    async def _remove(path: Path) -> bool:
        try:
            if path.exists():
                os.remove(path)
                logger.info("Removed object file: %s", path.name)
                return True
            return False
        except OSError as e:
            # Cleanup failures are not user-facing; leave the straggler
            logger.warning("Failed to remove %s: %s", path, str(e))
            return False


object_storage = ObjectStorage()
