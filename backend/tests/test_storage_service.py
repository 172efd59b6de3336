"""
Komuchi API — Object Storage Tests
===================================

What we test:
    ✅ object keys per user and MIME type
    ✅ signed URLs: valid, expired, tampered, wrong method
    ✅ path traversal rejected
    ✅ streamed writes honour the size limit and leave no partial file
    ✅ deletes (single object and prefix)
"""

import hashlib
import time
from urllib.parse import parse_qs, urlparse

import pytest

from komuchi.exceptions import InvalidSignatureError, PayloadTooLargeError, ValidationError
from komuchi.services.storage_service import ObjectStorage


@pytest.fixture
def storage(tmp_path) -> ObjectStorage:
    return ObjectStorage(storage_root=str(tmp_path), signing_secret="test-secret")


async def chunks(*parts: bytes):
    for part in parts:
        yield part


class TestObjectKeys:
    def test_extension_from_mime(self):
        prefix = ObjectStorage.user_prefix("u1")
        assert ObjectStorage.build_object_key("u1", "r1", "audio/mpeg") == f"{prefix}/r1.mp3"
        assert ObjectStorage.build_object_key("u1", "r1", "audio/x-m4a") == f"{prefix}/r1.m4a"

    def test_unknown_mime_falls_back_to_bin(self):
        assert ObjectStorage.build_object_key("u1", "r1", "audio/unknown").endswith(".bin")

    def test_user_prefix_is_sha256_of_id(self):
        expected = hashlib.sha256(b"../evil/user").hexdigest()
        assert ObjectStorage.user_prefix("../evil/user") == f"recordings/{expected}"

    def test_similar_user_ids_get_distinct_prefixes(self):
        prefixes = {ObjectStorage.user_prefix(uid) for uid in ["a b", "a_b", "a/b", "a.b"]}
        assert len(prefixes) == 4

    @pytest.mark.parametrize("user_id", [".", "..", "../evil"])
    def test_dot_user_ids_yield_usable_keys(self, storage, user_id):
        key = ObjectStorage.build_object_key(user_id, "r1", "audio/mpeg")
        path = storage.path_for(key)
        assert path.is_relative_to(storage.storage_root / "recordings")
        assert path.parent != storage.storage_root / "recordings"

    @pytest.mark.parametrize("key", ["", "/etc/passwd", "../outside.mp3", "recordings/../../x"])
    def test_path_traversal_rejected(self, storage, key):
        with pytest.raises(ValidationError):
            storage.path_for(key)


class TestSignedUrls:
    def _params(self, url: str) -> dict:
        query = parse_qs(urlparse(url).query)
        return {"expires": int(query["expires"][0]), "signature": query["signature"][0]}

    def test_upload_url_verifies(self, storage):
        url, expires_in = storage.create_upload_url("recordings/u1/r1.webm", ttl=60)
        assert "/api/uploads/recordings/u1/r1.webm?" in url
        assert expires_in == 60
        params = self._params(url)
        storage.verify_signature("PUT", "recordings/u1/r1.webm", params["expires"], params["signature"])

    def test_upload_url_is_not_a_download_url(self, storage):
        params = self._params(storage.create_upload_url("recordings/u1/r1.webm")[0])
        with pytest.raises(InvalidSignatureError):
            storage.verify_signature("GET", "recordings/u1/r1.webm", params["expires"], params["signature"])

    def test_tampered_key(self, storage):
        params = self._params(storage.create_upload_url("recordings/u1/r1.webm")[0])
        with pytest.raises(InvalidSignatureError):
            storage.verify_signature("PUT", "recordings/u2/r1.webm", params["expires"], params["signature"])

    def test_expired(self, storage):
        expires = int(time.time()) - 1
        signature = storage._sign("PUT", "recordings/u1/r1.webm", expires)
        with pytest.raises(InvalidSignatureError, match="expired"):
            storage.verify_signature("PUT", "recordings/u1/r1.webm", expires, signature)

    def test_other_secret_rejected(self, storage, tmp_path):
        other = ObjectStorage(storage_root=str(tmp_path), signing_secret="another-secret")
        params = self._params(other.create_upload_url("recordings/u1/r1.webm")[0])
        with pytest.raises(InvalidSignatureError):
            storage.verify_signature("PUT", "recordings/u1/r1.webm", params["expires"], params["signature"])


class TestObjectIO:
    @pytest.mark.asyncio
    async def test_put_stream_and_read(self, storage):
        size = await storage.put_stream("recordings/u1/r1.wav", chunks(b"abc", b"def"), max_bytes=100)
        assert size == 6
        assert await storage.read_object("recordings/u1/r1.wav") == b"abcdef"
        assert await storage.object_size("recordings/u1/r1.wav") == 6

    @pytest.mark.asyncio
    async def test_put_stream_too_large_leaves_nothing(self, storage):
        with pytest.raises(PayloadTooLargeError):
            await storage.put_stream("recordings/u1/r1.wav", chunks(b"x" * 60, b"x" * 60), max_bytes=100)
        assert await storage.object_exists("recordings/u1/r1.wav") is False
        assert not storage.path_for("recordings/u1/r1.wav.part").exists()

    @pytest.mark.asyncio
    async def test_put_stream_overwrites(self, storage):
        await storage.put_object("recordings/u1/r1.wav", b"old")
        await storage.put_stream("recordings/u1/r1.wav", chunks(b"new!"), max_bytes=100)
        assert await storage.read_object("recordings/u1/r1.wav") == b"new!"

    @pytest.mark.asyncio
    async def test_missing_object(self, storage):
        assert await storage.object_size("recordings/u1/none.wav") is None
        assert await storage.delete_object("recordings/u1/none.wav") is False

    @pytest.mark.asyncio
    async def test_delete_object(self, storage):
        await storage.put_object("recordings/u1/r1.wav", b"abc")
        assert await storage.delete_object("recordings/u1/r1.wav") is True
        assert await storage.object_exists("recordings/u1/r1.wav") is False

    @pytest.mark.asyncio
    async def test_delete_object_with_bad_key(self, storage):
        assert await storage.delete_object("../x") is False

    @pytest.mark.asyncio
    async def test_delete_prefix(self, storage):
        await storage.put_object("recordings/u1/r1.wav", b"a")
        await storage.put_object("recordings/u1/r2.wav", b"b")
        await storage.put_object("recordings/u2/r3.wav", b"c")

        assert await storage.delete_prefix("recordings/u1") == 2
        assert not storage.path_for("recordings/u1").exists()
        assert await storage.object_exists("recordings/u2/r3.wav") is True

    @pytest.mark.asyncio
    async def test_delete_prefix_missing(self, storage):
        assert await storage.delete_prefix("recordings/nobody") == 0
