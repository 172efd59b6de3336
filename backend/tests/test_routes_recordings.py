"""
Komuchi API — Recording & Job Route Tests
==========================================

What:  HTTP-level tests for /api/recordings and /api/jobs through the
       FastAPI app (httpx AsyncClient + ASGITransport).

What we test:
    ✅ create → 201 with a signed upload URL
    ✅ validation, auth and ownership errors use the standard error body
    ✅ list pagination and status filter
    ✅ detail includes transcript, debrief, jobs and audioUrl
    ✅ complete-upload / retry enqueue the right job
    ✅ delete
    ✅ job polling
"""

import pytest

from komuchi.models.enums import JobType, RecordingStatus
from komuchi.services.jobs_service import jobs_service
from komuchi.services.storage_service import ObjectStorage

CREATE_BODY = {"title": "Weekly sync", "mode": "meeting", "mimeType": "audio/webm;codecs=opus"}


class TestCreateRecording:
    @pytest.mark.asyncio
    async def test_create(self, test_client, auth_headers):
        response = await test_client.post("/api/recordings", json=CREATE_BODY, headers=auth_headers())

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["objectKey"] == f"{ObjectStorage.user_prefix('user-1')}/{data['recordingId']}.webm"
        assert f"/api/uploads/{data['objectKey']}?expires=" in data["uploadUrl"]
        assert data["expiresIn"] > 0

    @pytest.mark.asyncio
    async def test_requires_user_header(self, test_client):
        response = await test_client.post("/api/recordings", json=CREATE_BODY)

        assert response.status_code == 401
        body = response.json()
        assert body["error"] == "Unauthorized"
        assert body["message"] == "Missing X-User-ID header"
        assert body["requestId"]

    @pytest.mark.asyncio
    async def test_rejects_non_audio(self, test_client, auth_headers):
        response = await test_client.post(
            "/api/recordings", json={**CREATE_BODY, "mimeType": "image/png"}, headers=auth_headers()
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid File Type"

    @pytest.mark.asyncio
    async def test_rejects_unknown_mode(self, test_client, auth_headers):
        response = await test_client.post(
            "/api/recordings", json={**CREATE_BODY, "mode": "podcast"}, headers=auth_headers()
        )
        body = response.json()
        assert response.status_code == 400
        assert body["error"] == "Validation Error"
        assert body["details"][0]["field"] == "mode"

    @pytest.mark.asyncio
    async def test_missing_title(self, test_client, auth_headers):
        body = {k: v for k, v in CREATE_BODY.items() if k != "title"}
        response = await test_client.post("/api/recordings", json=body, headers=auth_headers())
        assert response.status_code == 400
        assert {"field": "title", "message": "Field required"} in response.json()["details"]


class TestListRecordings:
    @pytest.mark.asyncio
    async def test_pagination_and_ownership(self, test_client, auth_headers, factory):
        me = await factory.user("user-1")
        other = await factory.user("user-2")
        for i in range(3):
            await factory.recording(me, title=f"Mine {i}")
        await factory.recording(other, title="Theirs")

        response = await test_client.get("/api/recordings?page=1&limit=2", headers=auth_headers())

        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 2
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}
        assert all(r["userId"] == "user-1" for r in body["data"])

    @pytest.mark.asyncio
    async def test_status_filter(self, test_client, auth_headers, factory):
        me = await factory.user("user-1")
        await factory.recording(me, status=RecordingStatus.COMPLETE.value)
        await factory.recording(me)

        response = await test_client.get("/api/recordings?status=complete", headers=auth_headers())
        data = response.json()["data"]
        assert [r["status"] for r in data] == ["complete"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["page=0", "limit=101", "status=archived"])
    async def test_bad_query(self, test_client, auth_headers, query):
        response = await test_client.get(f"/api/recordings?{query}", headers=auth_headers())
        assert response.status_code == 400
        assert response.json()["error"] == "Validation Error"


class TestRecordingDetail:
    @pytest.mark.asyncio
    async def test_complete_recording(self, test_client, auth_headers, factory, db_session):
        me = await factory.user("user-1")
        recording = await factory.recording(me, status=RecordingStatus.COMPLETE.value)
        await factory.transcript(recording, "Hello")
        await factory.debrief(recording)
        await jobs_service.create_job(db_session, recording.id, JobType.TRANSCRIBE)
        await db_session.commit()

        response = await test_client.get(f"/api/recordings/{recording.id}", headers=auth_headers())

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["transcript"]["text"] == "Hello"
        assert data["debrief"]["sections"][0]["title"] == "Summary"
        assert [j["type"] for j in data["jobs"]] == ["TRANSCRIBE"]
        assert "/api/uploads/" in data["audioUrl"]

    @pytest.mark.asyncio
    async def test_pending_has_no_audio_url(self, test_client, auth_headers, factory):
        me = await factory.user("user-1")
        recording = await factory.recording(me)

        data = (await test_client.get(f"/api/recordings/{recording.id}", headers=auth_headers())).json()["data"]
        assert data["audioUrl"] is None
        assert data["transcript"] is None
        assert data["jobs"] == []

    @pytest.mark.asyncio
    async def test_other_users_recording_is_not_found(self, test_client, auth_headers, factory):
        owner = await factory.user("owner")
        recording = await factory.recording(owner)

        response = await test_client.get(f"/api/recordings/{recording.id}", headers=auth_headers("intruder"))
        assert response.status_code == 404
        assert response.json()["error"] == "Not Found"


class TestCompleteUpload:
    @pytest.mark.asyncio
    async def test_starts_transcription(self, test_client, auth_headers, factory, fake_queue, audio_bytes):
        me = await factory.user("user-1")
        recording = await factory.recording(me)
        recording_id = recording.id
        await factory.stored_audio(recording, audio_bytes)

        response = await test_client.post(
            f"/api/recordings/{recording_id}/complete-upload",
            json={"fileSize": len(audio_bytes)},
            headers=auth_headers(),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["recordingId"] == recording_id
        assert data["status"] == "processing"
        assert fake_queue.job_ids("transcribe") == [data["jobId"]]

    @pytest.mark.asyncio
    async def test_without_upload(self, test_client, auth_headers, factory, fake_queue):
        me = await factory.user("user-1")
        recording = await factory.recording(me)

        response = await test_client.post(
            f"/api/recordings/{recording.id}/complete-upload", json={"fileSize": 10}, headers=auth_headers()
        )
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "objectKey"
        assert fake_queue.enqueued == []

    @pytest.mark.asyncio
    async def test_not_pending(self, test_client, auth_headers, factory):
        me = await factory.user("user-1")
        recording = await factory.recording(me, status=RecordingStatus.PROCESSING.value)

        response = await test_client.post(
            f"/api/recordings/{recording.id}/complete-upload", json={"fileSize": 10}, headers=auth_headers()
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid State"
        assert body["details"]["currentState"] == "processing"

    @pytest.mark.asyncio
    async def test_queue_down(self, test_client, auth_headers, factory, fake_queue, audio_bytes):
        me = await factory.user("user-1")
        recording = await factory.recording(me)
        await factory.stored_audio(recording, audio_bytes)
        fake_queue.fail = True

        response = await test_client.post(
            f"/api/recordings/{recording.id}/complete-upload", json={"fileSize": 1}, headers=auth_headers()
        )
        assert response.status_code == 503
        body = response.json()
        assert body["error"] == "Service Unavailable"
        assert "details" not in body


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_debrief_when_transcribed(self, test_client, auth_headers, factory, fake_queue):
        me = await factory.user("user-1")
        recording = await factory.recording(me, status=RecordingStatus.FAILED.value)
        await factory.transcript(recording)

        response = await test_client.post(f"/api/recordings/{recording.id}/retry", headers=auth_headers())

        assert response.status_code == 200
        assert fake_queue.job_ids("debrief") == [response.json()["data"]["jobId"]]

    @pytest.mark.asyncio
    async def test_only_failed(self, test_client, auth_headers, factory):
        me = await factory.user("user-1")
        recording = await factory.recording(me, status=RecordingStatus.COMPLETE.value)

        response = await test_client.post(f"/api/recordings/{recording.id}/retry", headers=auth_headers())
        assert response.status_code == 400


class TestDeleteRecording:
    @pytest.mark.asyncio
    async def test_delete(self, test_client, auth_headers, factory, audio_bytes):
        me = await factory.user("user-1")
        recording = await factory.recording(me)
        recording_id = recording.id
        await factory.stored_audio(recording, audio_bytes)

        response = await test_client.delete(f"/api/recordings/{recording_id}", headers=auth_headers())
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Recording deleted successfully"}

        again = await test_client.get(f"/api/recordings/{recording_id}", headers=auth_headers())
        assert again.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_missing(self, test_client, auth_headers):
        response = await test_client.delete("/api/recordings/nope", headers=auth_headers())
        assert response.status_code == 404


class TestJobs:
    @pytest.mark.asyncio
    async def test_poll_job(self, test_client, auth_headers, factory, db_session):
        me = await factory.user("user-1")
        recording = await factory.recording(me)
        job = await jobs_service.create_job(db_session, recording.id, JobType.TRANSCRIBE)
        await db_session.commit()

        response = await test_client.get(f"/api/jobs/{job.id}", headers=auth_headers())
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["recordingId"] == recording.id
        assert data["status"] == "pending"

        foreign = await test_client.get(f"/api/jobs/{job.id}", headers=auth_headers("user-2"))
        assert foreign.status_code == 404
