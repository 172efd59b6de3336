"""
Komuchi API — Test Configuration (conftest.py)
===============================================

What:  Shared fixtures for the whole suite.
How:   Environment variables are set before anything from `komuchi` is
       imported, so the settings singleton, the engine and the storage
       singleton all pick up test values.

Fixture Hierarchy (all function-scoped):
    engine          in-memory SQLite (StaticPool) with every table created
    └── db_session  AsyncSession on that engine
        ├── test_client  httpx AsyncClient → app, get_db_session overridden
        └── factory      data builders (users, recordings, transcripts, ...)
    fake_queue      records enqueues instead of talking to Redis (autouse)
    auth_headers    X-User-ID header builder
    audio_bytes     a few bytes standing in for an audio file
"""

import os
import tempfile

# ── Environment (must precede komuchi imports) ───────────────────────────
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="komuchi_test_")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["TRANSCRIPTION_PROVIDER"] = "mock"
os.environ["DEBRIEF_PROVIDER"] = "mock"
os.environ["CHAT_PROVIDER"] = "mock"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["REDIS_URL"] = "redis://localhost:6399/15"
os.environ["DIARIZATION_URL"] = ""
os.environ["RETRY_MAX_ATTEMPTS"] = "2"
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "0"

from datetime import date, datetime, timezone  # noqa: E402
from typing import AsyncGenerator, List, Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import komuchi.models  # noqa: E402,F401
from komuchi.database import Base, get_db_session  # noqa: E402
from komuchi.exceptions import QueueError  # noqa: E402
from komuchi.models.chat import ChatMessage, ChatSession  # noqa: E402
from komuchi.models.enums import RecordingStatus  # noqa: E402
from komuchi.models.recording import Debrief, Recording, Transcript  # noqa: E402
from komuchi.models.user import User  # noqa: E402
from komuchi.services.storage_service import object_storage  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """
    One session per test. The API under test shares it (see test_client),
    so rows written by a request are visible to assertions without re-querying.
    """
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


# ══════════════════════════════════════════════════════════════════════════
# Job queue
# ══════════════════════════════════════════════════════════════════════════

class FakeJobQueue:
    """Stands in for JobQueue; records (task, job_id) instead of using Redis."""

    def __init__(self):
        self.enqueued: List[tuple] = []
        self.fail = False
        self.healthy = True

    async def enqueue_transcription(self, job_id: str) -> str:
        return self._record("transcribe", job_id)

    async def enqueue_debrief(self, job_id: str) -> str:
        return self._record("debrief", job_id)

    async def ping(self) -> bool:
        return self.healthy

    def _record(self, task: str, job_id: str) -> str:
        if self.fail:
            raise QueueError(context={"jobId": job_id})
        self.enqueued.append((task, job_id))
        return f"komuchi-{job_id}"

    def job_ids(self, task: str) -> List[str]:
        return [job_id for t, job_id in self.enqueued if t == task]


@pytest.fixture(autouse=True)
def fake_queue(monkeypatch) -> FakeJobQueue:
    queue = FakeJobQueue()
    monkeypatch.setattr("komuchi.services.recordings_service.job_queue", queue)
    monkeypatch.setattr("komuchi.workers.pipeline.job_queue", queue)
    monkeypatch.setattr("komuchi.routes.health.job_queue", queue)
    return queue


# ══════════════════════════════════════════════════════════════════════════
# HTTP client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the app through ASGITransport.

    get_db_session is overridden with the test session, keeping the real
    dependency's commit-on-success / rollback-on-error behaviour.
    """
    from komuchi.main import app

    async def override_get_db_session():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db_session] = override_get_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def build(user_id: str = "user-1") -> dict:
        return {"X-User-ID": user_id}

    return build


@pytest.fixture
def audio_bytes() -> bytes:
    # Not decodable audio; the mock provider only looks at size and MIME type
    return b"RIFF\x24\x00\x00\x00WAVEfmt " + b"\x00" * 64


# ══════════════════════════════════════════════════════════════════════════
# Data factories
# ══════════════════════════════════════════════════════════════════════════

class Factory:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def user(self, user_id: str = "user-1", email: Optional[str] = None, **kwargs) -> User:
        return await self._save(User(id=user_id, email=email, **kwargs))

    async def recording(
        self,
        user: User,
        title: str = "Team sync",
        mode: str = "meeting",
        status: str = RecordingStatus.PENDING.value,
        mime_type: str = "audio/webm",
        created_at: Optional[datetime] = None,
        **kwargs,
    ) -> Recording:
        recording = Recording(
            user_id=user.id,
            title=title,
            mode=mode,
            status=status,
            mime_type=mime_type,
            **kwargs,
        )
        if created_at is not None:
            recording.created_at = created_at
        self.db.add(recording)
        await self.db.flush()
        if recording.object_key is None:
            recording.object_key = object_storage.build_object_key(user.id, recording.id, mime_type)
        await self.db.commit()
        return recording

    async def transcript(self, recording: Recording, text: str = "We agreed to ship on Friday.") -> Transcript:
        return await self._save(
            Transcript(
                recording_id=recording.id,
                text=text,
                segments=[{"start": 0.0, "end": 3.0, "speaker": "Speaker 1", "text": text}],
                language="en",
            )
        )

    async def debrief(self, recording: Recording, markdown: str = "## Summary\n- Ship on Friday.") -> Debrief:
        return await self._save(
            Debrief(
                recording_id=recording.id,
                markdown=markdown,
                sections=[{"title": "Summary", "content": "- Ship on Friday.", "order": 0}],
            )
        )

    async def chat_session(
        self,
        user: User,
        session_date: Optional[date] = None,
        recording: Optional[Recording] = None,
    ) -> ChatSession:
        if recording is None and session_date is None:
            session_date = datetime.now(timezone.utc).date()
        return await self._save(
            ChatSession(
                user_id=user.id,
                session_date=session_date,
                recording_id=recording.id if recording else None,
            )
        )

    async def message(self, session: ChatSession, role: str, content: str) -> ChatMessage:
        return await self._save(ChatMessage(session_id=session.id, role=role, content=content))

    async def stored_audio(self, recording: Recording, content: bytes) -> int:
        return await object_storage.put_object(recording.object_key, content)


@pytest.fixture
def factory(db_session) -> Factory:
    return Factory(db_session)
