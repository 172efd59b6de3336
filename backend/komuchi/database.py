"""
Komuchi API — Database Session Management
==========================================

What:  Async SQLAlchemy engine, session factory, declarative base and the
       FastAPI session dependency.
How:   One pooled engine per API process. Sessions are created per request;
       the dependency commits on success and rolls back on any error.
       The RQ worker builds its own NullPool engine because each job runs in
       a fresh event loop and pooled asyncpg connections are loop-bound.

Pooling (server databases only):
    pool_size / max_overflow from settings, pre-ping on checkout,
    recycle after an hour. SQLite URLs skip pool arguments.
"""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from komuchi.config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return options


# ── Engine & Session Factory ──────────────────────────────────────────────
engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# expire_on_commit=False: attributes stay readable after commit without a
# lazy reload (which would fail outside the greenlet context)
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base shared by every ORM model (and by Alembic)."""


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    Commits when the handler returns, rolls back and re-raises when it
    raises, and always closes the session so the connection returns to
    the pool.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Worker Engine ─────────────────────────────────────────────────────────
def create_worker_engine() -> AsyncEngine:
    """Engine for a single worker job: no pooling, disposed when the job ends."""
    return create_async_engine(
        settings.database_url,
        poolclass=NullPool,
        echo=settings.log_level == "DEBUG",
    )


async def dispose_engine() -> None:
    """Close every pooled connection. Called from the app lifespan on shutdown."""
    await engine.dispose()
