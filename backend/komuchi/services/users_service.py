"""
Komuchi API — User Service
===========================

What:  User provisioning and voice-profile persistence.
Who:   The auth dependency (ensure_user on every authenticated request),
       voice profile routes, and tests.

Users are keyed by the caller-chosen id from X-User-ID. Email is optional
and unique when present.
"""

import logging
import math
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from komuchi.exceptions import NotFoundError, ValidationError
from komuchi.models.user import User
from komuchi.services.storage_service import ObjectStorage, object_storage

logger = logging.getLogger(__name__)


class UsersService:
    def __init__(self, storage: Optional[ObjectStorage] = None):
        self._storage = storage

    @property
    def storage(self) -> ObjectStorage:
        return self._storage or object_storage

    async def create_user(
        self,
        db: AsyncSession,
        email: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> User:
        user = User(email=email.strip().lower() if email else None)
        if user_id:
            user.id = user_id
        db.add(user)
        await db.flush()
        logger.info("User created: %s", user.id)
        return user

    async def get_user(self, db: AsyncSession, user_id: str) -> Optional[User]:
        return await db.get(User, user_id)

    async def get_user_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    async def get_or_create_user(self, db: AsyncSession, email: str) -> User:
        existing = await self.get_user_by_email(db, email)
        if existing is not None:
            return existing
        return await self.create_user(db, email=email)

    async def ensure_user(self, db: AsyncSession, user_id: str) -> User:
        """
        Get-or-create by id. Two first requests racing for the same id both
        try to insert; the loser rolls back and re-reads the winner's row.
        """
        user = await self.get_user(db, user_id)
        if user is not None:
            return user
        try:
            return await self.create_user(db, user_id=user_id)
        except IntegrityError:
            await db.rollback()
            user = await self.get_user(db, user_id)
            if user is None:
                raise
            return user

    async def delete_user(self, db: AsyncSession, user_id: str) -> bool:
        """Delete a user, cascading to recordings, jobs and chats, and remove their audio."""
        user = await self.get_user(db, user_id)
        if user is None:
            return False
        await db.delete(user)
        await db.flush()
        removed = await self.storage.delete_prefix(ObjectStorage.user_prefix(user_id))
        logger.info("User %s deleted (%d stored objects removed)", user_id, removed)
        return True

    # ── Voice profile ─────────────────────────────────────────────────────
    async def get_voice_profile_status(self, db: AsyncSession, user_id: str) -> bool:
        user = await self.get_user(db, user_id)
        return bool(user and user.has_voice_profile)

    async def save_voice_profile(
        self, db: AsyncSession, user_id: str, embedding: Sequence[float]
    ) -> User:
        if not embedding:
            raise ValidationError(message="Voice embedding must not be empty", field="embedding")
        try:
            vector = [float(v) for v in embedding]
        except (TypeError, ValueError):
            raise ValidationError(message="Voice embedding must be numeric", field="embedding")
        if not all(math.isfinite(v) for v in vector):
            raise ValidationError(message="Voice embedding must be finite", field="embedding")

        user = await self.get_user(db, user_id)
        if user is None:
            raise NotFoundError(resource="user", resource_id=user_id)
        user.voice_embedding = vector
        user.has_voice_profile = True
        await db.flush()
        logger.info("Voice profile saved for user %s (%d dims)", user_id, len(vector))
        return user

    async def delete_voice_profile(self, db: AsyncSession, user_id: str) -> None:
        user = await self.get_user(db, user_id)
        if user is None:
            raise NotFoundError(resource="user", resource_id=user_id)
        user.voice_embedding = None
        user.has_voice_profile = False
        await db.flush()
        logger.info("Voice profile deleted for user %s", user_id)


users_service = UsersService()
