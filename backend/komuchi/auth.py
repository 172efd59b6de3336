"""
Komuchi API — Caller Identity
==============================

What:  FastAPI dependencies that resolve the calling user from the
       `X-User-ID` header.
How:   A missing or blank header is a 401. Any non-blank id is accepted and
       the user row is provisioned on first sight (get-or-create by id).

Identity is asserted by the client; an upstream gateway is expected to
authenticate it.
"""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from komuchi.database import get_db_session
from komuchi.exceptions import UnauthorizedError, ValidationError
from komuchi.models.user import User
from komuchi.services.users_service import users_service

MAX_USER_ID_LENGTH = 64


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise UnauthorizedError()
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise ValidationError(
            message=f"X-User-ID must be at most {MAX_USER_ID_LENGTH} characters",
            field="X-User-ID",
        )
    return user_id


async def get_current_user(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    return await users_service.ensure_user(db, user_id)
