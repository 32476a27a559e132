"""
FastAPI dependencies for authentication.

Provides ``db_session``, ``get_current_user_id``, ``get_current_user`` and
``get_optional_user`` dependencies that are used across all routes.
"""

from __future__ import annotations

from typing import AsyncGenerator, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from auth.errors import UnauthorizedError
from database.helpers import get_user_by_id
from database.models import User
from database.session import get_db_session

_bearer_scheme = HTTPBearer(auto_error=False)


async def db_session(
    session: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session for route handlers."""
    yield session


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> str:
    """
    Extract and verify the Bearer token, returning the authenticated
    ``user_id`` (UUID string).
    """
    from auth.jwt import verify_token

    if credentials is None:
        raise UnauthorizedError("Missing Bearer token")
    return verify_token(credentials.credentials)


async def get_current_user(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
) -> User:
    user = await get_user_by_id(session, user_id)
    if user is None:
        raise UnauthorizedError("User not found")
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    session: AsyncSession = Depends(db_session),
) -> Optional[User]:
    """Like ``get_current_user`` but yields ``None`` for anonymous or invalid callers."""
    from auth.jwt import verify_token

    if credentials is None:
        return None
    try:
        user_id = verify_token(credentials.credentials)
    except UnauthorizedError:
        return None
    return await get_user_by_id(session, user_id)
