"""
Database helper functions — user and account-link lookups.

"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import AccountLink, AuthProviderConfig, User


def _to_uuid(value: str | uuid.UUID) -> uuid.UUID:
    return uuid.UUID(value) if isinstance(value, str) else value


async def get_user_by_id(session: AsyncSession, user_id: str | uuid.UUID) -> Optional[User]:
    try:
        uid = _to_uuid(user_id)
    except ValueError:
        return None
    result = await session.execute(select(User).where(User.user_id == uid))
    return result.scalar_one_or_none()


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    """Case-insensitive lookup; emails from Google and from sign-up forms differ in casing."""
    result = await session.execute(
        select(User).where(func.lower(User.email) == email.strip().lower())
    )
    return result.scalars().first()


async def get_link_by_identity(
    session: AsyncSession,
    provider: str,
    provider_user_id: str,
) -> Optional[AccountLink]:
    """Return the link owning ``provider_user_id`` (at most one exists)."""
    result = await session.execute(
        select(AccountLink).where(
            AccountLink.provider == provider,
            AccountLink.provider_user_id == provider_user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_link_for_user(
    session: AsyncSession,
    user_id: str | uuid.UUID,
    provider: str,
) -> Optional[AccountLink]:
    """Return the user's link for ``provider`` (at most one exists)."""
    result = await session.execute(
        select(AccountLink).where(
            AccountLink.user_id == _to_uuid(user_id),
            AccountLink.provider == provider,
        )
    )
    return result.scalar_one_or_none()


async def get_provider_config(session: AsyncSession, provider_type: str) -> Optional[AuthProviderConfig]:
    result = await session.execute(
        select(AuthProviderConfig).where(AuthProviderConfig.provider_type == provider_type)
    )
    return result.scalar_one_or_none()
