"""
Identity reconciliation — map a verified provider profile to a local account.

Two entry points:
  • ``login_with_profile``: sign in through an existing link, or create a
    new account + link. Never auto-merges into an account that already owns
    the email through another sign-in method.
  • ``connect_profile_to_current_user``: link the profile to the signed-in
    user after checking, in order, that the user has no link yet, that the
    provider identity is not owned by someone else, and that the email does
    not belong to another account.

Read-then-write runs under a per-identity ``asyncio.Lock`` and commits
before releasing it. The unique constraints on ``account_links`` and
``users.email`` back this up across processes; an ``IntegrityError`` is
translated into the same conflict errors the pre-checks raise.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
import weakref
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from auth.errors import (
    AlreadyConnectedError,
    AuthFlowError,
    EmailAlreadyExistsError,
    GoogleAccountInUseError,
    InternalError,
    ProviderDisabledError,
    UnauthorizedError,
)
from auth.jwt import create_token
from auth.permissions import initial_access_level
from database.helpers import (
    get_link_by_identity,
    get_link_for_user,
    get_user_by_email,
    get_user_by_id,
)
from database.models import AccountLink, User
from oauth.config_store import get_availability
from utils.schemas import (
    ConnectResult,
    ExternalProfile,
    GoogleProfileView,
    LoginResult,
    ProviderType,
)

logger = logging.getLogger(__name__)

_PROVIDER = ProviderType.GOOGLE.value

_identity_locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = weakref.WeakValueDictionary()


def _identity_lock(provider: str, provider_user_id: str) -> asyncio.Lock:
    key = (provider, provider_user_id)
    lock = _identity_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _identity_locks[key] = lock
    return lock


async def _require_enabled(session: AsyncSession) -> None:
    availability = await get_availability(session, _PROVIDER)
    if not availability.available:
        raise ProviderDisabledError()


def _new_link(user_id: uuid.UUID, profile: ExternalProfile) -> AccountLink:
    return AccountLink(
        link_id=uuid.uuid4(),
        user_id=user_id,
        provider=_PROVIDER,
        provider_user_id=profile.provider_user_id,
        email=profile.email,
        name=profile.name,
        avatar_url=profile.avatar_url,
        profile=profile.model_dump(),
    )


def _refresh_link(link: AccountLink, profile: ExternalProfile) -> None:
    link.email = profile.email
    link.name = profile.name
    link.avatar_url = profile.avatar_url
    link.profile = profile.model_dump()
    link.updated_at = datetime.now(timezone.utc)


async def _classify_conflict(
    session: AsyncSession,
    profile: ExternalProfile,
    user_id: Optional[uuid.UUID],
) -> AuthFlowError:
    """Work out which uniqueness rule a concurrent writer beat us to."""
    owner = await get_link_by_identity(session, _PROVIDER, profile.provider_user_id)
    if owner is not None and owner.user_id != user_id:
        return GoogleAccountInUseError()
    if user_id is not None and await get_link_for_user(session, user_id, _PROVIDER) is not None:
        return AlreadyConnectedError()
    email_user = await get_user_by_email(session, profile.email)
    if email_user is not None and email_user.user_id != user_id:
        return EmailAlreadyExistsError()
    return InternalError("Failed to complete Google sign-in")


async def login_with_profile(session: AsyncSession, profile: ExternalProfile) -> LoginResult:
    """
    Sign in with a verified Google profile.

    Repeat logins by the same identity always resolve to the same account.

    Raises
    ------
    EmailAlreadyExistsError
        No link exists and another account already uses the email.
    ProviderDisabledError
        Google sign-in is switched off.
    """
    await _require_enabled(session)
    user: Optional[User] = None
    created = False

    async with _identity_lock(_PROVIDER, profile.provider_user_id):
        try:
            link = await get_link_by_identity(session, _PROVIDER, profile.provider_user_id)
            if link is not None:
                user = await get_user_by_id(session, link.user_id)
                if user is None:
                    raise InternalError("Linked account no longer exists")
                _refresh_link(link, profile)
                if profile.avatar_url:
                    user.picture = profile.avatar_url
            else:
                if await get_user_by_email(session, profile.email) is not None:
                    raise EmailAlreadyExistsError()
                user = User(
                    user_id=uuid.uuid4(),
                    email=profile.email,
                    display_name=profile.name or profile.email,
                    password_hash="",
                    access_level=initial_access_level(profile.email),
                    auth_method=_PROVIDER,
                    picture=profile.avatar_url,
                )
                session.add(user)
                await session.flush()
                session.add(_new_link(user.user_id, profile))
                created = True
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.warning("Concurrent Google sign-up for provider user %s", profile.provider_user_id)
            conflict = await _classify_conflict(session, profile, None)
            if not isinstance(conflict, GoogleAccountInUseError):
                raise conflict
            user = None

    if user is None:
        # Another process created the account for this identity first.
        return await login_with_profile(session, profile)

    if created:
        logger.info("Created Google account %s for provider user %s", user.user_id, profile.provider_user_id)
    else:
        logger.info("Google login: %s (%s)", user.display_name, user.user_id)

    return LoginResult(
        success=True,
        user_id=str(user.user_id),
        display_name=user.display_name or "",
        email=user.email,
        token=create_token(str(user.user_id), auth_method=_PROVIDER),
        created=created,
    )


async def connect_profile_to_current_user(
    session: AsyncSession,
    current_user: Optional[User],
    profile: ExternalProfile,
) -> ConnectResult:
    """
    Link a verified Google profile to the signed-in user.

    Raises
    ------
    UnauthorizedError
        No signed-in user.
    AlreadyConnectedError
        The user already has a Google link.
    GoogleAccountInUseError
        The Google identity is linked to a different user.
    EmailAlreadyExistsError
        The Google email belongs to a different user.
    """
    if current_user is None:
        raise UnauthorizedError("You must be logged in to connect a Google account")
    await _require_enabled(session)
    user_id = current_user.user_id

    async with _identity_lock(_PROVIDER, profile.provider_user_id):
        try:
            if await get_link_for_user(session, user_id, _PROVIDER) is not None:
                raise AlreadyConnectedError()

            owner = await get_link_by_identity(session, _PROVIDER, profile.provider_user_id)
            if owner is not None and owner.user_id != user_id:
                raise GoogleAccountInUseError()

            email_user = await get_user_by_email(session, profile.email)
            if email_user is not None and email_user.user_id != user_id:
                raise EmailAlreadyExistsError("Another user account already uses this email address")

            session.add(_new_link(user_id, profile))
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.warning("Concurrent Google connect for provider user %s", profile.provider_user_id)
            raise await _classify_conflict(session, profile, user_id)

    logger.info("Connected Google account %s to user %s", profile.provider_user_id, user_id)
    return ConnectResult(success=True, provider=ProviderType.GOOGLE, provider_user_id=profile.provider_user_id)


async def get_linked_profile(session: AsyncSession, user: User) -> Optional[GoogleProfileView]:
    """Google profile of a user with a Google link, else ``None``."""
    link = await get_link_for_user(session, user.user_id, _PROVIDER)
    if link is None:
        return None
    return GoogleProfileView(
        name=user.display_name or link.name or "",
        email=user.email,
        picture=user.picture or link.avatar_url,
        google_profile=ExternalProfile.model_validate(
            link.profile
            or {
                "provider_user_id": link.provider_user_id,
                "email": link.email or "",
                "name": link.name or "",
                "avatar_url": link.avatar_url,
            }
        ),
    )
