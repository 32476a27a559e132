"""
Popup login requests — server-side record of each popup sign-in attempt.

``/popup-url`` creates a request keyed by the sha256 of a fresh OAuth state
and bound to the browser through an HttpOnly cookie. ``/callback`` claims it
with a single conditional UPDATE (``pending -> in_progress``), so a state is
accepted at most once and only by the browser that asked for it. The request
then settles as ``completed`` or ``failed`` and the opener window can poll it.

Expired requests that never completed are deleted whenever a new one is
created.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from auth.errors import CSRFMismatchError, NotFoundError
from config.settings import config
from database.models import LoginRequest
from utils.schemas import FlowPurpose, LoginRequestStatus, LoginRequestView

logger = logging.getLogger(__name__)

BINDING_COOKIE = "google_auth_binding"


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_binding() -> str:
    return secrets.token_urlsafe(32)


async def cleanup_expired_login_requests(session: AsyncSession) -> int:
    """Delete expired requests that never completed. Returns how many went."""
    result = await session.execute(
        delete(LoginRequest)
        .where(
            LoginRequest.expires_at < _utcnow(),
            LoginRequest.status != LoginRequestStatus.COMPLETED.value,
        )
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    deleted = result.rowcount or 0
    if deleted:
        logger.info("Cleaned up %d expired login requests", deleted)
    return deleted


async def create_login_request(
    session: AsyncSession,
    purpose: FlowPurpose,
    *,
    provider: str,
    binding: str,
    redirect_uri: str,
    user_id: Optional[uuid.UUID] = None,
) -> Tuple[uuid.UUID, str]:
    """
    Persist a pending request and return ``(request_id, state)``.

    Only digests of the state and the binding are stored.
    """
    await cleanup_expired_login_requests(session)

    state = secrets.token_urlsafe(32)
    now = _utcnow()
    row = LoginRequest(
        request_id=uuid.uuid4(),
        state_digest=_digest(state),
        binding_digest=_digest(binding),
        provider=provider,
        purpose=FlowPurpose(purpose).value,
        user_id=user_id,
        redirect_uri=redirect_uri,
        status=LoginRequestStatus.PENDING.value,
        created_at=now,
        expires_at=now + timedelta(seconds=config.login_request_ttl_seconds),
    )
    session.add(row)
    await session.commit()
    logger.info("Created %s login request %s", row.purpose, row.request_id)
    return row.request_id, state


async def claim_login_request(
    session: AsyncSession,
    state: str,
    binding: Optional[str],
) -> LoginRequest:
    """
    Move the request for ``state`` from pending to in progress.

    Raises
    ------
    CSRFMismatchError
        Unknown or expired state, a different browser, or a state that was
        already used.
    """
    if not state or not binding:
        raise CSRFMismatchError()

    state_digest = _digest(state)
    result = await session.execute(
        update(LoginRequest)
        .where(
            LoginRequest.state_digest == state_digest,
            LoginRequest.binding_digest == _digest(binding),
            LoginRequest.status == LoginRequestStatus.PENDING.value,
            LoginRequest.expires_at > _utcnow(),
        )
        .values(status=LoginRequestStatus.IN_PROGRESS.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        logger.warning("Rejected popup callback: state unknown, expired, reused or from another browser")
        raise CSRFMismatchError()
    await session.commit()

    claimed = await session.execute(
        select(LoginRequest)
        .where(LoginRequest.state_digest == state_digest)
        .execution_options(populate_existing=True)
    )
    return claimed.scalar_one()


async def finish_login_request(
    session: AsyncSession,
    request_id: uuid.UUID,
    status: LoginRequestStatus,
    error: Optional[str] = None,
) -> None:
    """Settle a claimed request as completed or failed."""
    await session.execute(
        update(LoginRequest)
        .where(
            LoginRequest.request_id == request_id,
            LoginRequest.status == LoginRequestStatus.IN_PROGRESS.value,
        )
        .values(status=status.value, error=error, completed_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    await session.commit()


async def abandon_login_request(
    session: AsyncSession,
    state: str,
    binding: Optional[str],
    error: str,
) -> None:
    """Mark a still-pending request failed, e.g. when the user cancels at Google."""
    if not binding:
        return
    await session.execute(
        update(LoginRequest)
        .where(
            LoginRequest.state_digest == _digest(state),
            LoginRequest.binding_digest == _digest(binding),
            LoginRequest.status == LoginRequestStatus.PENDING.value,
        )
        .values(status=LoginRequestStatus.FAILED.value, error=error, completed_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    await session.commit()


async def get_login_request(
    session: AsyncSession,
    request_id: str,
    binding: Optional[str],
) -> LoginRequestView:
    """Status of a request, visible only to the browser that created it."""
    try:
        rid = uuid.UUID(str(request_id))
    except ValueError:
        raise NotFoundError("Login request not found")
    if not binding:
        raise NotFoundError("Login request not found")

    result = await session.execute(
        select(LoginRequest).where(
            LoginRequest.request_id == rid,
            LoginRequest.binding_digest == _digest(binding),
            or_(
                LoginRequest.status == LoginRequestStatus.COMPLETED.value,
                LoginRequest.expires_at > _utcnow(),
            ),
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFoundError("Login request not found")
    return LoginRequestView(
        request_id=str(row.request_id),
        purpose=FlowPurpose(row.purpose),
        status=LoginRequestStatus(row.status),
        error=row.error,
    )
