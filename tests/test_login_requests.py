"""
Tests for popup login requests: single use, browser binding, expiry cleanup.
"""

import pytest
from sqlalchemy import func, select

from auth.errors import CSRFMismatchError, NotFoundError
from config.settings import config
from database.models import LoginRequest
from oauth.login_requests import (
    claim_login_request,
    cleanup_expired_login_requests,
    create_login_request,
    finish_login_request,
    get_login_request,
)
from utils.schemas import FlowPurpose, LoginRequestStatus

BINDING = "browser-binding"


async def _create(session, purpose=FlowPurpose.LOGIN, binding=BINDING):
    return await create_login_request(
        session,
        purpose,
        provider="google",
        binding=binding,
        redirect_uri=config.popup_redirect_uri(),
    )


async def _count(session) -> int:
    return (await session.execute(select(func.count()).select_from(LoginRequest))).scalar_one()


class TestClaim:
    @pytest.mark.asyncio
    async def test_state_is_accepted_once(self, session):
        request_id, state = await _create(session)

        claimed = await claim_login_request(session, state, BINDING)
        assert claimed.request_id == request_id
        assert claimed.status == LoginRequestStatus.IN_PROGRESS.value

        with pytest.raises(CSRFMismatchError):
            await claim_login_request(session, state, BINDING)

    @pytest.mark.asyncio
    async def test_wrong_or_missing_binding(self, session):
        _, state = await _create(session)

        with pytest.raises(CSRFMismatchError):
            await claim_login_request(session, state, "someone-else")
        with pytest.raises(CSRFMismatchError):
            await claim_login_request(session, state, None)

        # the rightful browser can still finish its own flow
        claimed = await claim_login_request(session, state, BINDING)
        assert claimed.purpose == FlowPurpose.LOGIN.value

    @pytest.mark.asyncio
    async def test_only_digests_are_stored(self, session):
        _, state = await _create(session)
        row = (await session.execute(select(LoginRequest))).scalar_one()
        assert state not in (row.state_digest, row.binding_digest)
        assert BINDING not in (row.state_digest, row.binding_digest)

    @pytest.mark.asyncio
    async def test_expired_request_is_rejected(self, session, monkeypatch):
        monkeypatch.setattr(config, "login_request_ttl_seconds", -1)
        _, state = await _create(session)

        with pytest.raises(CSRFMismatchError):
            await claim_login_request(session, state, BINDING)


class TestStatusAndCleanup:
    @pytest.mark.asyncio
    async def test_finish_is_visible_to_owner_only(self, session):
        request_id, state = await _create(session)
        await claim_login_request(session, state, BINDING)
        await finish_login_request(session, request_id, LoginRequestStatus.FAILED, "nope")

        view = await get_login_request(session, str(request_id), BINDING)
        assert view.status == LoginRequestStatus.FAILED
        assert view.error == "nope"

        with pytest.raises(NotFoundError):
            await get_login_request(session, str(request_id), "someone-else")
        with pytest.raises(NotFoundError):
            await get_login_request(session, "not-a-uuid", BINDING)

    @pytest.mark.asyncio
    async def test_cleanup_keeps_completed_and_live_requests(self, session, monkeypatch):
        live_id, _ = await _create(session)

        monkeypatch.setattr(config, "login_request_ttl_seconds", -1)
        done_id, _ = await _create(session)
        await session.execute(
            LoginRequest.__table__.update()
            .where(LoginRequest.request_id == done_id)
            .values(status=LoginRequestStatus.COMPLETED.value)
        )
        await session.commit()
        stale_id, _ = await _create(session)

        deleted = await cleanup_expired_login_requests(session)

        assert deleted == 1
        assert await _count(session) == 2
        remaining = {
            row.request_id for row in (await session.execute(select(LoginRequest))).scalars()
        }
        assert remaining == {live_id, done_id}
        assert stale_id not in remaining

    @pytest.mark.asyncio
    async def test_create_sweeps_expired_requests(self, session, monkeypatch):
        monkeypatch.setattr(config, "login_request_ttl_seconds", -1)
        await _create(session)
        monkeypatch.setattr(config, "login_request_ttl_seconds", 900)

        await _create(session)

        assert await _count(session) == 1
