"""
Tests for the OAuth callback orchestrator (backend mocked).
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from auth.errors import (
    AlreadyConnectedError,
    EmailAlreadyExistsError,
    ExchangeFailedError,
    GoogleAccountInUseError,
)
from client.orchestrator import (
    CSRF_MESSAGE,
    EXCHANGE_FAILED_MESSAGE,
    INTERNAL_ERROR_MESSAGE,
    CallbackOrchestrator,
    CallbackStatus,
    ClientSession,
)
from client.state_store import StateTokenStore, TokenStatus
from utils.schemas import (
    ConnectResult,
    ExchangeResult,
    ExternalProfile,
    FlowPurpose,
    LoginResult,
)

REDIRECT = "http://localhost:3000/login/google/callback"
PROFILE = ExternalProfile(provider_user_id="g1", email="a@x.com", name="Ada")


def _backend():
    backend = MagicMock()
    backend.exchange_code = AsyncMock(
        return_value=ExchangeResult(profile=PROFILE, ticket="ticket-1"),
    )
    backend.login_with_ticket = AsyncMock(
        return_value=LoginResult(
            user_id="u-1", display_name="Ada", email="a@x.com", token="session-token", created=True,
        ),
    )
    backend.connect_with_ticket = AsyncMock(return_value=ConnectResult(provider_user_id="g1"))
    return backend


def _orchestrator(purpose, *, store=None, backend=None, session=None, sleep=None):
    store = store or StateTokenStore()
    backend = backend or _backend()
    session = session or ClientSession()
    notifier = MagicMock()
    navigator = MagicMock()
    orch = CallbackOrchestrator(
        purpose,
        state_store=store,
        backend=backend,
        session=session,
        notifier=notifier,
        navigator=navigator,
        redirect_uri=REDIRECT,
        failure_delay=2.0,
        sleep=sleep or AsyncMock(),
    )
    return orch, store, backend, session, notifier, navigator


class TestLoginCallback:
    @pytest.mark.asyncio
    async def test_success(self):
        orch, store, backend, session, notifier, navigator = _orchestrator(FlowPurpose.LOGIN)
        state = store.issue(FlowPurpose.LOGIN)

        view = await orch.run({"code": "C1", "state": state})

        assert view.status == CallbackStatus.SUCCESS
        assert view.error_message is None
        backend.exchange_code.assert_awaited_once_with("C1", state, REDIRECT)
        backend.login_with_ticket.assert_awaited_once_with("ticket-1")
        backend.connect_with_ticket.assert_not_called()
        assert session.token == "session-token"
        assert session.user_id == "u-1"
        backend.set_token.assert_called_with("session-token")
        notifier.success.assert_called_once_with("Welcome, Ada!")
        navigator.navigate.assert_called_once_with("/app")
        assert store.status(FlowPurpose.LOGIN) == TokenStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_second_run_on_same_instance_is_noop(self):
        orch, store, backend, _, notifier, navigator = _orchestrator(FlowPurpose.LOGIN)
        state = store.issue(FlowPurpose.LOGIN)

        await orch.run({"code": "C1", "state": state})
        view = await orch.run({"code": "C1", "state": state})

        assert view.status == CallbackStatus.DUPLICATE
        backend.exchange_code.assert_awaited_once()
        assert notifier.success.call_count == 1
        assert navigator.navigate.call_count == 1

    @pytest.mark.asyncio
    async def test_remount_with_same_params_issues_no_second_exchange(self):
        store = StateTokenStore()
        backend = _backend()
        state = store.issue(FlowPurpose.LOGIN)
        first, *_ = _orchestrator(FlowPurpose.LOGIN, store=store, backend=backend)
        second, _, _, _, notifier, navigator = _orchestrator(FlowPurpose.LOGIN, store=store, backend=backend)

        await first.run({"code": "C1", "state": state})
        view = await second.run({"code": "C1", "state": state})

        assert view.status == CallbackStatus.DUPLICATE
        backend.exchange_code.assert_awaited_once()
        notifier.success.assert_not_called()
        notifier.error.assert_not_called()
        navigator.navigate.assert_not_called()

    @pytest.mark.asyncio
    async def test_overlapping_invocations_exchange_once(self):
        store = StateTokenStore()
        backend = _backend()
        release = asyncio.Event()

        async def slow_exchange(*args):
            await release.wait()
            return ExchangeResult(profile=PROFILE, ticket="ticket-1")

        backend.exchange_code = AsyncMock(side_effect=slow_exchange)
        state = store.issue(FlowPurpose.LOGIN)
        first, *_ = _orchestrator(FlowPurpose.LOGIN, store=store, backend=backend)
        second, *_ = _orchestrator(FlowPurpose.LOGIN, store=store, backend=backend)

        first_task = asyncio.ensure_future(first.run({"code": "C1", "state": state}))
        await asyncio.sleep(0)
        second_view = await second.run({"code": "C1", "state": state})
        release.set()
        first_view = await first_task

        assert second_view.status == CallbackStatus.DUPLICATE
        assert first_view.status == CallbackStatus.SUCCESS
        assert backend.exchange_code.await_count == 1

    @pytest.mark.asyncio
    async def test_state_mismatch(self):
        sleep = AsyncMock()
        orch, store, backend, _, notifier, navigator = _orchestrator(FlowPurpose.LOGIN, sleep=sleep)
        store.issue(FlowPurpose.LOGIN)

        view = await orch.run({"code": "C1", "state": "forged"})

        assert view.status == CallbackStatus.ERROR
        assert view.error_message == CSRF_MESSAGE
        backend.exchange_code.assert_not_called()
        notifier.error.assert_called_once_with(CSRF_MESSAGE)
        sleep.assert_awaited_once_with(2.0)
        navigator.navigate.assert_called_once_with("/login")
        assert store.status(FlowPurpose.LOGIN) is None

    @pytest.mark.asyncio
    async def test_provider_error_is_surfaced(self):
        orch, store, backend, _, notifier, _ = _orchestrator(FlowPurpose.LOGIN)
        store.issue(FlowPurpose.LOGIN)

        view = await orch.run({"error": "access_denied", "error_description": "User cancelled"})

        assert view.error_message == "Google OAuth error: access_denied - User cancelled"
        backend.exchange_code.assert_not_called()
        assert store.status(FlowPurpose.LOGIN) is None

    @pytest.mark.asyncio
    async def test_missing_params(self):
        orch, store, backend, _, _, navigator = _orchestrator(FlowPurpose.LOGIN)
        store.issue(FlowPurpose.LOGIN)

        view = await orch.run({"code": "C1"})

        assert view.status == CallbackStatus.ERROR
        backend.exchange_code.assert_not_called()
        navigator.navigate.assert_called_once_with("/login")

    @pytest.mark.asyncio
    async def test_exchange_failure_is_generic(self):
        backend = _backend()
        backend.exchange_code = AsyncMock(
            side_effect=ExchangeFailedError("invalid_grant: code already redeemed"),
        )
        orch, store, _, session, notifier, navigator = _orchestrator(FlowPurpose.LOGIN, backend=backend)
        state = store.issue(FlowPurpose.LOGIN)

        view = await orch.run({"code": "C1", "state": state})

        assert view.error_message == EXCHANGE_FAILED_MESSAGE
        backend.login_with_ticket.assert_not_called()
        assert session.token is None
        notifier.error.assert_called_once_with(EXCHANGE_FAILED_MESSAGE)
        navigator.navigate.assert_called_once_with("/login")
        assert store.status(FlowPurpose.LOGIN) is None

    @pytest.mark.asyncio
    async def test_email_conflict_message(self):
        backend = _backend()
        backend.login_with_ticket = AsyncMock(side_effect=EmailAlreadyExistsError())
        orch, store, *_ = _orchestrator(FlowPurpose.LOGIN, backend=backend)
        state = store.issue(FlowPurpose.LOGIN)

        view = await orch.run({"code": "C1", "state": state})

        assert view.status == CallbackStatus.ERROR
        assert view.error_message == "Another user account already uses this email address"

    @pytest.mark.asyncio
    async def test_forged_callback_during_valid_one_keeps_duplicate_suppression(self):
        store = StateTokenStore()
        backend = _backend()
        release = asyncio.Event()

        async def slow_exchange(*args):
            await release.wait()
            return ExchangeResult(profile=PROFILE, ticket="ticket-1")

        backend.exchange_code = AsyncMock(side_effect=slow_exchange)
        state = store.issue(FlowPurpose.LOGIN)
        genuine, *_ = _orchestrator(FlowPurpose.LOGIN, store=store, backend=backend)
        forged, *_ = _orchestrator(FlowPurpose.LOGIN, store=store, backend=backend)

        genuine_task = asyncio.ensure_future(genuine.run({"code": "C1", "state": state}))
        await asyncio.sleep(0)
        forged_view = await forged.run({"code": "C9", "state": "forged"})
        assert forged_view.error_message == CSRF_MESSAGE
        assert store.status(FlowPurpose.LOGIN) == TokenStatus.IN_PROGRESS

        release.set()
        assert (await genuine_task).status == CallbackStatus.SUCCESS
        assert store.status(FlowPurpose.LOGIN) == TokenStatus.PROCESSED

        remount, _, _, _, notifier, navigator = _orchestrator(FlowPurpose.LOGIN, store=store, backend=backend)
        view = await remount.run({"code": "C1", "state": state})
        assert view.status == CallbackStatus.DUPLICATE
        notifier.error.assert_not_called()
        navigator.navigate.assert_not_called()

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_cleanly(self):
        backend = _backend()
        backend.login_with_ticket = AsyncMock(side_effect=KeyError("token"))
        orch, store, _, session, notifier, navigator = _orchestrator(FlowPurpose.LOGIN, backend=backend)
        state = store.issue(FlowPurpose.LOGIN)

        view = await orch.run({"code": "C1", "state": state})

        assert view.status == CallbackStatus.ERROR
        assert view.error_message == INTERNAL_ERROR_MESSAGE
        assert session.token is None
        notifier.error.assert_called_once_with(INTERNAL_ERROR_MESSAGE)
        navigator.navigate.assert_called_once_with("/login")
        assert store.status(FlowPurpose.LOGIN) is None

    @pytest.mark.asyncio
    async def test_malformed_backend_response_fails_cleanly(self):
        backend = _backend()
        backend.login_with_ticket = AsyncMock(
            side_effect=lambda ticket: LoginResult.model_validate({"success": True}),
        )
        orch, store, _, _, notifier, navigator = _orchestrator(FlowPurpose.LOGIN, backend=backend)
        state = store.issue(FlowPurpose.LOGIN)

        view = await orch.run({"code": "C1", "state": state})

        assert view.status == CallbackStatus.ERROR
        notifier.error.assert_called_once_with(INTERNAL_ERROR_MESSAGE)
        navigator.navigate.assert_called_once_with("/login")
        assert store.status(FlowPurpose.LOGIN) is None


class TestConnectCallback:
    @pytest.mark.asyncio
    async def test_success(self):
        session = ClientSession(token="existing-session", user_id="u-9")
        orch, store, backend, _, notifier, navigator = _orchestrator(FlowPurpose.CONNECT, session=session)
        state = store.issue(FlowPurpose.CONNECT)

        view = await orch.run({"code": "C1", "state": state})

        assert view.status == CallbackStatus.SUCCESS
        backend.set_token.assert_not_called()
        backend.connect_with_ticket.assert_awaited_once_with("ticket-1", token="existing-session")
        backend.login_with_ticket.assert_not_called()
        notifier.success.assert_called_once_with("Google account connected successfully!")
        navigator.navigate.assert_called_once_with("/app/profile")

    @pytest.mark.asyncio
    async def test_requires_signed_in_user(self):
        orch, store, backend, _, notifier, navigator = _orchestrator(FlowPurpose.CONNECT)
        state = store.issue(FlowPurpose.CONNECT)

        view = await orch.run({"code": "C1", "state": state})

        assert view.status == CallbackStatus.ERROR
        assert view.error_message == "You must be logged in to connect a Google account"
        backend.exchange_code.assert_not_called()
        navigator.navigate.assert_called_once_with("/login")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, message",
        [
            (AlreadyConnectedError(), "This Google account is already connected to your account"),
            (GoogleAccountInUseError(), "This Google account is already connected to another user"),
            (EmailAlreadyExistsError(), "Another user account already uses this email address"),
        ],
    )
    async def test_conflicts_map_to_messages(self, error, message):
        backend = _backend()
        backend.connect_with_ticket = AsyncMock(side_effect=error)
        session = ClientSession(token="existing-session", user_id="u-9")
        orch, store, _, _, notifier, navigator = _orchestrator(
            FlowPurpose.CONNECT, backend=backend, session=session,
        )
        state = store.issue(FlowPurpose.CONNECT)

        view = await orch.run({"code": "C1", "state": state})

        assert view.status == CallbackStatus.ERROR
        assert view.error_message == message
        notifier.error.assert_called_once_with(message)
        navigator.navigate.assert_called_once_with("/app/profile")
        assert store.status(FlowPurpose.CONNECT) is None

    @pytest.mark.asyncio
    async def test_login_state_does_not_validate_connect_flow(self):
        session = ClientSession(token="existing-session", user_id="u-9")
        orch, store, backend, *_ = _orchestrator(FlowPurpose.CONNECT, session=session)
        login_state = store.issue(FlowPurpose.LOGIN)
        store.issue(FlowPurpose.CONNECT)

        view = await orch.run({"code": "C1", "state": login_state})

        assert view.error_message == CSRF_MESSAGE
        backend.exchange_code.assert_not_called()
        assert store.status(FlowPurpose.LOGIN) == TokenStatus.PENDING
