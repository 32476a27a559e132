"""
Callback orchestrator — drives one OAuth callback invocation to completion.

Sequence (short-circuits on the first failure):
  1. Check the caller's sign-in state against the flow purpose
  2. Read ``code`` / ``state`` (or the provider's ``error``)
  3. Validate the CSRF state; duplicates end here silently
  4. Exchange the code for a profile ticket
  5. Login or connect with the ticket
  6. Notify and navigate; on failure, clear state, pause, navigate back

Any unexpected exception is reported as an internal error and takes the
same failure path, so the page never stalls with a token in progress.

Presentation code only ever sees the returned ``CallbackView``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Mapping, Optional, Protocol

from auth.errors import AuthFlowError, CSRFMismatchError, ExchangeFailedError, InternalError
from client.backend import AuthBackendClient
from client.state_store import StateCheck, StateTokenStore
from config.settings import config
from utils.schemas import FlowPurpose

logger = logging.getLogger(__name__)

LOGIN_CALLBACK_PATH = "/login/google/callback"
CONNECT_CALLBACK_PATH = "/app/profile/connect/google/callback"

_SUCCESS_ROUTES: Dict[FlowPurpose, str] = {
    FlowPurpose.LOGIN: "/app",
    FlowPurpose.CONNECT: "/app/profile",
}
_FAILURE_ROUTES: Dict[FlowPurpose, str] = {
    FlowPurpose.LOGIN: "/login",
    FlowPurpose.CONNECT: "/app/profile",
}

_CONFLICT_MESSAGES: Dict[str, str] = {
    "ALREADY_CONNECTED": "This Google account is already connected to your account",
    "GOOGLE_ACCOUNT_IN_USE": "This Google account is already connected to another user",
    "EMAIL_ALREADY_EXISTS": "Another user account already uses this email address",
}

CSRF_MESSAGE = CSRFMismatchError.default_message
EXCHANGE_FAILED_MESSAGE = ExchangeFailedError.default_message
NOT_SIGNED_IN_MESSAGE = "You must be logged in to connect a Google account"
INTERNAL_ERROR_MESSAGE = InternalError.default_message


class CallbackStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class CallbackView:
    status: CallbackStatus
    error_message: Optional[str] = None


class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class Navigator(Protocol):
    def navigate(self, path: str) -> None: ...


@dataclass
class ClientSession:
    """The browser's signed-in state."""

    token: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def sign_in(self, token: str, user_id: str) -> None:
        self.token = token
        self.user_id = user_id


class _FlowFailure(Exception):
    def __init__(self, message: str, redirect_to: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.redirect_to = redirect_to


class CallbackOrchestrator:
    """
    One instance per callback page mount.

    Parameters
    ----------
    purpose : FlowPurpose
        ``login`` or ``connect``; selects the state namespace, the backend
        operation and the destination routes.
    redirect_uri : str
        Must equal the one used when the flow was started.
    failure_delay : float, optional
        Pause before navigating away from an error, so the message is seen.
    sleep : callable, optional
        Injected by tests to skip the delay.
    """

    def __init__(
        self,
        purpose: FlowPurpose,
        *,
        state_store: StateTokenStore,
        backend: AuthBackendClient,
        session: ClientSession,
        notifier: Notifier,
        navigator: Navigator,
        redirect_uri: str,
        failure_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.purpose = FlowPurpose(purpose)
        self._state_store = state_store
        self._backend = backend
        self._session = session
        self._notifier = notifier
        self._navigator = navigator
        self._redirect_uri = redirect_uri
        self._failure_delay = (
            failure_delay if failure_delay is not None else config.callback_failure_delay_seconds
        )
        self._sleep = sleep
        self._completed = False
        self._owns_state = False

    async def run(self, params: Mapping[str, Optional[str]]) -> CallbackView:
        """Process the callback query parameters at most once."""
        if self._completed:
            logger.debug("Ignoring repeated %s callback trigger", self.purpose.value)
            return CallbackView(CallbackStatus.DUPLICATE)
        self._completed = True

        try:
            return await self._process(params)
        except _FlowFailure as failure:
            return await self._fail(failure)
        except Exception as exc:
            logger.error("Unexpected failure in %s callback: %s", self.purpose.value, exc, exc_info=True)
            return await self._fail(_FlowFailure(INTERNAL_ERROR_MESSAGE))

    async def _process(self, params: Mapping[str, Optional[str]]) -> CallbackView:
        # 1. Sign-in state
        if self.purpose == FlowPurpose.CONNECT and not self._session.is_authenticated:
            raise _FlowFailure(NOT_SIGNED_IN_MESSAGE, redirect_to="/login")

        # 2. Query parameters
        error = params.get("error")
        if error:
            description = params.get("error_description")
            message = f"Google OAuth error: {error}"
            if description:
                message += f" - {description}"
            raise _FlowFailure(message)
        code = params.get("code")
        state = params.get("state")
        if not code or not state:
            raise _FlowFailure("Missing authorization code or state parameter")

        # 3. CSRF state
        check = self._state_store.validate(self.purpose, state)
        if check in (StateCheck.IN_PROGRESS, StateCheck.ALREADY_PROCESSED):
            logger.info("Duplicate %s callback suppressed (%s)", self.purpose.value, check.value)
            return CallbackView(CallbackStatus.DUPLICATE)
        if check != StateCheck.VALID:
            raise _FlowFailure(CSRF_MESSAGE)
        self._owns_state = True

        # 4. Exchange
        try:
            exchanged = await self._backend.exchange_code(code, state, self._redirect_uri)
        except Exception as exc:
            logger.warning("Code exchange failed for %s flow: %s", self.purpose.value, exc)
            raise _FlowFailure(EXCHANGE_FAILED_MESSAGE)

        # 5. Reconcile
        try:
            if self.purpose == FlowPurpose.LOGIN:
                result = await self._backend.login_with_ticket(exchanged.ticket)
                self._session.sign_in(result.token, result.user_id)
                self._backend.set_token(result.token)
                success_message = f"Welcome, {result.display_name}!"
            else:
                await self._backend.connect_with_ticket(exchanged.ticket, token=self._session.token)
                success_message = "Google account connected successfully!"
        except AuthFlowError as exc:
            logger.info("Google %s rejected (%s)", self.purpose.value, exc.code)
            raise _FlowFailure(_CONFLICT_MESSAGES.get(exc.code, exc.message))

        # 6. Done
        self._state_store.mark_processed(self.purpose)
        self._notifier.success(success_message)
        self._navigator.navigate(_SUCCESS_ROUTES[self.purpose])
        return CallbackView(CallbackStatus.SUCCESS)

    async def _fail(self, failure: _FlowFailure) -> CallbackView:
        # An in-progress record belongs to whichever invocation validated it.
        if self._owns_state:
            self._state_store.clear(self.purpose)
        else:
            self._state_store.discard_pending(self.purpose)
        self._notifier.error(failure.message)
        await self._sleep(self._failure_delay)
        self._navigator.navigate(failure.redirect_to or _FAILURE_ROUTES[self.purpose])
        return CallbackView(CallbackStatus.ERROR, failure.message)
