"""
Flow start — what the "Sign in with Google" and "Connect Google" buttons do.
"""

from __future__ import annotations

import logging

from auth.errors import AuthFlowError, UnauthorizedError
from client.backend import AuthBackendClient
from client.state_store import StateTokenStore
from utils.schemas import FlowPurpose

logger = logging.getLogger(__name__)


async def start_flow(
    purpose: FlowPurpose,
    *,
    state_store: StateTokenStore,
    backend: AuthBackendClient,
    redirect_uri: str,
) -> str:
    """
    Issue a fresh state token and return the Google authorization URL.

    Any stale token for ``purpose`` is discarded first; if the URL cannot
    be obtained the new token is discarded too so no pending state lingers.
    """
    purpose = FlowPurpose(purpose)
    if purpose == FlowPurpose.CONNECT and not backend.token:
        raise UnauthorizedError("You must be logged in to connect a Google account")

    state_store.clear(purpose)
    state = state_store.issue(purpose)
    try:
        auth_url = await backend.get_authorization_url(redirect_uri, state)
    except AuthFlowError as exc:
        state_store.clear(purpose)
        logger.warning("Could not start %s flow (%s): %s", purpose.value, exc.code, exc.message)
        raise

    logger.info("Started Google %s flow", purpose.value)
    return auth_url
