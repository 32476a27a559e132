"""
Code exchange service — authorization code → verified ``ExternalProfile``.

Runs server-side with the decrypted client secret. Stateless per call: the
``state`` value is passed through for logging only; CSRF validation belongs
to the client's state token store (or the popup route's login requests).
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from auth.errors import ProviderDisabledError
from oauth.config_store import load_credentials
from oauth.registry import get_provider
from oauth.tickets import issue_ticket
from utils.schemas import ExchangeResult, ProviderType

logger = logging.getLogger(__name__)


async def exchange_code(
    session: AsyncSession,
    code: str,
    state: str,
    redirect_uri: str,
    *,
    provider_type: str = ProviderType.GOOGLE.value,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ExchangeResult:
    """
    Exchange ``code`` for the user's profile.

    Raises
    ------
    ProviderDisabledError
        Provider disabled or credentials incomplete.
    ExchangeFailedError
        The provider rejected the code (expired, reused, redirect mismatch)
        or its response could not be parsed into a profile.
    """
    provider = get_provider(provider_type)
    credentials = await load_credentials(session, provider.provider_type)
    if credentials is None or not credentials.enabled or not credentials.is_configured:
        raise ProviderDisabledError()

    logger.info(
        "Exchanging %s authorization code (state %s)",
        provider.display_name,
        "present" if state else "absent",
    )
    profile = await provider.fetch_profile(credentials, code, redirect_uri, client=http_client)
    logger.info("%s profile verified for provider user %s", provider.display_name, profile.provider_user_id)

    return ExchangeResult(
        success=True,
        profile=profile,
        ticket=issue_ticket(profile, provider.provider_type),
    )
