"""
Authorization URL builder.

Pure function: the same config, redirect URI and state always produce the
same URL. The caller owns the state value (see ``client.state_store``).
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import urlencode

from auth.errors import ProviderDisabledError
from oauth.base import BaseIdentityProvider
from oauth.registry import get_provider
from utils.schemas import ProviderType


def build_authorization_url(
    config: Any,
    *,
    redirect_uri: str,
    state: str,
    provider: Optional[BaseIdentityProvider] = None,
) -> str:
    """
    Build the provider's OAuth2 authorization URL.

    Parameters
    ----------
    config
        Any object exposing ``enabled`` and ``client_id`` (public config,
        admin view or server credentials).
    redirect_uri : str
        Where the provider sends the user back with ``code`` and ``state``.
    state : str
        Opaque CSRF value, round-tripped unchanged.

    Raises
    ------
    ProviderDisabledError
        The provider is switched off or has no client id.
    """
    if not getattr(config, "enabled", False) or not getattr(config, "client_id", None):
        raise ProviderDisabledError()

    provider = provider or get_provider(ProviderType.GOOGLE)
    params = {
        "client_id": config.client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(provider.scopes),
        "state": state,
    }
    params.update(provider.extra_authorization_params())
    return f"{provider.authorization_endpoint}?{urlencode(params)}"
