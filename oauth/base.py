"""
BaseIdentityProvider — abstract interface for the OAuth2 identity provider.

A provider knows its endpoints, its scopes and how to turn an authorization
code into an ``ExternalProfile``. Credentials are passed in per call: they
live in the admin-managed config store, not in the provider object.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx

from utils.schemas import ExternalProfile


@dataclass(frozen=True)
class ProviderCredentials:
    """Server-side only; holds the decrypted client secret."""

    client_id: str
    client_secret: str
    enabled: bool
    redirect_uris: tuple = ()

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


class BaseIdentityProvider(ABC):
    """Abstract base for OAuth2 / OIDC identity providers."""

    # ── Identity ────────────────────────────────────────────────────────
    @property
    @abstractmethod
    def provider_type(self) -> str:
        """Unique slug, e.g. 'google'."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        ...

    @property
    @abstractmethod
    def scopes(self) -> List[str]:
        """OAuth scopes requested at authorization time."""
        ...

    @property
    @abstractmethod
    def authorization_endpoint(self) -> str:
        ...

    def extra_authorization_params(self) -> Dict[str, str]:
        """Provider-specific flags appended to the authorization URL."""
        return {}

    # ── OAuth flow ──────────────────────────────────────────────────────

    @abstractmethod
    async def fetch_profile(
        self,
        credentials: ProviderCredentials,
        code: str,
        redirect_uri: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> ExternalProfile:
        """
        Exchange the authorization code and return the verified profile.

        Raises
        ------
        ExchangeFailedError
            The provider rejected the code or returned an unusable profile.
        """
        ...
