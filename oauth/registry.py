"""
Provider registry — maps a provider type string to its implementation.
"""

from __future__ import annotations

from typing import Dict

from auth.errors import ValidationError
from oauth.base import BaseIdentityProvider
from oauth.google import GoogleProvider

_PROVIDERS: Dict[str, BaseIdentityProvider] = {
    p.provider_type: p for p in (GoogleProvider(),)
}


def get_provider(provider_type: str) -> BaseIdentityProvider:
    """Return the provider for ``provider_type`` or raise ``ValidationError``."""
    provider = _PROVIDERS.get(getattr(provider_type, "value", provider_type))
    if provider is None:
        raise ValidationError(f"Unsupported provider type: {provider_type}")
    return provider

