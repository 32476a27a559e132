"""
GoogleProvider — OAuth2 web flow for Google sign-in.

Exchanges the authorization code at Google's token endpoint, then reads
the user's identity from the userinfo endpoint.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from auth.errors import ExchangeFailedError
from config.settings import config
from oauth.base import BaseIdentityProvider, ProviderCredentials
from utils.schemas import ExternalProfile, ProviderType

logger = logging.getLogger(__name__)


class GoogleProvider(BaseIdentityProvider):
    """OAuth2 identity provider for Google accounts."""

    @property
    def provider_type(self) -> str:
        return ProviderType.GOOGLE.value

    @property
    def display_name(self) -> str:
        return "Google"

    @property
    def scopes(self) -> List[str]:
        return ["openid", "email", "profile"]

    @property
    def authorization_endpoint(self) -> str:
        return config.google_auth_url

    def extra_authorization_params(self) -> Dict[str, str]:
        return {
            "access_type": "offline",   # allows a refresh token if ever needed
            "prompt": "consent",        # always show the consent screen
        }

    async def fetch_profile(
        self,
        credentials: ProviderCredentials,
        code: str,
        redirect_uri: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> ExternalProfile:
        """Exchange auth code for an access token, then fetch the profile."""
        own = client or httpx.AsyncClient(timeout=config.google_http_timeout)
        try:
            # 1. Exchange code for tokens
            token_resp = await own.post(
                config.google_token_url,
                data={
                    "code": code,
                    "client_id": credentials.client_id,
                    "client_secret": credentials.client_secret,
                    "redirect_uri": redirect_uri,
                    "grant_type": "authorization_code",
                },
                headers={"Accept": "application/json"},
            )
            if token_resp.status_code != 200:
                logger.error(
                    "Google token exchange rejected: status=%s error=%s",
                    token_resp.status_code,
                    _error_field(token_resp),
                )
                raise ExchangeFailedError("Failed to exchange authorization code for token")

            token_data = token_resp.json()
            access_token = token_data.get("access_token")
            if not access_token:
                logger.error("Google token response carried no access_token")
                raise ExchangeFailedError("Failed to exchange authorization code for token")

            # 2. Fetch user info
            user_resp = await own.get(
                config.google_userinfo_url,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            if user_resp.status_code != 200:
                logger.error("Google profile fetch failed: status=%s", user_resp.status_code)
                raise ExchangeFailedError("Failed to fetch user profile from Google")
            user_info = user_resp.json()
        except httpx.HTTPError as exc:
            logger.error("Google OAuth transport error: %s", type(exc).__name__)
            raise ExchangeFailedError("Google OAuth authentication failed") from exc
        except ValueError as exc:
            logger.error("Google OAuth returned a non-JSON body")
            raise ExchangeFailedError("Google OAuth authentication failed") from exc
        finally:
            if client is None:
                await own.aclose()

        return _profile_from_userinfo(user_info)


def _profile_from_userinfo(user_info: Any) -> ExternalProfile:
    if not isinstance(user_info, dict):
        raise ExchangeFailedError("Invalid Google profile data received")
    provider_user_id = str(user_info.get("id") or user_info.get("sub") or "")
    email = str(user_info.get("email") or "").strip()
    if not provider_user_id or not email:
        raise ExchangeFailedError("Invalid Google profile data received")
    return ExternalProfile(
        provider_user_id=provider_user_id,
        email=email,
        name=user_info.get("name") or email.split("@", 1)[0],
        avatar_url=user_info.get("picture"),
        verified_email=user_info.get("verified_email", user_info.get("email_verified")),
    )


def _error_field(resp: httpx.Response) -> str:
    try:
        return str(resp.json().get("error", "unknown"))
    except (ValueError, AttributeError):
        return "unknown"
