"""
AuthBackendClient — async HTTP client for the auth API.

Error bodies (``{"code", "message"}``) are turned back into the matching
``AuthFlowError`` subclass so callers can branch on ``exc.code``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from auth.errors import AuthFlowError, InternalError, error_from_payload
from utils.schemas import (
    ConnectResult,
    ExchangeResult,
    LoginResult,
    PublicProviderConfig,
)

logger = logging.getLogger(__name__)

_GOOGLE = "/api/v1/auth/google"


class AuthBackendClient:
    """
    Parameters
    ----------
    base_url : str
        Origin of the auth API, e.g. ``http://localhost:8000``.
    token : str, optional
        Session token sent as a Bearer header.
    client : httpx.AsyncClient, optional
        Shared client; when omitted one is created and owned by this object.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ) -> None:
        self._own_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._token = token

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    async def aclose(self) -> None:
        if self._own_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AuthBackendClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ── Requests ─────────────────────────────────────────────────────────

    async def _request(self, method: str, path: str, *, token: Optional[str] = None, **kwargs: Any) -> Any:
        headers = dict(kwargs.pop("headers", {}) or {})
        bearer = token or self._token
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        try:
            resp = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, path, type(exc).__name__)
            raise InternalError("Could not reach the authentication service") from exc

        if resp.status_code >= 400:
            raise _error_from_response(resp)
        try:
            return resp.json()
        except ValueError as exc:
            raise InternalError("Unexpected response from the authentication service") from exc

    async def get_public_config(self) -> PublicProviderConfig:
        data = await self._request("GET", f"{_GOOGLE}/config")
        return PublicProviderConfig.model_validate(data)

    async def get_authorization_url(self, redirect_uri: str, state: str) -> str:
        data = await self._request(
            "GET",
            f"{_GOOGLE}/auth-url",
            params={"redirect_uri": redirect_uri, "state": state},
        )
        return data["auth_url"]

    async def exchange_code(self, code: str, state: str, redirect_uri: str) -> ExchangeResult:
        data = await self._request(
            "POST",
            f"{_GOOGLE}/exchange",
            json={"code": code, "state": state, "redirect_uri": redirect_uri},
        )
        return ExchangeResult.model_validate(data)

    async def login_with_ticket(self, ticket: str) -> LoginResult:
        data = await self._request("POST", f"{_GOOGLE}/login", json={"ticket": ticket})
        return LoginResult.model_validate(data)

    async def connect_with_ticket(self, ticket: str, *, token: Optional[str] = None) -> ConnectResult:
        """``token`` overrides the client's own session token for this call only."""
        data = await self._request("POST", f"{_GOOGLE}/connect", json={"ticket": ticket}, token=token)
        return ConnectResult.model_validate(data)

    async def get_me(self) -> Dict[str, Any]:
        """The signed-in user as reported by ``/api/v1/auth/me``."""
        return await self._request("GET", "/api/v1/auth/me")


def _error_from_response(resp: httpx.Response) -> AuthFlowError:
    payload: Optional[Dict[str, Any]]
    try:
        body = resp.json()
        payload = body if isinstance(body, dict) else None
    except ValueError:
        payload = None
    return error_from_payload(resp.status_code, payload)
