"""
Auth config store — admin-managed provider credentials and enablement.

One record per provider type. Every admin operation re-checks the caller's
privilege on each call and checks it before touching the database, so an
unauthorised call never mutates anything. The client secret is encrypted at
rest and never leaves this module except through ``load_credentials``,
which only the server-side code exchange uses.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urlsplit

from sqlalchemy.ext.asyncio import AsyncSession

from auth.errors import ValidationError
from auth.permissions import require_auth_admin
from database.helpers import get_provider_config
from database.models import AuthProviderConfig, User
from oauth.base import ProviderCredentials
from oauth.encryption import decrypt_secret, encrypt_secret
from oauth.registry import get_provider
from utils.schemas import (
    AuthConfigUpdate,
    AuthProviderConfigView,
    ConfigTestDetails,
    ConfigTestReport,
    ProviderAvailability,
    PublicProviderConfig,
    StatusMessage,
)

logger = logging.getLogger(__name__)


def _is_absolute_url(value: str) -> bool:
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return bool(parts.scheme and parts.netloc) and value == value.strip()


def _to_view(row: AuthProviderConfig) -> AuthProviderConfigView:
    return AuthProviderConfigView(
        type=row.provider_type,
        enabled=bool(row.enabled),
        client_id=row.client_id or "",
        has_client_secret=bool(row.client_secret),
        is_configured=bool(row.client_id and row.client_secret),
        redirect_uris=list(row.redirect_uris or []),
        configured_by=str(row.configured_by) if row.configured_by else None,
        configured_at=row.configured_at,
    )


# ── Admin operations ───────────────────────────────────────────────────


async def get_config(
    session: AsyncSession,
    actor: Optional[User],
    provider_type: str,
) -> Optional[AuthProviderConfigView]:
    """Return the redacted config, or ``None`` if the provider was never configured."""
    require_auth_admin(actor, "view Google Auth configuration")
    provider = get_provider(provider_type)
    row = await get_provider_config(session, provider.provider_type)
    return _to_view(row) if row is not None else None


async def upsert_config(
    session: AsyncSession,
    actor: Optional[User],
    provider_type: str,
    update: AuthConfigUpdate,
) -> AuthProviderConfigView:
    """
    Create or update the provider config.

    A blank ``client_secret`` on update keeps the stored one; on first
    creation a secret is mandatory.
    """
    admin = require_auth_admin(actor, "configure Google Auth")
    provider = get_provider(provider_type)

    client_id = update.client_id.strip()
    if not client_id:
        raise ValidationError("Client ID is required")

    existing = await get_provider_config(session, provider.provider_type)
    incoming_secret = update.client_secret.strip()
    has_existing_secret = existing is not None and bool(existing.client_secret)
    if not has_existing_secret and not incoming_secret:
        raise ValidationError("Client Secret is required for new configuration")

    redirect_uris: List[str] = list(update.redirect_uris)
    for uri in redirect_uris:
        if not _is_absolute_url(uri):
            raise ValidationError(f"Invalid redirect URI: {uri}")

    now = datetime.now(timezone.utc)
    secret_to_store = encrypt_secret(incoming_secret) if incoming_secret else existing.client_secret

    if existing is None:
        existing = AuthProviderConfig(provider_type=provider.provider_type)
        session.add(existing)
    existing.enabled = update.enabled
    existing.client_id = client_id
    existing.client_secret = secret_to_store
    existing.redirect_uris = redirect_uris
    existing.configured_by = admin.user_id
    existing.configured_at = now
    await session.flush()

    logger.info(
        "%s auth config updated by %s (enabled=%s, secret_rotated=%s, redirect_uris=%d)",
        provider.display_name,
        admin.user_id,
        update.enabled,
        bool(incoming_secret),
        len(redirect_uris),
    )
    return _to_view(existing)


async def toggle_enabled(
    session: AsyncSession,
    actor: Optional[User],
    provider_type: str,
    enabled: bool,
) -> StatusMessage:
    """Flip enablement without touching credentials; creates a stub record if none exists."""
    admin = require_auth_admin(actor, "toggle Google Auth")
    provider = get_provider(provider_type)
    now = datetime.now(timezone.utc)

    row = await get_provider_config(session, provider.provider_type)
    if row is None:
        row = AuthProviderConfig(
            provider_type=provider.provider_type,
            client_id="",
            client_secret="",
            redirect_uris=[],
            configured_by=admin.user_id,
        )
        session.add(row)
    row.enabled = enabled
    row.configured_at = now
    await session.flush()

    state = "enabled" if enabled else "disabled"
    logger.info("%s auth %s by %s", provider.display_name, state, admin.user_id)
    return StatusMessage(success=True, message=f"{provider.display_name} Auth {state} successfully")


async def run_config_test(
    session: AsyncSession,
    actor: Optional[User],
    provider_type: str,
) -> ConfigTestReport:
    """Report which fields are missing, regardless of enablement. Never reveals values."""
    require_auth_admin(actor, "test Google Auth configuration")
    provider = get_provider(provider_type)
    row = await get_provider_config(session, provider.provider_type)
    if row is None:
        return ConfigTestReport(
            success=False,
            message=f"{provider.display_name} Auth configuration not found",
            missing_fields=["clientId", "clientSecret", "redirectUris"],
        )

    missing: List[str] = []
    issues: List[str] = []
    if not row.client_id:
        missing.append("clientId")
        issues.append("Missing Client ID")
    if not row.client_secret:
        missing.append("clientSecret")
        issues.append("Missing Client Secret")
    if not row.redirect_uris:
        missing.append("redirectUris")
        issues.append("No redirect URIs configured")

    details = ConfigTestDetails(
        enabled=bool(row.enabled),
        has_client_id=bool(row.client_id),
        has_client_secret=bool(row.client_secret),
        redirect_uris_count=len(row.redirect_uris or []),
        configuration_status="incomplete" if missing else "valid",
    )
    if missing:
        return ConfigTestReport(
            success=False,
            message=f"Configuration is incomplete: {', '.join(issues)}",
            missing_fields=missing,
            details=details,
        )

    if row.enabled:
        message = f"{provider.display_name} Auth configuration is valid and enabled"
    else:
        message = f"{provider.display_name} Auth configuration is valid but currently disabled"
    return ConfigTestReport(success=True, message=message, details=details)


async def reset_config(
    session: AsyncSession,
    actor: Optional[User],
    provider_type: str,
) -> StatusMessage:
    """Delete the record entirely."""
    admin = require_auth_admin(actor, "reset Google Auth configuration")
    provider = get_provider(provider_type)
    row = await get_provider_config(session, provider.provider_type)
    if row is not None:
        await session.delete(row)
        await session.flush()
        logger.info("%s auth config reset by %s", provider.display_name, admin.user_id)
    return StatusMessage(
        success=True,
        message=f"{provider.display_name} Auth configuration has been reset",
    )


# ── Non-admin reads ────────────────────────────────────────────────────


async def get_public_config(session: AsyncSession, provider_type: str) -> PublicProviderConfig:
    """Client-safe subset: enablement and client id."""
    provider = get_provider(provider_type)
    row = await get_provider_config(session, provider.provider_type)
    if row is None:
        return PublicProviderConfig(enabled=False, client_id=None)
    return PublicProviderConfig(enabled=bool(row.enabled), client_id=row.client_id or None)


async def get_availability(session: AsyncSession, provider_type: str) -> ProviderAvailability:
    """The provider is available when it is configured AND enabled."""
    provider = get_provider(provider_type)
    row = await get_provider_config(session, provider.provider_type)
    has_client_id = bool(row is not None and row.client_id)
    has_client_secret = bool(row is not None and row.client_secret)
    is_configured = has_client_id and has_client_secret
    is_enabled = bool(row is not None and row.enabled)
    return ProviderAvailability(
        available=is_configured and is_enabled,
        is_configured=is_configured,
        is_enabled=is_enabled,
        has_client_id=has_client_id,
        has_client_secret=has_client_secret,
    )


async def load_credentials(session: AsyncSession, provider_type: str) -> Optional[ProviderCredentials]:
    """Server-side only: credentials with the decrypted secret."""
    provider = get_provider(provider_type)
    row = await get_provider_config(session, provider.provider_type)
    if row is None:
        return None
    return ProviderCredentials(
        client_id=row.client_id or "",
        client_secret=decrypt_secret(row.client_secret or ""),
        enabled=bool(row.enabled),
        redirect_uris=tuple(row.redirect_uris or ()),
    )
