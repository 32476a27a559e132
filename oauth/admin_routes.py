"""
Admin API routes for third-party auth configuration.

Route prefix: /api/v1/admin/auth-config

The caller is resolved optionally so that an anonymous request and a
non-admin request get distinct errors from the config store.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import db_session, get_optional_user
from database.models import User
from oauth.config_store import (
    get_config,
    reset_config,
    run_config_test,
    toggle_enabled,
    upsert_config,
)
from utils.schemas import (
    AuthConfigUpdate,
    AuthProviderConfigView,
    ConfigTestReport,
    StatusMessage,
    ToggleRequest,
)

router = APIRouter(tags=["admin-auth-config"])


@router.get("/{provider_type}", response_model=Optional[AuthProviderConfigView])
async def read_config(
    provider_type: str,
    user: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(db_session),
) -> Optional[AuthProviderConfigView]:
    """Redacted provider config, or ``null`` if never configured."""
    return await get_config(session, user, provider_type)


@router.put("/{provider_type}", response_model=AuthProviderConfigView)
async def write_config(
    provider_type: str,
    req: AuthConfigUpdate,
    user: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(db_session),
) -> AuthProviderConfigView:
    """Create or update. A blank ``client_secret`` keeps the stored one."""
    view = await upsert_config(session, user, provider_type, req)
    await session.commit()
    return view


@router.post("/{provider_type}/toggle", response_model=StatusMessage)
async def toggle_config(
    provider_type: str,
    req: ToggleRequest,
    user: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(db_session),
) -> StatusMessage:
    result = await toggle_enabled(session, user, provider_type, req.enabled)
    await session.commit()
    return result


@router.post("/{provider_type}/test", response_model=ConfigTestReport)
async def check_config(
    provider_type: str,
    user: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(db_session),
) -> ConfigTestReport:
    """Report missing fields without revealing any values."""
    return await run_config_test(session, user, provider_type)


@router.delete("/{provider_type}", response_model=StatusMessage)
async def delete_config(
    provider_type: str,
    user: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(db_session),
) -> StatusMessage:
    result = await reset_config(session, user, provider_type)
    await session.commit()
    return result
