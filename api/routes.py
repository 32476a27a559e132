"""
REST API routes — health and app info.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import db_session
from oauth.config_store import get_availability
from utils.schemas import ProviderType

router = APIRouter()


@router.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@router.get("/appinfo")
async def appinfo(session: AsyncSession = Depends(db_session)) -> Dict[str, Any]:
    """Which sign-in methods the login page should offer."""
    google = await get_availability(session, ProviderType.GOOGLE.value)
    return {
        "auth": {
            "password": True,
            "google": google.available,
            "googleDetails": google.model_dump(),
        },
    }
