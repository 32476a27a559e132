"""
Auth API routes — register, login, me.

Password accounts are the "other sign-in method" that Google sign-in
refuses to merge into by email.

Route prefix: /api/v1/auth
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import db_session, get_current_user
from auth.errors import EmailAlreadyExistsError, UnauthorizedError, ValidationError
from auth.jwt import create_token
from auth.password import hash_password, verify_password
from auth.permissions import get_access_level, initial_access_level
from database.helpers import get_user_by_email
from database.models import User

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


# ── Request / response schemas ─────────────────────────────────────────


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=2, max_length=64)
    email: str = Field(..., min_length=5, max_length=255)
    password: str = Field(..., min_length=4, max_length=128)


class LoginRequest(BaseModel):
    email: str
    password: str


class AuthResponse(BaseModel):
    user_id: str
    display_name: str
    email: str
    token: str


class MeResponse(BaseModel):
    user_id: str
    display_name: str
    email: str
    access_level: str
    auth_method: str
    picture: Optional[str] = None


# ── Endpoints ──────────────────────────────────────────────────────────


@router.post("/register", response_model=AuthResponse)
async def register(
    req: RegisterRequest,
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """Register a new password user."""
    email = req.email.strip()
    if "@" not in email:
        raise ValidationError("A valid email address is required")
    if await get_user_by_email(session, email) is not None:
        raise EmailAlreadyExistsError("Email already registered")

    user = User(
        user_id=uuid.uuid4(),
        email=email,
        display_name=req.username,
        password_hash=hash_password(req.password),
        access_level=initial_access_level(email),
        auth_method="password",
    )
    session.add(user)
    await session.flush()

    token = create_token(str(user.user_id))
    logger.info("Registered user %s (%s, %s)", req.username, user.user_id, user.access_level)

    return {
        "user_id": str(user.user_id),
        "display_name": user.display_name,
        "email": user.email,
        "token": token,
    }


@router.post("/login", response_model=AuthResponse)
async def login(
    req: LoginRequest,
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """Login with email + password."""
    user = await get_user_by_email(session, req.email.strip())

    # Google-only accounts have no password hash and never match here.
    if user is None or not verify_password(req.password, user.password_hash):
        raise UnauthorizedError("Invalid email or password")

    token = create_token(str(user.user_id))
    logger.info("Login: %s (%s)", user.display_name, user.user_id)

    return {
        "user_id": str(user.user_id),
        "display_name": user.display_name,
        "email": user.email,
        "token": token,
    }


@router.get("/me", response_model=MeResponse)
async def me(user: User = Depends(get_current_user)) -> Dict[str, Any]:
    return {
        "user_id": str(user.user_id),
        "display_name": user.display_name or "",
        "email": user.email,
        "access_level": get_access_level(user),
        "auth_method": user.auth_method or "password",
        "picture": user.picture,
    }
