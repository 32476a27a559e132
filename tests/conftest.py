"""
Shared fixtures: a throwaway SQLite database per test, the FastAPI app
wired to it, and an ASGI-backed httpx client.
"""

import os
import tempfile
import uuid

_TMP_DIR = tempfile.mkdtemp(prefix="auth-linking-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP_DIR}/default.db")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("OAUTH_STATE_SECRET", "test-oauth-state-secret")
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from auth.jwt import create_token
from auth.permissions import SYSTEM_ADMIN
from database.models import AuthProviderConfig, Base, User
from database.session import get_db_session
from oauth.encryption import encrypt_secret

GOOGLE_CLIENT_ID = "client-123.apps.googleusercontent.com"
GOOGLE_CLIENT_SECRET = "google-secret-xyz"
REDIRECT_URI = "http://localhost:3000/login/google/callback"


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


async def make_user(
    session: AsyncSession,
    email: str,
    *,
    access_level: str = "user",
    password_hash: str = "",
    auth_method: str = "password",
) -> User:
    user = User(
        user_id=uuid.uuid4(),
        email=email,
        display_name=email.split("@")[0],
        password_hash=password_hash,
        access_level=access_level,
        auth_method=auth_method,
    )
    session.add(user)
    await session.commit()
    return user


async def configure_google(
    session: AsyncSession,
    *,
    enabled: bool = True,
    client_id: str = GOOGLE_CLIENT_ID,
    client_secret: str = GOOGLE_CLIENT_SECRET,
) -> AuthProviderConfig:
    row = AuthProviderConfig(
        provider_type="google",
        enabled=enabled,
        client_id=client_id,
        client_secret=encrypt_secret(client_secret),
        redirect_uris=[REDIRECT_URI],
    )
    session.add(row)
    await session.commit()
    return row


@pytest_asyncio.fixture
async def admin(session):
    return await make_user(session, "admin@example.com", access_level=SYSTEM_ADMIN)


@pytest_asyncio.fixture
async def member(session):
    return await make_user(session, "member@example.com")


@pytest.fixture
def app(session_factory):
    from main import create_app

    application = create_app()

    async def _override_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    application.dependency_overrides[get_db_session] = _override_session
    return application


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


def bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {create_token(str(user.user_id))}"}
