"""
Google sign-in and account linking service — application entry point.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_exception_handlers, register_middleware
from api.routes import router as api_router
from auth.routes import router as auth_router
from config.settings import config
from database.session import async_session_factory, create_schema
from oauth.admin_routes import router as admin_auth_config_router
from oauth.encryption import is_encryption_enabled
from oauth.login_requests import cleanup_expired_login_requests
from oauth.routes import router as google_auth_router

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3", "sqlalchemy.engine", "aiosqlite"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Google Sign-In & Account Linking",
        version="1.0.0",
        description="Google OAuth login, account linking and admin auth configuration.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(auth_router, prefix="/api/v1/auth")
    app.include_router(google_auth_router, prefix="/api/v1/auth/google")
    app.include_router(admin_auth_config_router, prefix="/api/v1/admin/auth-config")
    app.include_router(api_router, prefix="/api/v1")

    @app.on_event("startup")
    async def on_startup():
        await create_schema()
        async with async_session_factory() as session:
            await cleanup_expired_login_requests(session)
        if not is_encryption_enabled():
            logger.warning("TOKEN_ENCRYPTION_KEY not set — client secrets are stored unencrypted")
        logger.info("Application ready to accept requests.")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
