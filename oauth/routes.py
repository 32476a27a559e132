"""
Google sign-in API routes — public config, authorization URL, code exchange,
login / connect, linked profile, and the popup proxy with its login requests.

Route prefix: /api/v1/auth/google
"""

from __future__ import annotations

import html
import json
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import db_session, get_current_user, get_optional_user
from auth.errors import AuthFlowError, UnauthorizedError
from config.settings import config
from database.helpers import get_user_by_id
from database.models import User
from oauth.authorization import build_authorization_url
from oauth.config_store import get_public_config
from oauth.exchange import exchange_code
from oauth.login_requests import (
    BINDING_COOKIE,
    abandon_login_request,
    claim_login_request,
    create_login_request,
    finish_login_request,
    get_login_request,
    new_binding,
)
from oauth.reconciliation import (
    connect_profile_to_current_user,
    get_linked_profile,
    login_with_profile,
)
from oauth.tickets import open_ticket
from utils.schemas import (
    AuthUrlResponse,
    ConnectResult,
    ExchangeRequest,
    ExchangeResult,
    FlowPurpose,
    GoogleProfileView,
    LoginRequestStatus,
    LoginRequestView,
    LoginResult,
    PopupUrlResponse,
    ProviderType,
    PublicProviderConfig,
    TicketRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["google-auth"])

_PROVIDER = ProviderType.GOOGLE.value

# ── Routes ─────────────────────────────────────────────────────────────


@router.get("/config", response_model=PublicProviderConfig)
async def public_config(session: AsyncSession = Depends(db_session)) -> PublicProviderConfig:
    """
    Enablement and client id only.
    No auth required — the login page uses this to decide whether to show the button.
    """
    return await get_public_config(session, _PROVIDER)


@router.get("/auth-url", response_model=AuthUrlResponse)
async def auth_url(
    redirect_uri: str = Query(..., min_length=1),
    state: str = Query(..., min_length=1),
    session: AsyncSession = Depends(db_session),
) -> AuthUrlResponse:
    """Authorization URL for a client-managed redirect URI and state token."""
    public = await get_public_config(session, _PROVIDER)
    return AuthUrlResponse(
        auth_url=build_authorization_url(public, redirect_uri=redirect_uri, state=state),
    )


@router.post("/exchange", response_model=ExchangeResult)
async def exchange(
    req: ExchangeRequest,
    session: AsyncSession = Depends(db_session),
) -> ExchangeResult:
    """Exchange an authorization code for the verified profile and a profile ticket."""
    return await exchange_code(session, req.code, req.state, req.redirect_uri)


@router.post("/login", response_model=LoginResult)
async def login(
    req: TicketRequest,
    session: AsyncSession = Depends(db_session),
) -> LoginResult:
    """Sign in (or sign up) with a profile ticket from ``/exchange``."""
    profile = open_ticket(req.ticket, _PROVIDER)
    return await login_with_profile(session, profile)


@router.post("/connect", response_model=ConnectResult)
async def connect(
    req: TicketRequest,
    user: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(db_session),
) -> ConnectResult:
    """Link the ticket's Google account to the signed-in user."""
    if user is None:
        raise UnauthorizedError("You must be logged in to connect a Google account")
    profile = open_ticket(req.ticket, _PROVIDER)
    return await connect_profile_to_current_user(session, user, profile)


@router.get("/profile", response_model=Optional[GoogleProfileView])
async def linked_profile(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> Optional[GoogleProfileView]:
    """The caller's linked Google profile, or ``null``."""
    return await get_linked_profile(session, user)


# ── Popup proxy ────────────────────────────────────────────────────────


def _set_binding_cookie(response: Response, binding: str) -> None:
    response.set_cookie(
        BINDING_COOKIE,
        binding,
        max_age=config.login_request_ttl_seconds,
        path="/api/v1/auth/google",
        httponly=True,
        samesite="lax",
        secure=config.popup_cookie_secure,
    )


@router.get("/popup-url", response_model=PopupUrlResponse)
async def popup_url(
    request: Request,
    response: Response,
    purpose: FlowPurpose = Query(FlowPurpose.LOGIN),
    user: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(db_session),
) -> PopupUrlResponse:
    """
    Authorization URL whose redirect lands on ``/callback`` below.

    Frontend should open this URL in a popup window and poll
    ``/login-requests/{request_id}`` until the request settles.
    """
    if purpose == FlowPurpose.CONNECT and user is None:
        raise UnauthorizedError("You must be logged in to connect a Google account")

    public = await get_public_config(session, _PROVIDER)
    binding = request.cookies.get(BINDING_COOKIE) or new_binding()
    request_id, state = await create_login_request(
        session,
        purpose,
        provider=_PROVIDER,
        binding=binding,
        redirect_uri=config.popup_redirect_uri(),
        user_id=user.user_id if user is not None else None,
    )
    _set_binding_cookie(response, binding)
    return PopupUrlResponse(
        auth_url=build_authorization_url(
            public,
            redirect_uri=config.popup_redirect_uri(),
            state=state,
        ),
        request_id=str(request_id),
    )


@router.get("/login-requests/{request_id}", response_model=LoginRequestView)
async def login_request_status(
    request_id: str,
    request: Request,
    session: AsyncSession = Depends(db_session),
) -> LoginRequestView:
    """Opener-side polling of a popup sign-in attempt."""
    return await get_login_request(session, request_id, request.cookies.get(BINDING_COOKIE))


@router.get("/callback")
async def popup_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    session: AsyncSession = Depends(db_session),
) -> HTMLResponse:
    """
    OAuth callback — Google redirects the popup here after consent.

    Claims the login request for ``state``, runs exchange + login/connect
    server-side and returns a small HTML page that notifies the opener
    window and auto-closes.
    """
    binding = request.cookies.get(BINDING_COOKIE)

    if error:
        message = f"Google OAuth error: {error}"
        if error_description:
            message += f" - {error_description}"
        if state:
            await abandon_login_request(session, state, binding, message)
        return _callback_response(False, message, None, status.HTTP_400_BAD_REQUEST)

    if not code or not state:
        return _callback_response(
            False, "Missing code or state parameter", None, status.HTTP_400_BAD_REQUEST,
        )

    purpose: Optional[str] = None
    request_id: Optional[uuid.UUID] = None
    try:
        login_request = await claim_login_request(session, state, binding)
        request_id = login_request.request_id
        purpose = login_request.purpose
        owner_id = login_request.user_id

        result = await exchange_code(session, code, state, config.popup_redirect_uri())
        profile = open_ticket(result.ticket, _PROVIDER)

        if purpose == FlowPurpose.CONNECT.value:
            user = await get_user_by_id(session, owner_id) if owner_id is not None else None
            await connect_profile_to_current_user(session, user, profile)
            await finish_login_request(session, request_id, LoginRequestStatus.COMPLETED)
            return _callback_response(
                True, "Google account connected successfully!", {"purpose": purpose},
            )

        login_result = await login_with_profile(session, profile)
        await finish_login_request(session, request_id, LoginRequestStatus.COMPLETED)
        return _callback_response(
            True,
            f"Welcome, {login_result.display_name}!",
            {"purpose": purpose, "token": login_result.token, "user_id": login_result.user_id},
        )
    except AuthFlowError as exc:
        logger.warning("Popup callback failed (%s): %s", exc.code, exc.message)
        await _settle_failed(session, request_id, exc.message)
        return _callback_response(
            False, exc.message, {"purpose": purpose, "code": exc.code},
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    except Exception as exc:
        logger.error("Popup callback failed: %s", exc, exc_info=True)
        await _settle_failed(session, request_id, "Failed to process Google sign-in")
        return _callback_response(
            False, "Failed to process Google sign-in", {"purpose": purpose},
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


async def _settle_failed(session: AsyncSession, request_id: Optional[uuid.UUID], message: str) -> None:
    if request_id is None:
        return
    await session.rollback()
    await finish_login_request(session, request_id, LoginRequestStatus.FAILED, message)


# ── Callback HTML template ─────────────────────────────────────────────


def _callback_response(
    success: bool,
    message: str,
    extra: Optional[Dict[str, Any]],
    status_code: int = status.HTTP_200_OK,
) -> HTMLResponse:
    return HTMLResponse(content=_callback_html(success, message, extra or {}), status_code=status_code)


def _callback_html(success: bool, message: str, extra: Dict[str, Any]) -> str:
    """
    Small HTML page shown in the OAuth popup after redirect.
    Sends a postMessage to the frontend origin and auto-closes.
    """
    status_text = "Signed in" if success else "Failed"
    color = "#00d992" if success else "#ef4444"
    data = {"type": "google-auth-callback", "success": success, "message": message}
    data.update({k: v for k, v in extra.items() if v is not None})

    # json.dumps output is embedded in a <script>; "</" must not close it early.
    message_json = json.dumps(data).replace("</", "<\\/")
    origin_json = json.dumps(config.frontend_origin)

    return f"""<!DOCTYPE html>
<html>
<head>
    <title>Google sign-in {status_text}</title>
    <style>
        body {{
            font-family: system-ui, sans-serif;
            background: #0b0d11; color: #e4e7ee;
            display: flex; align-items: center; justify-content: center;
            height: 100vh; margin: 0;
        }}
        .card {{
            text-align: center; padding: 40px;
            background: #12151b; border: 1px solid #1f2330;
            border-radius: 12px; max-width: 400px;
        }}
        h2 {{ color: {color}; margin: 16px 0 8px; }}
        p {{ color: #a0a6b8; font-size: 0.85rem; }}
    </style>
</head>
<body>
    <div class="card">
        <h2>{status_text}</h2>
        <p>{html.escape(message)}</p>
    </div>
    <script>
        if (window.opener) {{
            window.opener.postMessage({message_json}, {origin_json});
        }}
        setTimeout(() => window.close(), {2000 if success else 4000});
    </script>
</body>
</html>"""
