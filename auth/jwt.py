"""
JWT-style session token creation and verification.

Tokens are base64-encoded JSON payloads signed with HMAC-SHA256.
Secret key is loaded from ``config.jwt_secret`` (env var: ``JWT_SECRET``).
"""

from __future__ import annotations

from auth.errors import UnauthorizedError
from auth.signing import SignatureError, sign_payload, verify_payload
from config.settings import config

_KIND = "session"


def create_token(user_id: str, auth_method: str = "password") -> str:
    """Create a signed token containing ``user_id`` and expiry."""
    return sign_payload(
        {"user_id": user_id, "auth_method": auth_method},
        secret=config.jwt_secret,
        kind=_KIND,
        ttl_seconds=config.jwt_expiry_seconds,
    )


def verify_token(token: str) -> str:
    """
    Verify token and return ``user_id``.

    Raises ``UnauthorizedError`` (401) on invalid or expired tokens.
    """
    try:
        payload = verify_payload(token, secret=config.jwt_secret, kind=_KIND)
        return payload["user_id"]
    except (SignatureError, KeyError) as exc:
        raise UnauthorizedError(f"Invalid or expired token: {exc}")
