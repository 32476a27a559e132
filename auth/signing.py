"""
HMAC-signed payloads shared by session tokens, popup OAuth state and
profile tickets.

Format: ``base64(json(payload)) + "." + hex(hmac_sha256(secret, json))``.
Each signer uses its own secret *and* a ``kind`` field so a token minted for
one purpose can never be replayed as another.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from base64 import urlsafe_b64decode, urlsafe_b64encode
from typing import Any, Dict


class SignatureError(ValueError):
    """Raised for malformed, forged, expired or mis-typed payloads."""


def sign_payload(payload: Dict[str, Any], *, secret: str, kind: str, ttl_seconds: int) -> str:
    """Sign ``payload`` with an expiry ``ttl_seconds`` from now."""
    body = dict(payload, kind=kind, exp=int(time.time()) + ttl_seconds)
    raw = json.dumps(body, separators=(",", ":"), sort_keys=True).encode()
    sig = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    return urlsafe_b64encode(raw).decode() + "." + sig


def verify_payload(token: str, *, secret: str, kind: str) -> Dict[str, Any]:
    """Return the payload or raise ``SignatureError``."""
    parts = (token or "").split(".", 1)
    if len(parts) != 2:
        raise SignatureError("bad format")
    try:
        raw = urlsafe_b64decode(parts[0].encode())
    except (ValueError, TypeError) as exc:
        raise SignatureError("bad encoding") from exc
    expected_sig = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(parts[1], expected_sig):
        raise SignatureError("bad signature")
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise SignatureError("bad payload") from exc
    if payload.get("kind") != kind:
        raise SignatureError("wrong token kind")
    if payload.get("exp", 0) < time.time():
        raise SignatureError("expired")
    return payload
