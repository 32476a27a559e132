"""
Profile tickets — the exchange's verified profile, sealed for the client.

The client only ever relays the ticket from ``/exchange`` to ``/login`` or
``/connect``; a forged or edited profile fails signature verification.
"""

from __future__ import annotations

from auth.errors import ExchangeFailedError
from auth.signing import SignatureError, sign_payload, verify_payload
from config.settings import config
from utils.schemas import ExternalProfile

_KIND = "profile_ticket"


def issue_ticket(profile: ExternalProfile, provider: str) -> str:
    return sign_payload(
        {"provider": provider, "profile": profile.model_dump()},
        secret=config.oauth_state_secret,
        kind=_KIND,
        ttl_seconds=config.profile_ticket_ttl_seconds,
    )


def open_ticket(ticket: str, provider: str) -> ExternalProfile:
    """Return the sealed profile; ``ExchangeFailedError`` if the ticket is invalid or stale."""
    try:
        payload = verify_payload(ticket, secret=config.oauth_state_secret, kind=_KIND)
    except SignatureError as exc:
        raise ExchangeFailedError(f"Invalid or expired profile ticket: {exc}")
    if payload.get("provider") != provider:
        raise ExchangeFailedError("Profile ticket was issued for another provider")
    return ExternalProfile.model_validate(payload.get("profile") or {})
