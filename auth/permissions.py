"""
Access-level checks.

Only one privilege exists here: administering third-party auth
configuration, granted to ``system_admin`` users.
"""

from __future__ import annotations

from typing import Optional

from auth.errors import ForbiddenError, UnauthorizedError
from config.settings import config
from database.models import User

SYSTEM_ADMIN = "system_admin"


def get_access_level(user: User) -> str:
    return user.access_level or "user"


def can_administer_auth_config(user: Optional[User]) -> bool:
    return user is not None and get_access_level(user) == SYSTEM_ADMIN


def require_auth_admin(user: Optional[User], action: str = "manage Google Auth configuration") -> User:
    """Raise ``UnauthorizedError`` / ``ForbiddenError`` unless ``user`` may administer auth config."""
    if user is None:
        raise UnauthorizedError(f"You must be logged in to {action}")
    if not can_administer_auth_config(user):
        raise ForbiddenError(f"Only system administrators can {action}")
    return user


def initial_access_level(email: str) -> str:
    """``system_admin`` for emails listed in ``BOOTSTRAP_ADMIN_EMAILS``, else ``user``."""
    admins = {e.strip().lower() for e in config.bootstrap_admin_emails if e.strip()}
    return SYSTEM_ADMIN if email.strip().lower() in admins else "user"
