"""
Password hashing and verification for password-based accounts.

Uses bcrypt with automatic salting. Accounts created through Google
sign-in carry an empty hash and can never pass a password check.
"""

from __future__ import annotations

import bcrypt

_ROUNDS = 12


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=_ROUNDS)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time comparison against a bcrypt hash; ``False`` for passwordless accounts."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except (ValueError, TypeError):
        return False
