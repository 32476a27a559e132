"""
Secret encryption — encrypt / decrypt provider client secrets at rest.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from the ``cryptography`` library.
The encryption key is loaded from ``config.token_encryption_key``
(env var: ``TOKEN_ENCRYPTION_KEY``).

If no key is configured, encryption is **disabled** and secrets are stored
as plaintext (with a warning).  Generate a key with::

    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from config.settings import config

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def _fernet_for(key: str) -> Optional[Fernet]:
    """Build the cipher once per configured key."""
    if not key:
        logger.warning(
            "TOKEN_ENCRYPTION_KEY not set — provider client secrets will be stored as plaintext."
        )
        return None
    try:
        fernet = Fernet(key.encode())
    except (ValueError, TypeError) as exc:
        logger.error("Failed to initialise Fernet with provided key: %s", exc)
        return None
    logger.info("Client secret encryption enabled (Fernet/AES-128-CBC)")
    return fernet


def _fernet() -> Optional[Fernet]:
    return _fernet_for(config.token_encryption_key or "")


def encrypt_secret(plaintext: str) -> str:
    """
    Encrypt a secret for database storage.

    Empty strings stay empty so "no secret" remains detectable.
    """
    if not plaintext:
        return ""
    fernet = _fernet()
    if fernet is None:
        return plaintext
    return fernet.encrypt(plaintext.encode()).decode()


def decrypt_secret(ciphertext: str) -> str:
    """
    Decrypt a secret read from the database.

    Values stored before encryption was enabled are not valid Fernet tokens
    and are returned as-is.
    """
    if not ciphertext:
        return ""
    fernet = _fernet()
    if fernet is None:
        return ciphertext
    try:
        return fernet.decrypt(ciphertext.encode()).decode()
    except InvalidToken:
        return ciphertext


def is_encryption_enabled() -> bool:
    return _fernet() is not None
