"""
State token store — CSRF state for the login and connect flows.

One record per flow purpose, so a connect attempt never collides with a
login attempt. Each record moves ``pending -> in_progress -> processed``;
a mismatch drops a pending record, and only the callback that validated a
token may clear it once it is in progress. Once validated the
raw value is discarded and only its digest is kept, which is what lets a
repeated callback be recognised as a duplicate of *this* token rather than
a CSRF attempt.

``validate`` does its check-and-set without awaiting, so on a single event
loop two overlapping callbacks can never both see ``VALID``.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from config.settings import config
from utils.schemas import FlowPurpose

logger = logging.getLogger(__name__)


class TokenStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PROCESSED = "processed"


class StateCheck(str, Enum):
    VALID = "valid"
    MISMATCH = "mismatch"
    ALREADY_PROCESSED = "already_processed"
    IN_PROGRESS = "in_progress"


@dataclass
class _StateRecord:
    digest: str
    raw: Optional[str]
    status: TokenStatus
    issued_at: float


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


class StateTokenStore:
    """
    In-memory state tokens for one browser session.

    Parameters
    ----------
    ttl_seconds : int, optional
        Token lifetime; defaults to ``config.oauth_state_ttl_seconds``.
    clock : callable, optional
        Returns the current time in seconds. Injected by tests.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds if ttl_seconds is not None else config.oauth_state_ttl_seconds
        self._clock = clock
        self._records: Dict[FlowPurpose, _StateRecord] = {}

    def issue(self, purpose: FlowPurpose) -> str:
        """Replace any existing record for ``purpose`` with a fresh pending token."""
        token = secrets.token_urlsafe(32)
        self._records[FlowPurpose(purpose)] = _StateRecord(
            digest=_digest(token),
            raw=token,
            status=TokenStatus.PENDING,
            issued_at=self._clock(),
        )
        logger.debug("Issued %s state token", FlowPurpose(purpose).value)
        return token

    def validate(self, purpose: FlowPurpose, candidate: Optional[str]) -> StateCheck:
        purpose = FlowPurpose(purpose)
        record = self._records.get(purpose)
        if record is None or not candidate:
            return StateCheck.MISMATCH

        if self._clock() - record.issued_at > self._ttl:
            del self._records[purpose]
            logger.info("Expired %s state token discarded", purpose.value)
            return StateCheck.MISMATCH

        if not hmac.compare_digest(record.digest, _digest(candidate)):
            if record.status == TokenStatus.PENDING:
                del self._records[purpose]
            logger.warning("State mismatch for %s flow", purpose.value)
            return StateCheck.MISMATCH

        if record.status == TokenStatus.IN_PROGRESS:
            logger.debug("Duplicate %s callback while in progress", purpose.value)
            return StateCheck.IN_PROGRESS
        if record.status == TokenStatus.PROCESSED:
            logger.debug("Duplicate %s callback after completion", purpose.value)
            return StateCheck.ALREADY_PROCESSED

        record.status = TokenStatus.IN_PROGRESS
        record.raw = None
        return StateCheck.VALID

    def mark_processed(self, purpose: FlowPurpose) -> None:
        """Terminal success; the digest stays until the TTL runs out."""
        record = self._records.get(FlowPurpose(purpose))
        if record is not None:
            record.status = TokenStatus.PROCESSED
            record.raw = None

    def clear(self, purpose: FlowPurpose) -> None:
        self._records.pop(FlowPurpose(purpose), None)

    def discard_pending(self, purpose: FlowPurpose) -> None:
        """Drop the record only while nothing has validated it yet."""
        purpose = FlowPurpose(purpose)
        record = self._records.get(purpose)
        if record is not None and record.status == TokenStatus.PENDING:
            del self._records[purpose]

    def status(self, purpose: FlowPurpose) -> Optional[TokenStatus]:
        record = self._records.get(FlowPurpose(purpose))
        return record.status if record is not None else None

    def pending_token(self, purpose: FlowPurpose) -> Optional[str]:
        """The raw value while still pending, else ``None``."""
        record = self._records.get(FlowPurpose(purpose))
        return record.raw if record is not None else None
