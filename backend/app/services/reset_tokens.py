from __future__ import annotations

import logging
import secrets
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from apscheduler.triggers.date import DateTrigger

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResetToken:
    token: str
    email: str
    created_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResetTokenLedger:
    """In-process store of single-use password reset tokens.

    A token is 64 lowercase hex characters (32 random bytes) and lives for
    ``ttl_seconds``. When a scheduler is attached, each token's eviction is
    scheduled at its deadline; lookups also ignore entries past their deadline
    so a late or missing scheduler never extends a token's life. Entries are
    process-local: a restart invalidates every outstanding token.
    """

    def __init__(self, ttl_seconds: int = 3600, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or _utcnow
        self._entries: Dict[str, ResetToken] = {}
        self._lock = threading.Lock()
        self._scheduler = None

    def init(self, scheduler) -> None:
        self._scheduler = scheduler

    def shutdown(self) -> None:
        with self._lock:
            self._entries.clear()
        self._scheduler = None

    def _is_expired(self, entry: ResetToken) -> bool:
        return self._clock() >= entry.created_at + self._ttl

    def mint(self, email: str) -> str:
        token = secrets.token_hex(32)
        entry = ResetToken(token=token, email=email, created_at=self._clock())
        with self._lock:
            self._entries[token] = entry

        if self._scheduler is not None:
            self._scheduler.add_job(
                self.expire,
                trigger=DateTrigger(run_date=entry.created_at + self._ttl),
                args=[token],
                id=f"reset-token-{uuid.uuid4().hex}",
                name="Expire password reset token",
                misfire_grace_time=None,
            )
        return token

    def lookup(self, token: str) -> Optional[str]:
        """Email the token was minted for, or None when unknown or expired"""
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return None
            if self._is_expired(entry):
                del self._entries[token]
                return None
            return entry.email

    def consume(self, token: str) -> Optional[str]:
        """Remove the token; only the first caller gets the email back"""
        with self._lock:
            entry = self._entries.pop(token, None)
        if entry is None or self._is_expired(entry):
            return None
        return entry.email

    def expire(self, token: str) -> None:
        with self._lock:
            removed = self._entries.pop(token, None)
        if removed is not None:
            logger.info("Password reset token expired")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


reset_token_ledger = ResetTokenLedger(settings.RESET_TOKEN_TTL_SECONDS)
