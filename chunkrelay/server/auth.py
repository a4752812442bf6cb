"""Shared-secret handshake and bearer token registry for the relay."""

from __future__ import annotations

import hmac
import secrets
import threading
from datetime import datetime, timedelta

TOKEN_TTL = timedelta(hours=24)


def verify_secret(candidate: str, expected: str) -> bool:
    """Constant-time comparison of a presented secret."""
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


class TokenRegistry:
    """Issued bearer tokens and their expiry times (process local)."""

    def __init__(self, ttl: timedelta = TOKEN_TTL):
        self.ttl = ttl
        self._tokens: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def issue(self) -> str:
        """Create a random 64-hex-character token."""
        token = secrets.token_hex(32)
        with self._lock:
            self._purge()
            self._tokens[token] = datetime.now() + self.ttl
        return token

    def is_valid(self, token: str | None) -> bool:
        if not token:
            return False
        with self._lock:
            expires_at = self._tokens.get(token)
            if expires_at is None:
                return False
            if datetime.now() >= expires_at:
                del self._tokens[token]
                return False
            return True

    def revoke(self, token: str) -> None:
        with self._lock:
            self._tokens.pop(token, None)

    def _purge(self) -> None:
        now = datetime.now()
        for token in [t for t, exp in self._tokens.items() if now >= exp]:
            del self._tokens[token]
