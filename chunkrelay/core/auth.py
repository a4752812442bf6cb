"""Bearer token caching for chunkrelay.

Tokens are issued by the relay's ``/api/auth`` endpoint and kept in a small
JSON file readable only by the owner.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from chunkrelay.core.config import CONFIG_DIR, get_token

# =============================================================================
# Constants
# =============================================================================

TOKEN_CACHE_FILE = CONFIG_DIR / ".token"
TOKEN_EXPIRY_HOURS = 24


# =============================================================================
# Token Cache
# =============================================================================


@dataclass
class CachedToken:
    """Cached bearer token with metadata."""

    token: str
    url: str
    created_at: datetime
    expires_at: datetime | None = None

    def is_expired(self) -> bool:
        """Check if token has expired."""
        if self.expires_at:
            return datetime.now() >= self.expires_at
        return False

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "url": self.url,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> CachedToken:
        return cls(
            token=data["token"],
            url=data["url"],
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=(
                datetime.fromisoformat(data["expires_at"]) if data.get("expires_at") else None
            ),
        )


# =============================================================================
# AuthManager
# =============================================================================


class AuthManager:
    """Stores and retrieves relay bearer tokens."""

    def __init__(self, cache_file: Path | None = None):
        self.cache_file = cache_file or TOKEN_CACHE_FILE

    def save_token(
        self,
        token: str,
        url: str,
        expiry_hours: int = TOKEN_EXPIRY_HOURS,
    ) -> CachedToken:
        """Save a token to the cache.

        Args:
            token: Bearer token returned by the relay.
            url: Relay server URL the token belongs to.
            expiry_hours: Hours until the token is considered expired.

        Returns:
            Cached token object.
        """
        now = datetime.now()
        cached = CachedToken(
            token=token,
            url=url,
            created_at=now,
            expires_at=now + timedelta(hours=expiry_hours),
        )

        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.cache_file, "w") as f:
            json.dump(cached.to_dict(), f)

        # Owner read/write only
        try:
            os.chmod(self.cache_file, 0o600)
        except OSError:
            pass

        return cached

    def load_token(self, url: str | None = None) -> CachedToken | None:
        """Load the cached token.

        Args:
            url: Only return the token if it was issued by this URL.

        Returns:
            Cached token if present and valid, None otherwise.
        """
        if not self.cache_file.exists():
            return None

        try:
            with open(self.cache_file) as f:
                cached = CachedToken.from_dict(json.load(f))
        except (json.JSONDecodeError, KeyError, ValueError):
            self.clear_token()
            return None

        if url and cached.url != url:
            return None

        if cached.is_expired():
            self.clear_token()
            return None

        return cached

    def clear_token(self) -> bool:
        """Remove the cached token.

        Returns:
            True if a cache file was removed.
        """
        if self.cache_file.exists():
            try:
                self.cache_file.unlink()
                return True
            except OSError:
                pass
        return False

    def get_token(self, url: str | None = None) -> str | None:
        """Get a token from the environment or the cache.

        Priority:
        1. Environment variable (CHUNKRELAY_TOKEN)
        2. Cached token

        Args:
            url: Optional URL to match for the cached token.

        Returns:
            Token if available.
        """
        if token := get_token():
            return token

        if cached := self.load_token(url):
            return cached.token

        return None

    def get_token_info(self, url: str | None = None) -> dict | None:
        """Get token information for display (never the token itself)."""
        cached = self.load_token(url)
        if not cached:
            return None

        return {
            "url": cached.url,
            "created_at": cached.created_at.isoformat(),
            "expires_at": cached.expires_at.isoformat() if cached.expires_at else None,
            "is_expired": cached.is_expired(),
        }
