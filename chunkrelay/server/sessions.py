"""Multipart session state for the relay.

Besides the session records themselves, the store keeps two tables that
outlive them: the set of cancelled file ids and the file id to object key
lookup. Both stay answerable before ``initialize`` and after ``complete``.
"""

from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import redis

# =============================================================================
# Session Record
# =============================================================================


@dataclass
class UploadSession:
    """One open multipart upload."""

    file_id: str
    upload_id: str
    file_key: str
    content_type: str
    parts: dict[int, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)

    def sorted_parts(self) -> list[tuple[int, str]]:
        """Parts as ``(part_number, token)`` in ascending part order."""
        return sorted(self.parts.items())

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_id": self.file_id,
            "upload_id": self.upload_id,
            "file_key": self.file_key,
            "content_type": self.content_type,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], parts: dict[int, str] | None = None
    ) -> "UploadSession":
        return cls(
            file_id=data["file_id"],
            upload_id=data["upload_id"],
            file_key=data["file_key"],
            content_type=data["content_type"],
            parts=parts or {},
            created_at=datetime.fromisoformat(data["created_at"]),
        )


# =============================================================================
# Store Interface
# =============================================================================


class SessionStore(ABC):
    """Storage for sessions, cancellations and key lookups."""

    @abstractmethod
    def get(self, file_id: str) -> UploadSession | None:
        """Return the session for a file id, with its parts."""

    @abstractmethod
    def put(self, session: UploadSession) -> None:
        """Create or replace a session (parts included)."""

    @abstractmethod
    def delete(self, file_id: str) -> bool:
        """Drop a session; return True if one existed."""

    @abstractmethod
    def list_ids(self) -> list[str]:
        """File ids with an open session."""

    @abstractmethod
    def record_part(self, file_id: str, part_number: int, token: str) -> int | None:
        """Store a part token, replacing any earlier upload of the same part.

        Returns:
            Number of distinct parts, or None if the session is gone.
        """

    @abstractmethod
    def mark_cancelled(self, file_id: str) -> None: ...

    @abstractmethod
    def clear_cancelled(self, file_id: str) -> None: ...

    @abstractmethod
    def is_cancelled(self, file_id: str) -> bool: ...

    @abstractmethod
    def remember_key(self, file_id: str, file_key: str) -> None: ...

    @abstractmethod
    def lookup_key(self, file_id: str) -> str | None: ...

    @abstractmethod
    def forget_key(self, file_id: str) -> None: ...


# =============================================================================
# In-Memory Store
# =============================================================================


class InMemorySessionStore(SessionStore):
    """Process-local store; sessions vanish on restart."""

    def __init__(self) -> None:
        self._sessions: dict[str, UploadSession] = {}
        self._cancelled: set[str] = set()
        self._keys: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, file_id: str) -> UploadSession | None:
        with self._lock:
            session = self._sessions.get(file_id)
            if session is None:
                return None
            # Snapshot; later record_part calls do not touch it
            return UploadSession(
                file_id=session.file_id,
                upload_id=session.upload_id,
                file_key=session.file_key,
                content_type=session.content_type,
                parts=dict(session.parts),
                created_at=session.created_at,
            )

    def put(self, session: UploadSession) -> None:
        with self._lock:
            self._sessions[session.file_id] = session

    def delete(self, file_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(file_id, None) is not None

    def list_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def record_part(self, file_id: str, part_number: int, token: str) -> int | None:
        with self._lock:
            session = self._sessions.get(file_id)
            if session is None:
                return None
            session.parts[part_number] = token
            return len(session.parts)

    def mark_cancelled(self, file_id: str) -> None:
        with self._lock:
            self._cancelled.add(file_id)

    def clear_cancelled(self, file_id: str) -> None:
        with self._lock:
            self._cancelled.discard(file_id)

    def is_cancelled(self, file_id: str) -> bool:
        with self._lock:
            return file_id in self._cancelled

    def remember_key(self, file_id: str, file_key: str) -> None:
        with self._lock:
            self._keys[file_id] = file_key

    def lookup_key(self, file_id: str) -> str | None:
        with self._lock:
            return self._keys.get(file_id)

    def forget_key(self, file_id: str) -> None:
        with self._lock:
            self._keys.pop(file_id, None)


# =============================================================================
# Redis Store
# =============================================================================


class RedisSessionStore(SessionStore):
    """Shared store for several relay processes behind one load balancer.

    Layout:
        ``<prefix>:session:<file_id>``  JSON session document
        ``<prefix>:parts:<file_id>``    hash part number -> token
        ``<prefix>:cancelled``          set of cancelled file ids
        ``<prefix>:keys``               hash file id -> object key
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        prefix: str = "chunkrelay",
        session_ttl: timedelta = timedelta(days=7),
    ):
        self.redis = client
        self.prefix = prefix
        self.session_ttl = session_ttl

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisSessionStore":
        client = redis.Redis.from_url(url, decode_responses=True, socket_connect_timeout=5)
        return cls(client, **kwargs)

    def _session_key(self, file_id: str) -> str:
        return f"{self.prefix}:session:{file_id}"

    def _parts_key(self, file_id: str) -> str:
        return f"{self.prefix}:parts:{file_id}"

    @property
    def _cancelled_key(self) -> str:
        return f"{self.prefix}:cancelled"

    @property
    def _keys_key(self) -> str:
        return f"{self.prefix}:keys"

    def get(self, file_id: str) -> UploadSession | None:
        raw = self.redis.get(self._session_key(file_id))
        if not raw:
            return None
        parts = {int(k): v for k, v in self.redis.hgetall(self._parts_key(file_id)).items()}
        return UploadSession.from_dict(json.loads(raw), parts)

    def put(self, session: UploadSession) -> None:
        ttl = int(self.session_ttl.total_seconds())
        pipe = self.redis.pipeline()
        pipe.set(self._session_key(session.file_id), json.dumps(session.to_dict()), ex=ttl)
        pipe.delete(self._parts_key(session.file_id))
        if session.parts:
            pipe.hset(self._parts_key(session.file_id), mapping=session.parts)
            pipe.expire(self._parts_key(session.file_id), ttl)
        pipe.execute()

    def delete(self, file_id: str) -> bool:
        removed = self.redis.delete(self._session_key(file_id), self._parts_key(file_id))
        return bool(removed)

    def list_ids(self) -> list[str]:
        marker = f"{self.prefix}:session:"
        return [key[len(marker) :] for key in self.redis.scan_iter(match=f"{marker}*")]

    def record_part(self, file_id: str, part_number: int, token: str) -> int | None:
        if not self.redis.exists(self._session_key(file_id)):
            return None
        parts_key = self._parts_key(file_id)
        pipe = self.redis.pipeline()
        pipe.hset(parts_key, str(part_number), token)
        pipe.expire(parts_key, int(self.session_ttl.total_seconds()))
        pipe.hlen(parts_key)
        return int(pipe.execute()[-1])

    def mark_cancelled(self, file_id: str) -> None:
        self.redis.sadd(self._cancelled_key, file_id)

    def clear_cancelled(self, file_id: str) -> None:
        self.redis.srem(self._cancelled_key, file_id)

    def is_cancelled(self, file_id: str) -> bool:
        return bool(self.redis.sismember(self._cancelled_key, file_id))

    def remember_key(self, file_id: str, file_key: str) -> None:
        self.redis.hset(self._keys_key, file_id, file_key)

    def lookup_key(self, file_id: str) -> str | None:
        return self.redis.hget(self._keys_key, file_id)

    def forget_key(self, file_id: str) -> None:
        self.redis.hdel(self._keys_key, file_id)
