"""Pytest configuration and fixtures for chunkrelay tests."""

from __future__ import annotations

import fnmatch
import tempfile
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Generator

import httpx
import pytest
from fastapi.testclient import TestClient

from chunkrelay.core.client import RelayClient
from chunkrelay.server.app import create_app
from chunkrelay.server.backends.base import StorageBackend
from chunkrelay.server.manager import MultipartSessionManager
from chunkrelay.server.sessions import InMemorySessionStore
from chunkrelay.server.settings import ServerSettings

RELAY_URL = "http://relay.test"


# =============================================================================
# Fakes
# =============================================================================


class FakeBackend(StorageBackend):
    """In-memory multipart store that records every call."""

    provider = "aws"

    def __init__(self, bucket: str = "test-bucket"):
        super().__init__(bucket)
        self.objects: dict[str, bytes] = {}
        self.uploads: dict[str, dict[int, bytes]] = {}
        self.aborted: list[tuple[str, str]] = []
        self.deleted: list[str] = []
        self.completed_parts: list[list[int]] = []
        self.accessible = True
        self.fail_complete = False
        self._counter = 0
        self._lock = threading.Lock()

    def begin_multipart(self, key: str, content_type: str) -> str:
        with self._lock:
            self._counter += 1
            upload_id = f"upload-{self._counter}"
            self.uploads[upload_id] = {}
        return upload_id

    def upload_part(self, key: str, upload_id: str, part_number: int, data: bytes) -> str:
        with self._lock:
            self.uploads.setdefault(upload_id, {})[part_number] = data
        return f"etag-{part_number}-{len(data)}"

    def complete_multipart(
        self,
        key: str,
        upload_id: str,
        parts: Sequence[tuple[int, str]],
        content_type: str,
    ) -> None:
        from chunkrelay.core.exceptions import StorageBackendError

        if self.fail_complete:
            raise StorageBackendError(self.provider, "complete_multipart_upload", "boom", key=key)
        with self._lock:
            stored = self.uploads.pop(upload_id, {})
            self.completed_parts.append([number for number, _ in parts])
            self.objects[key] = b"".join(stored[number] for number, _ in parts)

    def abort_multipart(self, key: str, upload_id: str) -> None:
        with self._lock:
            self.aborted.append((key, upload_id))
            self.uploads.pop(upload_id, None)

    def delete_object(self, key: str) -> None:
        with self._lock:
            self.deleted.append(key)
            self.objects.pop(key, None)

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.example.com/{key}"

    def check_access(self) -> bool:
        return self.accessible


class FakeRedis:
    """The subset of redis-py used by RedisSessionStore (decoded responses)."""

    def __init__(self) -> None:
        self.strings: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.sets: dict[str, set[str]] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key):
        return self.strings.get(key)

    def set(self, key, value, ex=None):
        self.strings[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            for table in (self.strings, self.hashes, self.sets):
                if key in table:
                    del table[key]
                    removed += 1
        return removed

    def exists(self, key):
        return int(key in self.strings or key in self.hashes or key in self.sets)

    def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    def hset(self, key, field=None, value=None, mapping=None):
        table = self.hashes.setdefault(key, {})
        if mapping:
            for k, v in mapping.items():
                table[str(k)] = str(v)
        if field is not None:
            table[str(field)] = str(value)
        return 1

    def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def hdel(self, key, *fields):
        table = self.hashes.get(key, {})
        return sum(1 for f in fields if table.pop(f, None) is not None)

    def hlen(self, key):
        return len(self.hashes.get(key, {}))

    def sadd(self, key, *members):
        self.sets.setdefault(key, set()).update(members)
        return len(members)

    def srem(self, key, *members):
        target = self.sets.get(key, set())
        for m in members:
            target.discard(m)
        return len(members)

    def sismember(self, key, member):
        return member in self.sets.get(key, set())

    def scan_iter(self, match="*"):
        keys = list(self.strings) + list(self.hashes) + list(self.sets)
        return iter([k for k in keys if fnmatch.fnmatch(k, match)])

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, redis: FakeRedis):
        self.redis = redis
        self.calls: list = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return queue

    def execute(self):
        results = [getattr(self.redis, name)(*args, **kwargs) for name, args, kwargs in self.calls]
        self.calls = []
        return results


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def manager(fake_backend: FakeBackend, session_store: InMemorySessionStore):
    return MultipartSessionManager(fake_backend, session_store, max_chunk_bytes=1024 * 1024)


@pytest.fixture
def server_settings() -> ServerSettings:
    return ServerSettings(
        _env_file=None,
        cloud_provider="aws",
        aws_s3_bucket="test-bucket",
        app_secret_key=None,
        probe_delay_ms=0,
    )


@pytest.fixture
def relay_app(server_settings, fake_backend, session_store):
    return create_app(server_settings, backend=fake_backend, store=session_store)


@pytest.fixture
def test_client(relay_app) -> TestClient:
    return TestClient(relay_app)


def make_relay_transport(test_client: TestClient) -> httpx.MockTransport:
    """Route httpx requests into the in-process relay app."""

    def handler(request: httpx.Request) -> httpx.Response:
        headers = {
            k: v
            for k, v in request.headers.items()
            if k.lower() in ("authorization", "content-type")
        }
        resp = test_client.request(
            request.method,
            request.url.path,
            content=request.content,
            headers=headers,
        )
        return httpx.Response(
            resp.status_code,
            content=resp.content,
            headers={"content-type": resp.headers.get("content-type", "application/json")},
        )

    return httpx.MockTransport(handler)


@pytest.fixture
def relay_client(test_client: TestClient) -> Generator[RelayClient, None, None]:
    """RelayClient wired to the in-process relay app."""
    client = RelayClient(RELAY_URL, transport=make_relay_transport(test_client))
    yield client
    client.close()


@pytest.fixture
def sample_config_yaml() -> str:
    """Sample config YAML content."""
    return """
default_profile: test
output_format: table

profiles:
  test:
    url: https://relay-test.example.org
    verify_ssl: false
    timeout: 30

  production:
    url: https://relay.example.org
    verify_ssl: true
    timeout: 60

transfer:
  chunk_size_mb: 10
  max_parallel_chunks: 4
  upload_concurrency: 4
  network_preset: fast
"""


def write_file(path: Path, size: int) -> Path:
    """Write ``size`` deterministic bytes to ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes((bytes(range(251)) * (size // 251 + 1))[:size])
    return path


# =============================================================================
# CLI Fixtures
# =============================================================================


@pytest.fixture
def cli_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every on-disk store at a temporary directory."""
    config_file = tmp_path / "config.yaml"
    monkeypatch.setattr("chunkrelay.core.config.CONFIG_FILE", config_file)
    monkeypatch.setattr("chunkrelay.cli.config_cmd.CONFIG_FILE", config_file)
    monkeypatch.setattr("chunkrelay.core.auth.TOKEN_CACHE_FILE", tmp_path / ".token")
    monkeypatch.setattr("chunkrelay.services.history.HISTORY_FILE", tmp_path / "history.json")
    monkeypatch.setattr("chunkrelay.services.history.STATS_FILE", tmp_path / "stats.json")
    for name in ("CHUNKRELAY_URL", "CHUNKRELAY_TOKEN", "CHUNKRELAY_PROFILE", "CHUNKRELAY_SECRET"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def write_config(home: Path, preset: str = "slow", url: str = RELAY_URL) -> Path:
    """Write a config with one default profile and the given transfer preset."""
    path = home / "config.yaml"
    path.write_text(
        "default_profile: default\n"
        "profiles:\n"
        "  default:\n"
        f"    url: {url}\n"
        "    verify_ssl: false\n"
        "    timeout: 30\n"
        "transfer:\n"
        "  chunk_size_mb: 1\n"
        "  max_parallel_chunks: 2\n"
        "  upload_concurrency: 2\n"
        f"  network_preset: {preset}\n"
    )
    return path


@pytest.fixture
def routed_client(test_client: TestClient, monkeypatch: pytest.MonkeyPatch):
    """Make CLI commands build relay clients that talk to the in-process app."""
    transport = make_relay_transport(test_client)

    def factory(*args, **kwargs):
        kwargs["transport"] = transport
        return RelayClient(*args, **kwargs)

    monkeypatch.setattr("chunkrelay.cli.common.RelayClient", factory)
    return factory
