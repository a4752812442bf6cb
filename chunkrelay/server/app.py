"""FastAPI application factory for the relay."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from chunkrelay import __version__
from chunkrelay.core.logging import setup_logging
from chunkrelay.server.auth import TokenRegistry
from chunkrelay.server.backends import create_backend
from chunkrelay.server.backends.base import StorageBackend
from chunkrelay.server.manager import MultipartSessionManager
from chunkrelay.server.routes import router
from chunkrelay.server.sessions import InMemorySessionStore, RedisSessionStore, SessionStore
from chunkrelay.server.settings import ServerSettings, get_settings

logger = logging.getLogger(__name__)


def build_store(settings: ServerSettings) -> SessionStore:
    """Pick the session store named by ``SESSION_STORE``."""
    if settings.session_store == "redis":
        logger.info("Using Redis session store at %s", settings.redis_url)
        return RedisSessionStore.from_url(settings.redis_url)
    return InMemorySessionStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: ServerSettings = app.state.settings
    setup_logging(settings.log_level)

    backend = app.state.manager.backend
    logger.info(
        "Starting chunkrelay relay (provider=%s, bucket=%s)", backend.provider, backend.bucket
    )
    if not backend.check_access():
        logger.warning("Bucket %s is not accessible yet", backend.bucket)

    yield

    logger.info("Shutting down chunkrelay relay")


def create_app(
    settings: ServerSettings | None = None,
    *,
    backend: StorageBackend | None = None,
    store: SessionStore | None = None,
) -> FastAPI:
    """Build the relay app.

    Args:
        settings: Server settings (read from the environment if omitted).
        backend: Storage backend; built from settings if omitted.
        store: Session store; built from settings if omitted.

    Raises:
        ConfigurationError: If the storage backend cannot be configured.
    """
    settings = settings or get_settings()
    backend = backend or create_backend(settings)
    store = store or build_store(settings)

    app = FastAPI(title="chunkrelay", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.tokens = TokenRegistry()
    app.state.manager = MultipartSessionManager(
        backend, store, max_chunk_bytes=settings.max_chunk_bytes
    )
    app.include_router(router, prefix="/api")
    return app


def main(host: str | None = None, port: int | None = None, reload: bool = False) -> None:
    """Entry point for the relay server."""
    settings = get_settings()
    uvicorn.run(
        "chunkrelay.server.app:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )
