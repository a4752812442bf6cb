"""Relay server: FastAPI app, session manager and storage backends."""

from chunkrelay.server.manager import MultipartSessionManager
from chunkrelay.server.sessions import InMemorySessionStore, RedisSessionStore, SessionStore
from chunkrelay.server.settings import ServerSettings, get_settings

__all__ = [
    "MultipartSessionManager",
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    "ServerSettings",
    "get_settings",
]
