"""Base service for client-side services that talk to the relay."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chunkrelay.core.client import RelayClient


class BaseService:
    """Base service class holding the relay client."""

    def __init__(self, client: "RelayClient") -> None:
        """Initialize service with a relay client.

        Args:
            client: RelayClient instance (token already attached if required)
        """
        self.client = client
