from __future__ import annotations
"""Named, shared storage clients."""
import asyncio
import logging
import threading
from typing import Callable, Optional

from .config import ClientConfiguration
from .services import S3StorageClient

LOGGER = logging.getLogger(__name__)


class ConnectionCache:
    """Keeps at most one live :class:`S3StorageClient` per connection name.

    Lookups read a snapshot of the mapping under a short lock; creation of a
    missing entry is serialized per name, so concurrent first callers share a
    single construction. Entries only leave through :meth:`remove` or
    :meth:`clear`.
    """

    def __init__(self, client_factory: Callable[..., object] | None = None):
        self._client_factory = client_factory
        self._clients: dict[str, S3StorageClient] = {}
        self._creation_locks: dict[str, asyncio.Lock] = {}
        self._lock = threading.Lock()

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._clients

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._clients)

    def get(self, name: str) -> Optional[S3StorageClient]:
        with self._lock:
            return self._clients.get(name)

    async def get_or_create(self, name: str, config: ClientConfiguration) -> S3StorageClient:
        """Return the client cached under ``name``, creating it on first use.

        An existing entry is returned as-is; ``config`` is only used when the
        entry has to be built. A failed construction leaves nothing cached.
        """

        client = self.get(name)
        if client is not None:
            LOGGER.debug("Reusing cached connection '%s'", name)
            return client

        async with self._creation_lock(name):
            client = self.get(name)
            if client is not None:
                return client
            LOGGER.debug("Creating connection '%s' to %s", name, config.endpoint)
            client = await S3StorageClient.create(config, client_factory=self._client_factory)
            with self._lock:
                self._clients[name] = client
        return client

    def remove(self, name: str) -> None:
        # Creation locks outlive their entry so an in-flight construction
        # stays the only one for this name.
        with self._lock:
            removed = self._clients.pop(name, None)
        if removed is not None:
            LOGGER.debug("Removed connection '%s'", name)

    def clear(self) -> None:
        with self._lock:
            count = len(self._clients)
            self._clients.clear()
            self._creation_locks = {
                name: lock for name, lock in self._creation_locks.items() if lock.locked()
            }
        LOGGER.debug("Cleared %d cached connection(s)", count)

    def _creation_lock(self, name: str) -> asyncio.Lock:
        with self._lock:
            lock = self._creation_locks.get(name)
            if lock is None:
                lock = self._creation_locks[name] = asyncio.Lock()
            return lock
