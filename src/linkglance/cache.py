"""Two-tier metadata cache: ephemeral in-process dict plus optional persistent store.

Reads only consult the ephemeral tier. The persistent tier is the extraction
engine's long-lived cache, which this layer treats as a black box: it only
opens, clears and closes it, and hands the handle to the engine.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from linkglance.models.cache import CacheEntry
from linkglance.protocols import PersistentStoreProtocol
from linkglance.store import SharedStoreFactory

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from linkglance.models.metadata import LinkMetadata

log = structlog.get_logger()

DEFAULT_TTL_SECONDS = 4 * 60 * 60


class CacheStore:
    """Ephemeral TTL cache with an optional persistent tier.

    The persistent tier is supplied in one of three ways:

    - ``store``: an already open handle, owned (and closed) by this cache
    - ``opener``: an async callable opened on first use, owned by this cache
    - ``factory``: a SharedStoreFactory owned by someone else; never closed here

    With none of them the cache is memory-only.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        store: PersistentStoreProtocol | None = None,
        opener: Callable[[], Awaitable[PersistentStoreProtocol]] | None = None,
        factory: SharedStoreFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds!r}")
        if sum(source is not None for source in (store, opener, factory)) > 1:
            raise ValueError("Pass at most one of store, opener, factory")

        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._owns_store = factory is None
        self._closed = False

        if store is not None:
            if not isinstance(store, PersistentStoreProtocol):
                raise TypeError(
                    f"{type(store).__name__} does not implement PersistentStoreProtocol "
                    "(async get/set/clear/close)"
                )
            factory = SharedStoreFactory.from_store(store)
        elif opener is not None:
            factory = SharedStoreFactory(opener)
        self._factory = factory

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Ephemeral tier
    # ------------------------------------------------------------------

    def get(self, key: str) -> CacheEntry | None:
        """Return a live entry, or ``None``. Expired entries are evicted here."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_valid(self._clock()):
            del self._entries[key]
            log.debug("cache_entry_expired", key=key)
            return None
        return entry

    def set(self, key: str, value: LinkMetadata) -> None:
        self._entries[key] = CacheEntry(value=value, inserted_at=self._clock(), ttl=self._ttl)

    def clear_ephemeral(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        log.info("cache_ephemeral_cleared", entries=count)

    # ------------------------------------------------------------------
    # Persistent tier
    # ------------------------------------------------------------------

    async def persistent(self) -> PersistentStoreProtocol | None:
        """Open the persistent store on first use. ``None`` means memory-only."""
        if self._factory is None or self._closed:
            return None
        return await self._factory.acquire()

    async def clear_persistent(self) -> None:
        store = await self.persistent()
        if store is None:
            log.debug("cache_persistent_clear_skipped", reason="no_persistent_store")
            return
        await store.clear()

    async def aclose(self) -> None:
        """Close an owned persistent store. The cache stays memory-only afterwards."""
        self._closed = True
        if self._factory is not None and self._owns_store:
            await self._factory.close()
