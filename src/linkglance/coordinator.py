"""Fetch coordinator: deduplicated, cache-fronted calls to the extraction engine.

One PreviewFetcher is shared by every caller that should share a cache. It
owns three things: the Cache Store, the in-flight registry and (through the
Cache Store) the persistent-store handle. Nothing outside this module mutates
them.

All bookkeeping is synchronous between awaits, so on a single event loop the
"is a fetch already running for this key? if not, start one" step cannot be
interleaved with another caller's.
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import TYPE_CHECKING

import structlog

from linkglance.batch import FailurePolicy, fetch_many
from linkglance.cache import CacheStore
from linkglance.config import Settings
from linkglance.errors import ErrorCode, LinkGlanceError
from linkglance.protocols import ExtractorProtocol
from linkglance.store import open_sqlite_store
from linkglance.urls import cache_key

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from types import TracebackType
    from typing import Any

    from linkglance.models.metadata import LinkMetadata
    from linkglance.protocols import PersistentStoreProtocol
    from linkglance.store import SharedStoreFactory

log = structlog.get_logger()


class _InFlightRegistry:
    """Owns the single in-flight fetch task per cache key."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[LinkMetadata]] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, key: str) -> bool:
        return key in self._tasks

    def get(self, key: str) -> asyncio.Task[LinkMetadata] | None:
        return self._tasks.get(key)

    def claim(
        self, key: str, fetch: Coroutine[Any, Any, LinkMetadata]
    ) -> asyncio.Task[LinkMetadata]:
        """Start ``fetch`` as the one task for ``key``. The key must be free."""
        if key in self._tasks:
            fetch.close()
            raise RuntimeError(f"Fetch already in flight for {key}")
        task = asyncio.create_task(fetch, name=f"linkglance-fetch:{key}")
        self._tasks[key] = task
        task.add_done_callback(partial(self._settled, key))
        return task

    def release(self, key: str) -> None:
        self._tasks.pop(key, None)

    def _settled(self, key: str, task: asyncio.Task[LinkMetadata]) -> None:
        # The fetch coroutine releases its own key before settling. This covers
        # a task cancelled before its first step, which never runs that code.
        if self._tasks.get(key) is task:
            del self._tasks[key]
        # Every waiter may have been cancelled; mark the outcome as retrieved.
        if not task.cancelled():
            task.exception()


class PreviewFetcher:
    """Deduplicating, caching front for an extraction engine."""

    def __init__(
        self,
        extractor: ExtractorProtocol,
        *,
        cache: CacheStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        if not isinstance(extractor, ExtractorProtocol):
            raise TypeError(
                f"{type(extractor).__name__} does not implement ExtractorProtocol "
                "(async extract(url, *, skip_cache))"
            )
        self._settings = settings if settings is not None else Settings()
        self._extractor = extractor
        self._cache = (
            cache if cache is not None else CacheStore(self._settings.cache.ttl_seconds)
        )
        self._inflight = _InFlightRegistry()
        self._closed = False

    @classmethod
    async def create_with_cache(
        cls,
        extractor_factory: Callable[[PersistentStoreProtocol | None], ExtractorProtocol],
        *,
        settings: Settings | None = None,
        store_factory: SharedStoreFactory | None = None,
    ) -> PreviewFetcher:
        """Build a fetcher whose engine is handed the persistent store.

        With ``store_factory`` the store is shared and outlives this fetcher.
        Otherwise, when ``settings.cache.persistent`` is on, the SQLite store at
        ``settings.cache.db_path`` is opened and owned by the fetcher. If the
        store cannot be opened the engine receives ``None`` and everything
        keeps working from memory.
        """
        settings = settings if settings is not None else Settings()
        ttl = settings.cache.ttl_seconds
        if store_factory is not None:
            cache = CacheStore(ttl, factory=store_factory)
        elif settings.cache.persistent:
            cache = CacheStore(
                ttl,
                opener=partial(
                    open_sqlite_store,
                    settings.cache.db_path,
                    ttl_hours=settings.cache.persistent_ttl_hours,
                ),
            )
        else:
            cache = CacheStore(ttl)

        store = await cache.persistent()
        try:
            fetcher = cls(extractor_factory(store), cache=cache, settings=settings)
        except BaseException:
            await cache.aclose()
            raise
        log.info("fetcher_created", persistent=store is not None)
        return fetcher

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def settings(self) -> Settings:
        return self._settings

    def is_fetching(self, url: str) -> bool:
        return cache_key(url.strip()) in self._inflight

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def get_metadata(self, url: str, force_refresh: bool = False) -> LinkMetadata:
        """Return preview metadata for ``url``.

        Concurrent calls for the same canonical URL share one extraction, and
        all of them see the same result or the same exception. ``force_refresh``
        skips the ephemeral cache (and asks the engine to skip its own) but
        still joins a fetch that is already running.
        """
        if not url or not url.strip():
            raise LinkGlanceError(
                code=ErrorCode.INVALID_INPUT,
                message="URL cannot be empty",
                suggestion="Pass the address of the page to preview.",
                recoverable=False,
            )
        if self._closed:
            raise RuntimeError("PreviewFetcher is closed")

        key = cache_key(url.strip())

        pending = self._inflight.get(key)
        if pending is not None:
            log.debug("fetch_joined", key=key)
            return await asyncio.shield(pending)

        if not force_refresh:
            entry = self._cache.get(key)
            if entry is not None and entry.value.is_valid:
                log.debug("cache_hit", key=key)
                return entry.value

        task = self._inflight.claim(key, self._fetch(key, force_refresh))
        return await asyncio.shield(task)

    async def _fetch(self, key: str, force_refresh: bool) -> LinkMetadata:
        log.info("fetch_started", key=key, force_refresh=force_refresh)
        try:
            metadata = await self._extractor.extract(key, skip_cache=force_refresh)
            self._cache.set(key, metadata)
        except Exception as exc:
            log.warning(
                "fetch_failed",
                key=key,
                error_type=type(exc).__name__,
                message=str(exc),
            )
            raise
        finally:
            self._inflight.release(key)
        log.info("fetch_complete", key=key, valid=metadata.is_valid)
        return metadata

    async def get_multiple_metadata(
        self,
        urls: list[str],
        force_refresh: bool = False,
        concurrency: int | None = None,
        failure_policy: FailurePolicy | None = None,
    ) -> list[LinkMetadata]:
        """Fetch several URLs in windows of ``concurrency``; output follows input order."""
        batch = self._settings.batch
        return await fetch_many(
            self,
            urls,
            force_refresh=force_refresh,
            concurrency=concurrency if concurrency is not None else batch.concurrency,
            failure_policy=(
                failure_policy
                if failure_policy is not None
                else FailurePolicy(batch.failure_policy)
            ),
        )

    # ------------------------------------------------------------------
    # Cache maintenance and lifecycle
    # ------------------------------------------------------------------

    def clear_memory_cache(self) -> None:
        """Drop ephemeral entries. The engine's persistent cache is untouched."""
        self._cache.clear_ephemeral()

    async def clear_storage_cache(self) -> None:
        """Clear the persistent store. The ephemeral tier is untouched."""
        if self._closed:
            raise RuntimeError("PreviewFetcher is closed")
        await self._cache.clear_persistent()

    async def aclose(self) -> None:
        """Close the persistent store and the engine. In-flight fetches run on."""
        if self._closed:
            return
        self._closed = True
        await self._cache.aclose()
        close = getattr(self._extractor, "aclose", None)
        if close is not None:
            await close()
        log.info("fetcher_closed")

    async def __aenter__(self) -> PreviewFetcher:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
