"""Persistent key/value stores backing the long-lived metadata cache.

All SqliteStore operations catch ``aiosqlite.Error`` internally and degrade
gracefully: read failures return ``None`` (a cache miss for the caller),
write failures are logged and ignored. Storage problems never cross the store
boundary once the store is open. Opening is the one operation that raises;
the Cache Store catches that and falls back to memory-only operation.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from linkglance.errors import ErrorCode
from linkglance.protocols import PersistentStoreProtocol

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

log = structlog.get_logger()

_CREATE_KV_TABLE = """
CREATE TABLE IF NOT EXISTS kv_cache (
    key        TEXT PRIMARY KEY,
    value      BLOB NOT NULL,
    stored_at  TEXT NOT NULL,
    expires_at TEXT NOT NULL
)
"""

_CREATE_KV_INDEX = "CREATE INDEX IF NOT EXISTS idx_kv_expires ON kv_cache(expires_at)"


class SqliteStore:
    """SQLite-backed store implementing PersistentStoreProtocol."""

    def __init__(self, db: aiosqlite.Connection, *, ttl_hours: int = 24) -> None:
        self._db = db
        self._ttl = timedelta(hours=ttl_hours)

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once after connecting."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_KV_TABLE)
        await self._db.execute(_CREATE_KV_INDEX)
        await self._db.commit()

    async def get(self, key: str) -> bytes | None:
        """Read a value. Returns ``None`` on miss, expiry or read failure."""
        try:
            cursor = await self._db.execute(
                "SELECT value, expires_at FROM kv_cache WHERE key = ?",
                (key,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            if datetime.now(UTC) >= datetime.fromisoformat(row[1]):
                return None
            return bytes(row[0])
        except aiosqlite.Error:
            log.warning(
                "store_read_error", key=key, code=ErrorCode.STORAGE_UNAVAILABLE, exc_info=True
            )
            return None

    async def set(self, key: str, value: bytes) -> None:
        """Write a value. Non-fatal on failure."""
        try:
            now = datetime.now(UTC)
            await self._db.execute(
                "INSERT OR REPLACE INTO kv_cache (key, value, stored_at, expires_at) "
                "VALUES (?, ?, ?, ?)",
                (key, value, now.isoformat(), (now + self._ttl).isoformat()),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning(
                "store_write_error", key=key, code=ErrorCode.STORAGE_UNAVAILABLE, exc_info=True
            )

    async def clear(self) -> None:
        """Delete every entry. Non-fatal on failure."""
        try:
            cursor = await self._db.execute("DELETE FROM kv_cache")
            deleted = cursor.rowcount
            await self._db.commit()
            log.info("store_cleared", deleted=deleted)
        except aiosqlite.Error:
            log.warning("store_clear_error", code=ErrorCode.STORAGE_UNAVAILABLE, exc_info=True)

    async def cleanup_expired(self) -> None:
        """Delete entries past their expiry. Non-fatal on failure."""
        try:
            cutoff = datetime.now(UTC).isoformat()
            cursor = await self._db.execute(
                "DELETE FROM kv_cache WHERE expires_at <= ?", (cutoff,)
            )
            deleted = cursor.rowcount
            await self._db.commit()
            log.info("store_cleanup_complete", deleted=deleted)
        except aiosqlite.Error:
            log.warning("store_cleanup_error", code=ErrorCode.STORAGE_UNAVAILABLE, exc_info=True)

    async def close(self) -> None:
        await self._db.close()


async def open_sqlite_store(db_path: str, *, ttl_hours: int = 24) -> SqliteStore:
    """Connect to (and initialise) the SQLite store at ``db_path``.

    Rows that expired while the store was closed are purged on open.

    Raises on failure; callers decide whether that is fatal.
    """
    if db_path != ":memory:":
        path = Path(db_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        db_path = str(path)
    db = await aiosqlite.connect(db_path)
    store = SqliteStore(db, ttl_hours=ttl_hours)
    try:
        await store.init_db()
    except aiosqlite.Error:
        await db.close()
        raise
    await store.cleanup_expired()
    log.info("store_opened", db_path=db_path)
    return store


class MemoryStore:
    """In-process store implementing PersistentStoreProtocol.

    Lives only as long as the process. Used when no on-disk store is wanted
    and in tests.
    """

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self.closed = False

    async def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self._data[key] = value

    async def clear(self) -> None:
        self._data.clear()

    async def close(self) -> None:
        self.closed = True


class SharedStoreFactory:
    """Hands out one shared persistent store handle per factory.

    Replaces a lazily created global: the application creates one factory,
    every component that wants the shared store calls ``acquire()``, and
    ``close()`` tears the handle down. A failed open is logged, remembered and
    reported as ``None`` (memory-only) until the next ``close()``.
    """

    def __init__(self, opener: Callable[[], Awaitable[PersistentStoreProtocol]]) -> None:
        self._opener = opener
        self._store: PersistentStoreProtocol | None = None
        self._opened = False
        self._lock = asyncio.Lock()

    @classmethod
    def from_store(cls, store: PersistentStoreProtocol) -> SharedStoreFactory:
        """Wrap a handle that is already open."""

        async def opener() -> PersistentStoreProtocol:
            return store

        factory = cls(opener)
        factory._store = store
        factory._opened = True
        return factory

    async def acquire(self) -> PersistentStoreProtocol | None:
        async with self._lock:
            if not self._opened:
                self._opened = True
                try:
                    store = await self._opener()
                    if not isinstance(store, PersistentStoreProtocol):
                        raise TypeError(
                            f"{type(store).__name__} does not implement PersistentStoreProtocol"
                        )
                    self._store = store
                except Exception:
                    log.warning(
                        "persistent_store_unavailable",
                        code=ErrorCode.STORAGE_UNAVAILABLE,
                        exc_info=True,
                    )
                    self._store = None
            return self._store

    async def close(self) -> None:
        async with self._lock:
            store, self._store = self._store, None
            self._opened = False
        if store is not None:
            await store.close()
