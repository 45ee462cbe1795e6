"""Shared test fixtures for the linkglance test suite."""

from __future__ import annotations

import asyncio

import aiosqlite
import pytest

from linkglance.cache import CacheStore
from linkglance.config import Settings
from linkglance.coordinator import PreviewFetcher
from linkglance.models.metadata import LinkMetadata
from linkglance.store import SqliteStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeExtractor:
    """In-memory extraction engine.

    Returns ``results[url]`` (raising it if it is an exception) or a default
    titled metadata. A URL listed in ``gates`` blocks until its event is set,
    which lets tests decide the order in which fetches settle.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, bool]] = []
        self.results: dict[str, LinkMetadata | Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.active = 0
        self.max_active = 0
        self.closed = False

    def gate(self, url: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[url] = event
        return event

    async def extract(self, url: str, *, skip_cache: bool = False) -> LinkMetadata:
        self.calls.append((url, skip_cache))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            gate = self.gates.get(url)
            if gate is not None:
                await gate.wait()
            else:
                await asyncio.sleep(0)
            outcome = self.results.get(url)
            if isinstance(outcome, Exception):
                raise outcome
            if outcome is None:
                return LinkMetadata(original_url=url, final_url=url, title=f"Title of {url}")
            return outcome
        finally:
            self.active -= 1

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture()
def settings() -> Settings:
    """Defaults only, no persistent store."""
    return Settings(cache={"persistent": False})


@pytest.fixture()
def cache(clock: FakeClock) -> CacheStore:
    return CacheStore(60, clock=clock)


@pytest.fixture()
def fetcher(extractor: FakeExtractor, cache: CacheStore, settings: Settings) -> PreviewFetcher:
    return PreviewFetcher(extractor, cache=cache, settings=settings)


@pytest.fixture()
async def sqlite_store() -> SqliteStore:
    """SqliteStore over an in-memory database."""
    async with aiosqlite.connect(":memory:") as db:
        store = SqliteStore(db, ttl_hours=24)
        await store.init_db()
        yield store
