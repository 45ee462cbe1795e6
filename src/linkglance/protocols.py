"""Protocol interfaces for the external collaborators.

The coordinator and Cache Store reference these protocols, not concrete
implementations. Both are runtime checkable so that a wrongly shaped
collaborator is rejected when the owning object is constructed instead of
failing on first use.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from linkglance.models.metadata import LinkMetadata


@runtime_checkable
class ExtractorProtocol(Protocol):
    """Interface for the metadata-extraction engine.

    Implementations own networking, HTML parsing, timeouts and their own
    long-lived cache. ``skip_cache=True`` asks the engine to bypass that cache.
    """

    async def extract(self, url: str, *, skip_cache: bool = False) -> LinkMetadata: ...


@runtime_checkable
class PersistentStoreProtocol(Protocol):
    """Interface for the optional persistent key/value store."""

    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, value: bytes) -> None: ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...
