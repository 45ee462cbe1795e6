from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from linkglance.models.metadata import LinkMetadata


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Ephemeral cache entry. Timestamps come from the Cache Store's clock."""

    value: LinkMetadata
    inserted_at: float
    ttl: float  # seconds

    def is_valid(self, now: float) -> bool:
        return now - self.inserted_at < self.ttl
