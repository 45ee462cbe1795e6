from __future__ import annotations

from linkglance.models.cache import CacheEntry
from linkglance.models.metadata import LinkMetadata
from linkglance.models.state import Failed, Idle, Loaded, Loading, PreviewState
from linkglance.models.urls import UrlMatch, UrlType

__all__ = [
    # metadata
    "LinkMetadata",
    # cache
    "CacheEntry",
    # urls
    "UrlMatch",
    "UrlType",
    # controller state
    "PreviewState",
    "Idle",
    "Loading",
    "Loaded",
    "Failed",
]
