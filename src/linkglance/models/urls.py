from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class UrlType(StrEnum):
    VIDEO = "video"
    SOCIAL_MEDIA = "social_media"
    IMAGE = "image"
    PRODUCT = "product"
    ARTICLE = "article"


@dataclass(frozen=True, slots=True)
class UrlMatch:
    """A URL found in free text.

    ``start``/``end`` index the original text; ``url`` may differ from
    ``text[start:end]`` because ``www.`` matches get a scheme prepended.
    """

    url: str
    start: int
    end: int
