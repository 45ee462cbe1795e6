from __future__ import annotations

from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict


class LinkMetadata(BaseModel):
    """Preview metadata produced by an extraction engine.

    Frozen so that cached instances can be handed to every caller without
    copying.
    """

    model_config = ConfigDict(frozen=True)

    original_url: str
    final_url: str
    title: str | None = None
    description: str | None = None
    images: tuple[str, ...] = ()  # Best candidate first
    site_name: str | None = None
    favicon: str | None = None
    video_url: str | None = None
    audio_url: str | None = None
    extraction_ms: int | None = None

    @classmethod
    def placeholder(cls, url: str) -> LinkMetadata:
        """Empty result carrying only the URL, used in place of a failed fetch."""
        return cls(original_url=url, final_url=url)

    @property
    def is_valid(self) -> bool:
        """True when there is anything worth rendering in a preview."""
        return bool(self.title or self.description or self.images)

    @property
    def image_url(self) -> str | None:
        return self.images[0] if self.images else None

    @property
    def has_image(self) -> bool:
        return bool(self.images)

    @property
    def has_favicon(self) -> bool:
        return self.favicon is not None

    @property
    def has_video(self) -> bool:
        return self.video_url is not None

    @property
    def has_audio(self) -> bool:
        return self.audio_url is not None

    @property
    def hostname(self) -> str:
        try:
            return urlsplit(self.final_url).hostname or ""
        except ValueError:
            return ""

    @property
    def display_url(self) -> str:
        """Host and path without scheme or trailing slash: ``example.com/post``."""
        try:
            parts = urlsplit(self.final_url)
        except ValueError:
            return self.final_url
        return f"{parts.hostname or ''}{parts.path}".rstrip("/")
