"""URL detection, canonicalization and classification.

Every function here is pure and fails soft: malformed input comes back
unchanged (or as an empty result) rather than raising, since these run on
arbitrary user text.
"""

from __future__ import annotations

import re
from urllib.parse import unquote_plus, urlsplit, urlunsplit

from linkglance.models.urls import UrlMatch, UrlType

# Four alternatives, tried left to right at each position:
#   scheme + host of 3+ chars, www. + host of 3+ chars,
#   scheme + short host,       www. + short host.
# Each must be followed by a dot and at least two non-whitespace characters.
_URL_RE = re.compile(
    r"https?://(?:www\.|(?!www))[a-z0-9][a-z0-9-]+[a-z0-9]\.\S{2,}"
    r"|www\.[a-z0-9][a-z0-9-]+[a-z0-9]\.\S{2,}"
    r"|https?://(?:www\.|(?!www))[a-z0-9]+\.\S{2,}"
    r"|www\.[a-z0-9]+\.\S{2,}",
    re.IGNORECASE,
)

TRACKING_PARAMS: frozenset[str] = frozenset(
    {
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "fbclid",
        "gclid",
        "dclid",
        "ref",
        "source",
        "yclid",
        "mc_cid",
        "mc_eid",
    }
)
TRACKING_PREFIXES: tuple[str, ...] = ("utm_", "fb_", "ga_", "_")

# Evaluated in order, first hit wins. Substrings are matched against the
# lowercased URL.
URL_TYPE_RULES: tuple[tuple[UrlType, tuple[str, ...]], ...] = (
    (UrlType.VIDEO, ("youtube.com/watch", "youtu.be/", "vimeo.com/")),
    (
        UrlType.SOCIAL_MEDIA,
        (
            "twitter.com/",
            "x.com/",
            "facebook.com/",
            "instagram.com/",
            "linkedin.com/",
            "tiktok.com/",
            "reddit.com/",
        ),
    ),
    (
        UrlType.IMAGE,
        ("imgur.com/", "flickr.com/", "500px.com/", "unsplash.com/", "pexels.com/"),
    ),
    (UrlType.PRODUCT, ("amazon.", "ebay.", "etsy.com/", "shop", "product")),
)


def _with_https(url: str) -> str:
    # Matches start with www. or with an http(s) scheme in any case
    if url[:4].lower() == "www.":
        return f"https://{url}"
    _, rest = url.split("://", 1)
    return f"https://{rest}"


def detect_urls(text: str) -> list[UrlMatch]:
    """Find web addresses in free text, left to right, without overlaps.

    Every returned URL starts with ``https://``: ``www.`` matches get it
    prepended and ``http://`` matches are upgraded. Offsets always refer to the
    span in ``text``.
    """
    if not text:
        return []

    matches: list[UrlMatch] = []
    for match in _URL_RE.finditer(text):
        url = _with_https(match.group(0))
        matches.append(UrlMatch(url=url, start=match.start(), end=match.end()))
    return matches


def extract_first_url(text: str) -> str | None:
    matches = detect_urls(text)
    return matches[0].url if matches else None


def extract_urls(text: str) -> list[str]:
    return [match.url for match in detect_urls(text)]


def _is_tracking_param(name: str) -> bool:
    return name in TRACKING_PARAMS or name.startswith(TRACKING_PREFIXES)


def _strip_tracking_params(query: str) -> str:
    """Drop tracking parameters, keeping every other pair byte-for-byte."""
    if not query:
        return query
    kept = [
        pair
        for pair in query.split("&")
        if not _is_tracking_param(unquote_plus(pair.split("=", 1)[0]))
    ]
    return "&".join(kept)


def normalize_url(url: str) -> str:
    """Canonicalize a URL: ensure a scheme, drop the fragment and tracking params.

    ``normalize_url(normalize_url(u)) == normalize_url(u)`` for every input.
    Unparseable input is returned unchanged. Surrounding whitespace is not
    trimmed here; callers strip user input before normalizing.
    """
    candidate = url
    if "://" not in candidate:
        candidate = f"https://{candidate}"

    try:
        parts = urlsplit(candidate)
    except ValueError:
        return url

    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, _strip_tracking_params(parts.query), "")
    )


def cache_key(url: str) -> str:
    """Normalized URL with trailing slashes removed from the path.

    Two URLs with the same cache key share one cache entry and one in-flight
    fetch.
    """
    normalized = normalize_url(url)
    try:
        parts = urlsplit(normalized)
    except ValueError:
        return normalized
    if not parts.netloc:
        return normalized
    path = parts.path.rstrip("/")
    if path == parts.path:
        return normalized
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


def get_domain_from_url(url: str) -> str:
    """Return the host without a leading ``www.``.

    ``'https://www.example.com/p'`` → ``'example.com'``. Unparseable input is
    returned unchanged.
    """
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        return url
    if host.startswith("www."):
        host = host[4:]
    return host


def detect_url_type(url: str) -> UrlType:
    """Classify a URL by host/path substrings; ``ARTICLE`` when nothing matches."""
    lowered = url.lower()
    for url_type, needles in URL_TYPE_RULES:
        if any(needle in lowered for needle in needles):
            return url_type
    return UrlType.ARTICLE
