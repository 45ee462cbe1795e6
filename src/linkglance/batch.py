"""Windowed multi-URL fetching on top of a PreviewFetcher."""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from linkglance.errors import ErrorCode, LinkGlanceError
from linkglance.models.metadata import LinkMetadata

if TYPE_CHECKING:
    from linkglance.coordinator import PreviewFetcher

log = structlog.get_logger()


class FailurePolicy(StrEnum):
    PLACEHOLDER = "placeholder"  # failed URLs yield LinkMetadata.placeholder(url)
    PROPAGATE = "propagate"  # first failure aborts the batch


async def fetch_many(
    fetcher: PreviewFetcher,
    urls: list[str],
    *,
    force_refresh: bool = False,
    concurrency: int = 3,
    failure_policy: FailurePolicy = FailurePolicy.PLACEHOLDER,
) -> list[LinkMetadata]:
    """Fetch ``urls`` in consecutive windows of ``concurrency``.

    Each window is started together and fully settled before the next one
    begins, so at most ``concurrency`` fetches are outstanding at once. Results
    are returned in input order regardless of completion order.
    """
    if concurrency < 1:
        raise LinkGlanceError(
            code=ErrorCode.INVALID_INPUT,
            message=f"concurrency must be at least 1, got {concurrency}",
            suggestion="Pass a positive window size.",
            recoverable=False,
        )
    if not urls:
        return []

    propagate = failure_policy is FailurePolicy.PROPAGATE
    results: list[LinkMetadata] = []

    for start in range(0, len(urls), concurrency):
        window = urls[start : start + concurrency]
        outcomes = await asyncio.gather(
            *(fetcher.get_metadata(url, force_refresh=force_refresh) for url in window),
            return_exceptions=not propagate,
        )
        for url, outcome in zip(window, outcomes, strict=True):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                log.warning(
                    "batch_item_failed",
                    url=url,
                    error_type=type(outcome).__name__,
                    message=str(outcome),
                )
                results.append(LinkMetadata.placeholder(url))
            else:
                results.append(outcome)

    log.info("batch_complete", count=len(results), concurrency=concurrency)
    return results
