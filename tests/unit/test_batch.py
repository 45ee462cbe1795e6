"""Unit tests for linkglance.batch."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from linkglance.batch import FailurePolicy, fetch_many
from linkglance.errors import ErrorCode, LinkGlanceError

if TYPE_CHECKING:
    from conftest import FakeExtractor

    from linkglance.coordinator import PreviewFetcher

URLS = [f"https://site{i}.com" for i in range(7)]


async def _settle() -> None:
    for _ in range(20):
        await asyncio.sleep(0)


class TestWindowing:
    async def test_never_more_than_window_in_flight(
        self, fetcher: PreviewFetcher, extractor: FakeExtractor
    ) -> None:
        results = await fetch_many(fetcher, URLS, concurrency=3)

        assert len(results) == 7
        assert extractor.max_active <= 3
        assert len(extractor.calls) == 7

    async def test_next_window_waits_for_whole_previous_window(
        self, fetcher: PreviewFetcher, extractor: FakeExtractor
    ) -> None:
        first_gate = extractor.gate(URLS[0])
        fourth_gate = extractor.gate(URLS[3])
        batch = asyncio.create_task(fetch_many(fetcher, URLS, concurrency=3))
        await _settle()

        # site1 and site2 finished, but site0 holds the window open
        assert [url for url, _ in extractor.calls] == URLS[:3]

        first_gate.set()
        await _settle()
        assert [url for url, _ in extractor.calls] == URLS[:6]

        fourth_gate.set()
        results = await batch

        # Order follows input even though site0 and site3 settled last
        assert [r.final_url for r in results] == URLS
        assert extractor.max_active == 3

    async def test_window_larger_than_input(
        self, fetcher: PreviewFetcher, extractor: FakeExtractor
    ) -> None:
        results = await fetch_many(fetcher, URLS[:2], concurrency=10)
        assert [r.final_url for r in results] == URLS[:2]

    async def test_empty_input(self, fetcher: PreviewFetcher, extractor: FakeExtractor) -> None:
        assert await fetch_many(fetcher, []) == []
        assert extractor.calls == []

    @pytest.mark.parametrize("concurrency", [0, -1])
    async def test_rejects_non_positive_concurrency(
        self, fetcher: PreviewFetcher, concurrency: int
    ) -> None:
        with pytest.raises(LinkGlanceError) as exc_info:
            await fetch_many(fetcher, URLS, concurrency=concurrency)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    async def test_duplicates_in_one_window_share_a_fetch(
        self, fetcher: PreviewFetcher, extractor: FakeExtractor
    ) -> None:
        urls = ["https://dup.com", "https://dup.com/", "https://dup.com?utm_source=x"]
        results = await fetch_many(fetcher, urls, concurrency=3)

        assert len(extractor.calls) == 1
        assert results[0] is results[1] is results[2]

    async def test_force_refresh_forwarded(
        self, fetcher: PreviewFetcher, extractor: FakeExtractor
    ) -> None:
        await fetch_many(fetcher, URLS[:2], force_refresh=True)
        assert all(skip_cache for _, skip_cache in extractor.calls)


class TestFailurePolicy:
    async def test_placeholder_for_failed_items(
        self, fetcher: PreviewFetcher, extractor: FakeExtractor
    ) -> None:
        extractor.results[URLS[1]] = LinkGlanceError(ErrorCode.NETWORK_FAILURE, "unreachable")
        extractor.results[URLS[4]] = TimeoutError()

        results = await fetch_many(fetcher, URLS, failure_policy=FailurePolicy.PLACEHOLDER)

        assert len(results) == 7
        for index in (1, 4):
            assert results[index].original_url == URLS[index]
            assert results[index].final_url == URLS[index]
            assert results[index].is_valid is False
        assert results[0].title == f"Title of {URLS[0]}"

    async def test_placeholder_is_default(
        self, fetcher: PreviewFetcher, extractor: FakeExtractor
    ) -> None:
        extractor.results[URLS[0]] = LinkGlanceError(ErrorCode.PARSE_FAILURE, "bad html")
        results = await fetch_many(fetcher, URLS[:1])
        assert results[0].is_valid is False

    async def test_propagate_raises_first_failure(
        self, fetcher: PreviewFetcher, extractor: FakeExtractor
    ) -> None:
        error = LinkGlanceError(ErrorCode.NETWORK_FAILURE, "unreachable")
        extractor.results[URLS[4]] = error

        with pytest.raises(LinkGlanceError) as exc_info:
            await fetch_many(fetcher, URLS, failure_policy=FailurePolicy.PROPAGATE)

        assert exc_info.value is error
        # The last window never started
        assert URLS[6] not in [url for url, _ in extractor.calls]
