#!/usr/bin/env python3
"""
Refresh Pipeline Tests
======================

Tests for fetch -> normalize -> cache put, including retry behavior,
failure isolation and per-source serialization.
"""

import asyncio
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from feedmirror.processing.normalizer import DocumentNormalizer
from feedmirror.processing.pipeline import RefreshPipeline
from feedmirror.recovery.retry_logic import RetryConfig, RetryManager
from feedmirror.storage.freshness_cache import FreshnessCache
from feedmirror.storage.media_store import MediaStore
from feedmirror.utils.exceptions import FeedParseError, TransientFetchError

from conftest import FakeFeedSource, SleepRecorder


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def make_pipeline(media_dir, fake_http, sleep):
    def _make(source):
        store = MediaStore(
            str(media_dir), fake_http,
            retry_manager=RetryManager(RetryConfig(max_attempts=3, base_delay=2.0), sleep=sleep),
        )
        return RefreshPipeline(
            source=source,
            normalizer=DocumentNormalizer(store, "http://mirror.test"),
            cache=FreshnessCache(),
            retry_manager=RetryManager(RetryConfig(max_attempts=3, base_delay=2.0), sleep=sleep),
        )
    return _make


class TestRefreshPipeline:

    @pytest.mark.asyncio
    async def test_refresh_writes_cache(self, make_pipeline):
        source = FakeFeedSource()
        pipeline = make_pipeline(source)

        xml = await pipeline.refresh("abc")

        assert pipeline.cache.get("abc").xml == xml
        assert xml.count("<item>") == 3
        assert "<title>[Photo]</title>" in xml
        assert source.calls == ["abc"]

    @pytest.mark.asyncio
    async def test_fetch_is_retried_with_backoff(self, make_pipeline, sleep):
        source = FakeFeedSource(failures=2)
        pipeline = make_pipeline(source)

        await pipeline.refresh("abc")

        assert source.calls == ["abc", "abc", "abc"]
        assert sleep.delays == [2.0, 4.0]
        assert "abc" in pipeline.cache

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_entry(self, make_pipeline):
        source = FakeFeedSource()
        pipeline = make_pipeline(source)
        first = await pipeline.refresh("abc")
        entry = pipeline.cache.get("abc")

        source.failures = 99
        with pytest.raises(TransientFetchError):
            await pipeline.refresh("abc")

        assert pipeline.cache.get("abc") is entry
        assert entry.xml == first

    @pytest.mark.asyncio
    async def test_parse_failure_does_not_touch_cache(self, make_pipeline):
        pipeline = make_pipeline(FakeFeedSource(document="<html>maintenance</html>"))

        with pytest.raises(FeedParseError):
            await pipeline.refresh("abc")
        assert pipeline.cache.get("abc") is None

    @pytest.mark.asyncio
    async def test_get_or_refresh_uses_cache(self, make_pipeline):
        source = FakeFeedSource()
        pipeline = make_pipeline(source)

        first = await pipeline.get_or_refresh("abc")
        second = await pipeline.get_or_refresh("abc")

        assert first == second
        assert source.calls == ["abc"]

    @pytest.mark.asyncio
    async def test_concurrent_misses_fetch_once(self, make_pipeline):
        source = FakeFeedSource()
        original_fetch = source.fetch

        async def slow_fetch(source_id):
            await asyncio.sleep(0.01)
            return await original_fetch(source_id)

        source.fetch = slow_fetch
        pipeline = make_pipeline(source)

        results = await asyncio.gather(*(pipeline.get_or_refresh("abc") for _ in range(5)))

        assert len(set(results)) == 1
        assert source.calls == ["abc"]

    @pytest.mark.asyncio
    async def test_refreshes_of_one_source_do_not_overlap(self, make_pipeline):
        source = FakeFeedSource()
        active = 0
        peak = 0
        original_fetch = source.fetch

        async def tracked_fetch(source_id):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return await original_fetch(source_id)

        source.fetch = tracked_fetch
        pipeline = make_pipeline(source)

        await asyncio.gather(pipeline.refresh("abc"), pipeline.refresh("abc"))

        assert peak == 1
        assert len(source.calls) == 2

    @pytest.mark.asyncio
    async def test_sources_are_isolated(self, make_pipeline):
        class MixedSource(FakeFeedSource):
            async def fetch(self, source_id):
                if source_id == "broken":
                    raise TransientFetchError("down", status=502)
                return await super().fetch(source_id)

        pipeline = make_pipeline(MixedSource())

        results = await asyncio.gather(
            pipeline.refresh("broken"), pipeline.refresh("abc"), return_exceptions=True
        )

        assert isinstance(results[0], TransientFetchError)
        assert isinstance(results[1], str)
        assert pipeline.cache.sources() == ["abc"]
