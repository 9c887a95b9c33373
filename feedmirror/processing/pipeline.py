"""
Refresh Pipeline
===============

One refresh of one source: fetch the raw document (with retries),
normalize it, serialize it, and replace the source's cache entry.
"""

import asyncio
from typing import Dict

from ..ingestion.feed_source import FeedSource
from ..recovery.retry_logic import RetryConfig, RetryManager
from ..storage.freshness_cache import FreshnessCache
from ..utils.logging import PerformanceLogger, get_logger_for_component
from .normalizer import DocumentNormalizer
from .rss_writer import render_rss


class RefreshPipeline:
    """Fetch -> normalize -> cache put, never overlapping for one source."""

    def __init__(
        self,
        source: FeedSource,
        normalizer: DocumentNormalizer,
        cache: FreshnessCache,
        retry_manager: RetryManager = None,
    ):
        self.source = source
        self.normalizer = normalizer
        self.cache = cache
        self.retry_manager = retry_manager or RetryManager(
            RetryConfig(max_attempts=3, base_delay=2.0), component="feed_source"
        )
        self.logger = get_logger_for_component("pipeline")
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock_for(self, source_id: str) -> asyncio.Lock:
        lock = self._locks.get(source_id)
        if lock is None:
            lock = self._locks[source_id] = asyncio.Lock()
        return lock

    async def refresh(self, source_id: str) -> str:
        """Run one refresh and return the new serialized document.

        The cache is written only after the whole document is built, so a
        failure anywhere leaves the previous entry in place.

        Raises:
            TransientFetchError: upstream fetch failed on every attempt
            FeedParseError: the fetched document is not RSS-shaped
        """
        async with self.lock_for(source_id):
            return await self._refresh_locked(source_id)

    async def get_or_refresh(self, source_id: str) -> str:
        """Cached document for a source, refreshing first on a miss.

        Concurrent misses for the same source queue on the source lock; the
        ones that get it late find the entry already written.
        """
        entry = self.cache.get(source_id)
        if entry is not None:
            return entry.xml

        async with self.lock_for(source_id):
            entry = self.cache.get(source_id)
            if entry is not None:
                return entry.xml
            return await self._refresh_locked(source_id)

    async def _refresh_locked(self, source_id: str) -> str:
        with PerformanceLogger(self.logger, f"refresh of {source_id}", source_id=source_id):
            raw = await self.retry_manager.retry_async(
                self.source.fetch, source_id, operation=f"feed fetch {source_id}"
            )
            document = await self.normalizer.normalize(raw, source_id)
            xml = render_rss(document)
            self.cache.put(source_id, xml)

        self.logger.info(
            f"Refreshed {source_id}: {len(document.items)} items",
            extra={"source_id": source_id},
        )
        return xml
