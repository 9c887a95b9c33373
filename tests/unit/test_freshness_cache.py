#!/usr/bin/env python3
"""
Freshness Cache Tests
"""

from datetime import datetime, timezone

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from feedmirror.storage.freshness_cache import CacheEntry, FreshnessCache


class TestFreshnessCache:

    def test_miss(self):
        cache = FreshnessCache()
        assert cache.get("abc") is None
        assert "abc" not in cache
        assert len(cache) == 0

    def test_put_then_get(self):
        cache = FreshnessCache()
        before = datetime.now(timezone.utc)

        entry = cache.put("abc", "<rss/>")

        assert isinstance(entry, CacheEntry)
        assert cache.get("abc") is entry
        assert entry.xml == "<rss/>"
        assert before <= entry.last_update <= datetime.now(timezone.utc)
        assert "abc" in cache

    def test_put_replaces_whole_entry(self):
        cache = FreshnessCache()
        first = cache.put("abc", "<rss>1</rss>")
        second = cache.put("abc", "<rss>2</rss>")

        assert cache.get("abc") is second
        assert first.xml == "<rss>1</rss>"
        assert second.last_update >= first.last_update
        assert len(cache) == 1

    def test_sources_are_independent(self):
        cache = FreshnessCache()
        cache.put("zeta", "<rss>z</rss>")
        cache.put("alpha", "<rss>a</rss>")

        assert cache.sources() == ["alpha", "zeta"]
        assert cache.get("alpha").xml == "<rss>a</rss>"
        assert cache.get("zeta").xml == "<rss>z</rss>"
