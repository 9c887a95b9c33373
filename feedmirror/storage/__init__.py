"""
FeedMirror Storage Layer
=======================

This module provides:
- Media store keeping one image per (channel, post) on disk
- Freshness cache holding the latest serialized document per channel
"""

from .freshness_cache import CacheEntry, FreshnessCache
from .media_store import MediaItem, MediaStore

__all__ = [
    "CacheEntry",
    "FreshnessCache",
    "MediaItem",
    "MediaStore",
]
