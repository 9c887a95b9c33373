"""
Freshness Cache
==============

In-memory last-known-good output per source. Entries are replaced whole on
every successful refresh and never expire on their own.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional


@dataclass(frozen=True)
class CacheEntry:
    xml: str
    last_update: datetime


class FreshnessCache:
    """Source identifier -> last serialized feed.

    Only the refresh pipeline writes, one source at a time, so a plain dict
    assignment is the whole consistency story.
    """

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, source_id: str) -> Optional[CacheEntry]:
        return self._entries.get(source_id)

    def put(self, source_id: str, xml: str) -> CacheEntry:
        entry = CacheEntry(xml=xml, last_update=datetime.now(timezone.utc))
        self._entries[source_id] = entry
        return entry

    def sources(self) -> List[str]:
        return sorted(self._entries)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
