"""In-memory TTL cache of archive results keyed by source URL."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from archiver.capture.models import ArchiveResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    result: ArchiveResult
    timestamp: float


class ArchiveCache:
    """``url -> CacheEntry`` with a fixed TTL.

    Expired entries are never returned by :meth:`get`, but they are only
    removed by :meth:`sweep`.  Only successful archives are ever stored.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.time) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, url: str) -> ArchiveResult | None:
        entry = self._entries.get(url)
        if entry is None or self._clock() - entry.timestamp > self.ttl:
            return None
        return entry.result

    def set(self, url: str, result: ArchiveResult) -> None:
        self._entries[url] = CacheEntry(result=result, timestamp=self._clock())

    def sweep(self) -> int:
        """Remove expired entries and return how many were dropped."""
        now = self._clock()
        expired = [u for u, e in self._entries.items() if now - e.timestamp > self.ttl]
        for url in expired:
            del self._entries[url]
        if expired:
            logger.debug("[CACHE] Swept %d expired archive(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, url: object) -> bool:
        return url in self._entries
