"""
Query Cache

In-memory TTL cache of first-page upstream results, keyed by
(report kind, tenant, window start, window end). The continuation cursor is
deliberately not part of the key: only first pages are cached, and the
cached RawPage carries its own next cursor so a cache hit can still be
paginated.

Backed by cachetools.TTLCache: every store also evicts whatever has expired,
and the entry count is bounded by `maxsize` (least recently used goes first).
Concurrent stores for the same key are allowed; the last write wins.
"""

import logging
import time
from typing import Awaitable, Callable, Optional, Tuple

from cachetools import TTLCache

from callreports.models import RawPage, ReportKind, TimeWindow

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, Optional[int], Optional[int]]

DEFAULT_MAX_ENTRIES = 1024


def make_cache_key(kind: ReportKind, tenant: str, window: TimeWindow) -> CacheKey:
    start, end = window.as_key()
    return (kind.value, tenant, start, end)


class QueryCache:
    """
    TTL cache of first-page RawPage results.

    Args:
        ttl_seconds: Lifetime of an entry.
        maxsize: Upper bound on stored pages.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float,
        maxsize: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=clock)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, kind: ReportKind, tenant: str, window: TimeWindow) -> Optional[RawPage]:
        key = make_cache_key(kind, tenant, window)
        page = self._entries.get(key)
        if page is None:
            logger.debug(f"Cache miss for {key}")
            return None

        logger.debug(f"Cache hit for {key}")
        # Callers must not be able to mutate the stored rows
        return page.model_copy(deep=True)

    def put(self, kind: ReportKind, tenant: str, window: TimeWindow, page: RawPage) -> None:
        key = make_cache_key(kind, tenant, window)
        self._entries[key] = page.model_copy(deep=True)
        logger.info(f"Cached {len(page.rows)} rows for {key}")

    def expire(self) -> None:
        """Drop every expired entry now."""
        self._entries.expire()

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_fetch(
        self,
        kind: ReportKind,
        tenant: str,
        window: TimeWindow,
        fetch: Callable[[], Awaitable[RawPage]],
    ) -> RawPage:
        """
        Return the cached first page for the key, fetching and storing it on a miss.

        Errors raised by `fetch` propagate and nothing is stored.
        """
        cached = self.get(kind, tenant, window)
        if cached is not None:
            return cached

        page = await fetch()
        self.put(kind, tenant, window, page)
        return page
