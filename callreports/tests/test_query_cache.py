"""
Query Cache Tests

Covers key composition, TTL expiry with an injected clock, copy-on-read and
the get_or_fetch miss / hit paths.
"""

from unittest.mock import AsyncMock

import pytest

from callreports.models import RawPage, ReportKind, TimeWindow
from callreports.services.query_cache import QueryCache, make_cache_key


WINDOW = TimeWindow(start=1717200000, end=1717286399)


def page(*call_ids: str, cursor=None) -> RawPage:
    return RawPage(rows=[{'call_id': cid} for cid in call_ids], next_cursor=cursor)


class TestCacheKey:
    """Tests for make_cache_key."""

    def test_key_is_kind_tenant_window(self):
        key = make_cache_key(ReportKind.CDR, 'acme', WINDOW)
        assert key == ('cdr', 'acme', 1717200000, 1717286399)

    def test_open_window(self):
        key = make_cache_key(ReportKind.CDR, 'acme', TimeWindow())
        assert key == ('cdr', 'acme', None, None)


class TestQueryCache:
    """Tests for QueryCache get / put / expiry."""

    def test_miss_returns_none(self, clock):
        cache = QueryCache(ttl_seconds=300, clock=clock)
        assert cache.get(ReportKind.CDR, 'acme', WINDOW) is None

    def test_hit_within_ttl(self, clock):
        cache = QueryCache(ttl_seconds=300, clock=clock)
        cache.put(ReportKind.CDR, 'acme', WINDOW, page('a', 'b', cursor='c1'))

        clock.advance(299)
        cached = cache.get(ReportKind.CDR, 'acme', WINDOW)

        assert cached == page('a', 'b', cursor='c1')

    def test_expired_entry_is_gone(self, clock):
        cache = QueryCache(ttl_seconds=300, clock=clock)
        cache.put(ReportKind.CDR, 'acme', WINDOW, page('a'))

        clock.advance(300)

        assert cache.get(ReportKind.CDR, 'acme', WINDOW) is None
        assert len(cache) == 0

    def test_store_evicts_expired_entries_of_other_keys(self, clock):
        cache = QueryCache(ttl_seconds=300, clock=clock)
        for end in (1717286399, 1717286400, 1717286401):
            cache.put(ReportKind.CDR, 'acme', WINDOW.ending_at(end), page('a'))

        clock.advance(301)
        cache.put(ReportKind.INBOUND_QUEUE, 'acme', WINDOW, page('b'))

        assert len(cache) == 1
        assert cache.get(ReportKind.INBOUND_QUEUE, 'acme', WINDOW) == page('b')

    def test_entry_count_is_bounded(self, clock):
        cache = QueryCache(ttl_seconds=300, maxsize=2, clock=clock)
        for end in (1, 2, 3):
            cache.put(ReportKind.CDR, 'acme', TimeWindow(end=end), page('a'))

        assert len(cache) == 2
        assert cache.get(ReportKind.CDR, 'acme', TimeWindow(end=1)) is None
        assert cache.get(ReportKind.CDR, 'acme', TimeWindow(end=3)) == page('a')

    def test_keys_are_isolated(self, clock):
        cache = QueryCache(ttl_seconds=300, clock=clock)
        cache.put(ReportKind.CDR, 'acme', WINDOW, page('a'))

        assert cache.get(ReportKind.INBOUND_QUEUE, 'acme', WINDOW) is None
        assert cache.get(ReportKind.CDR, 'other', WINDOW) is None
        assert cache.get(ReportKind.CDR, 'acme', WINDOW.ending_at(1717200100)) is None

    def test_hit_returns_a_copy(self, clock):
        cache = QueryCache(ttl_seconds=300, clock=clock)
        cache.put(ReportKind.CDR, 'acme', WINDOW, page('a'))

        first = cache.get(ReportKind.CDR, 'acme', WINDOW)
        first.rows[0]['call_id'] = 'mutated'
        first.rows.append({'call_id': 'extra'})

        assert cache.get(ReportKind.CDR, 'acme', WINDOW) == page('a')

    def test_stored_page_is_detached_from_caller(self, clock):
        cache = QueryCache(ttl_seconds=300, clock=clock)
        original = page('a')
        cache.put(ReportKind.CDR, 'acme', WINDOW, original)

        original.rows.clear()

        assert cache.get(ReportKind.CDR, 'acme', WINDOW) == page('a')

    def test_last_write_wins(self, clock):
        cache = QueryCache(ttl_seconds=300, clock=clock)
        cache.put(ReportKind.CDR, 'acme', WINDOW, page('a'))
        cache.put(ReportKind.CDR, 'acme', WINDOW, page('b'))

        assert cache.get(ReportKind.CDR, 'acme', WINDOW) == page('b')


class TestGetOrFetch:
    """Tests for the read-through path."""

    @pytest.mark.asyncio
    async def test_miss_fetches_and_stores(self, clock):
        cache = QueryCache(ttl_seconds=300, clock=clock)
        fetch = AsyncMock(return_value=page('a', cursor='c1'))

        first = await cache.get_or_fetch(ReportKind.CDR, 'acme', WINDOW, fetch)
        second = await cache.get_or_fetch(ReportKind.CDR, 'acme', WINDOW, fetch)

        assert fetch.await_count == 1
        assert first == second == page('a', cursor='c1')

    @pytest.mark.asyncio
    async def test_refetch_after_expiry(self, clock):
        cache = QueryCache(ttl_seconds=300, clock=clock)
        fetch = AsyncMock(side_effect=[page('a'), page('b')])

        await cache.get_or_fetch(ReportKind.CDR, 'acme', WINDOW, fetch)
        clock.advance(301)
        refreshed = await cache.get_or_fetch(ReportKind.CDR, 'acme', WINDOW, fetch)

        assert fetch.await_count == 2
        assert refreshed == page('b')

    @pytest.mark.asyncio
    async def test_errors_are_not_cached(self, clock):
        cache = QueryCache(ttl_seconds=300, clock=clock)
        fetch = AsyncMock(side_effect=[RuntimeError('boom'), page('a')])

        with pytest.raises(RuntimeError):
            await cache.get_or_fetch(ReportKind.CDR, 'acme', WINDOW, fetch)

        assert len(cache) == 0
        assert await cache.get_or_fetch(ReportKind.CDR, 'acme', WINDOW, fetch) == page('a')
