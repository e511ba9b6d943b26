"""
Report Query Service

Single-report query pipeline behind `query(kind, tenant, {start, end, cursor, limit})`:

1. Validate and normalize caller input into an immutable ReportQuery
   (dates parsed to epoch seconds, limit clamped, kind aliases resolved)
2. Fetch the page: first pages go through the shared QueryCache, deeper
   pages (cursor set) always hit upstream
3. Collapse inbound agent legs and normalize rows into CanonicalRecords

The merge engine reuses `fetch_page` so both paths share one cache.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Union

from callreports.core.config import Settings
from callreports.core.errors import InvalidQueryError
from callreports.models import RawPage, ReportKind, ReportQuery, ReportResponse
from callreports.services.fetch_client import ReportClient
from callreports.services.normalizer import normalize_page
from callreports.services.query_cache import QueryCache

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 1000


# =============================================================================
# Input parsing
# =============================================================================

def parse_datetime_param(value: Any, name: str) -> Optional[int]:
    """
    Parse a caller supplied window bound into epoch seconds.

    Accepts ISO-8601 strings (naive values are UTC), epoch seconds as numbers
    or digit strings, and datetimes. Empty values mean an open bound.

    Raises:
        InvalidQueryError: If the value cannot be read as a date.
    """
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    else:
        text = str(value).strip()
        try:
            return int(float(text))
        except (ValueError, OverflowError):
            pass
        try:
            parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            raise InvalidQueryError(f"Invalid {name} date")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def clamp_limit(limit: Any, max_limit: int) -> int:
    """Default a missing or non-positive limit to 1000 and clamp it to `max_limit`."""
    try:
        value = int(limit) if limit not in (None, '') else 0
    except (TypeError, ValueError):
        raise InvalidQueryError('Invalid limit')
    if value <= 0:
        value = DEFAULT_LIMIT
    return min(value, max_limit, DEFAULT_LIMIT)


def resolve_kind(kind: Union[str, ReportKind]) -> ReportKind:
    try:
        return ReportKind.parse(kind)
    except ValueError:
        raise InvalidQueryError(f"Unknown report type: {kind}")


def build_query(
    kind: Union[str, ReportKind],
    tenant: Optional[str],
    start: Any = None,
    end: Any = None,
    cursor: Optional[str] = None,
    limit: Any = None,
    max_limit: int = DEFAULT_LIMIT,
) -> ReportQuery:
    """
    Build an immutable ReportQuery from raw caller input.

    Raises:
        InvalidQueryError: Missing tenant, unknown kind, or malformed date / limit.
    """
    if not tenant or not str(tenant).strip():
        raise InvalidQueryError('Missing account query param')

    return ReportQuery(
        tenant=str(tenant),
        kind=resolve_kind(kind),
        start=parse_datetime_param(start, 'start'),
        end=parse_datetime_param(end, 'end'),
        limit=clamp_limit(limit, max_limit),
        cursor=cursor or None,
    )


# =============================================================================
# Service
# =============================================================================

class ReportService:
    """
    Query pipeline for one report kind at a time.

    Args:
        client: Upstream fetch client.
        cache: Shared first-page cache.
        settings: Application settings (row limit bound).
    """

    def __init__(self, client: ReportClient, cache: QueryCache, settings: Settings):
        self.client = client
        self.cache = cache
        self.max_limit = settings.max_limit

    async def fetch_page(self, query: ReportQuery) -> RawPage:
        """
        Fetch one raw page, serving first pages from the cache.

        Raises:
            UpstreamError: When the fetch client exhausted its retries.
        """
        if query.cursor:
            return await self.client.fetch(query)

        page = await self.cache.get_or_fetch(
            query.kind,
            query.tenant,
            query.window,
            lambda: self.client.fetch(query),
        )
        if len(page.rows) > query.limit:
            # Stored by a query with a larger limit; its cursor is past our cap
            logger.debug(f"Cached page for {query.kind.value} exceeds limit {query.limit}, refetching")
            page = await self.client.fetch(query)
        return page

    async def query_report(
        self,
        kind: Union[str, ReportKind],
        tenant: Optional[str],
        start: Any = None,
        end: Any = None,
        cursor: Optional[str] = None,
        limit: Any = None,
    ) -> ReportResponse:
        """
        Fetch and normalize one page of one report.

        Args:
            kind: Canonical report kind or legacy route alias
            tenant: Tenant / account identifier
            start: Window start (ISO-8601 or epoch seconds)
            end: Window end (ISO-8601 or epoch seconds)
            cursor: Continuation cursor from a previous response
            limit: Maximum rows (default 1000)

        Returns:
            ReportResponse with normalized rows and the next cursor

        Raises:
            InvalidQueryError: Malformed input, never retried.
            UpstreamError: Upstream failed on every attempt.
        """
        query = build_query(kind, tenant, start, end, cursor, limit, self.max_limit)
        logger.info(
            f"Querying {query.kind.value} for tenant={query.tenant} "
            f"window=({query.start}, {query.end}) cursor={query.cursor} limit={query.limit}"
        )

        page = await self.fetch_page(query)
        rows = normalize_page(query.kind, page.rows)
        return ReportResponse(rows=rows, next=page.next_cursor)
