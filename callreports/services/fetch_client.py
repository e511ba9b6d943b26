"""
Upstream Report Fetch Client

Issues authenticated, paginated GET requests against the tenant report API
and returns raw rows plus the continuation cursor.

Request contract:
- GET {upstream_base_url}{endpoint}
- Query parameters: fields (kind projection), startDate / endDate (epoch
  seconds), start_key (cursor), maxRows (row cap)
- Headers: Authorization: Bearer <token>, X-User-Agent: portal,
  X-Account-ID: <configured header or tenant>

Behaviour:
- Up to `max_retries` attempts with exponential backoff (1s, 2s, ...)
- A fresh token is requested before every HTTP call
- Pages that come back empty but carry a cursor are skipped until rows
  arrive or the cursor runs out; a cursor that was already requested ends
  the report instead of looping
- Responses are capped at the query limit
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from callreports.core.config import Settings
from callreports.core.errors import (
    UpstreamError,
    UpstreamStatusError,
    UpstreamTransportError,
)
from callreports.core.tokens import TokenProvider
from callreports.models import RawPage, ReportQuery
from callreports.services.report_config import get_report_spec

logger = logging.getLogger(__name__)

USER_AGENT_HEADER = 'portal'

# Key carrying the cursor in every upstream payload shape
CURSOR_KEY = 'next_start_key'


# =============================================================================
# Payload helpers
# =============================================================================

def extract_rows(payload: Any) -> List[Dict[str, Any]]:
    """
    Pull the row list out of an upstream payload.

    Tried in order: a `data` array, a bare top-level array, a `rows` array,
    and finally an object of objects flattened into rows carrying their
    original key under `key`.
    """
    if isinstance(payload, dict) and isinstance(payload.get('data'), list):
        return payload['data']
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get('rows'), list):
        return payload['rows']
    if isinstance(payload, dict):
        return [
            {'key': key, **value}
            for key, value in payload.items()
            if key != CURSOR_KEY and isinstance(value, dict)
        ]
    return []


def extract_cursor(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    cursor = payload.get(CURSOR_KEY)
    if cursor is None or cursor == '':
        return None
    return str(cursor)


def upstream_error_message(response: httpx.Response) -> Tuple[str, bool]:
    """
    Read the upstream error message from a failed response.

    Returns:
        (message, structured) where structured is True when the message came
        from the payload's `error` string or `error.message`.
    """
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error = payload.get('error')
        if isinstance(error, str) and error:
            return error, True
        if isinstance(error, dict) and error.get('message'):
            return str(error['message']), True
        if isinstance(payload.get('message'), str) and payload['message']:
            return payload['message'], True

    return f"Upstream returned HTTP {response.status_code}", False


# =============================================================================
# Client
# =============================================================================

class ReportClient:
    """
    Async client for the four upstream report endpoints.

    Args:
        settings: Application settings (base URL, retry policy, timeouts).
        token_provider: Source of bearer tokens per tenant.
        client: Shared httpx.AsyncClient; one is created (and owned) when omitted.
        sleep: Backoff sleep coroutine, replaceable in tests.
    """

    def __init__(
        self,
        settings: Settings,
        token_provider: TokenProvider,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._base = settings.upstream_base_url.rstrip('/')
        self._account_id_header = settings.account_id_header
        self._max_retries = max(1, settings.max_retries)
        self._base_delay = settings.retry_base_delay_seconds
        self._token_provider = token_provider
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, query: ReportQuery) -> RawPage:
        """
        Fetch one page for a query, retrying failed attempts.

        Args:
            query: Tenant, kind, window, limit and optional cursor.

        Returns:
            RawPage with at most `query.limit` rows.

        Raises:
            UpstreamError: When every attempt failed. The last failure is raised.
        """
        last_error: Optional[UpstreamError] = None

        for attempt in range(1, self._max_retries + 1):
            try:
                return await self._fetch_once(query)
            except UpstreamError as e:
                e.kind = query.kind
                last_error = e
                if attempt >= self._max_retries:
                    break
                delay = self._base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"Report fetch failed for {query.kind.value} "
                    f"(tenant={query.tenant}, attempt {attempt}/{self._max_retries}): "
                    f"{e.message}; retrying in {delay}s"
                )
                await self._sleep(delay)

        logger.error(
            f"Report fetch for {query.kind.value} (tenant={query.tenant}) "
            f"failed after {self._max_retries} attempts: {last_error.message}"
        )
        raise last_error

    async def _fetch_once(self, query: ReportQuery) -> RawPage:
        spec = get_report_spec(query.kind)
        url = f"{self._base}{spec.endpoint}"
        cursor = query.cursor
        rows: List[Dict[str, Any]] = []
        next_cursor: Optional[str] = None
        sent_cursors = {cursor}

        while True:
            params: Dict[str, Any] = {
                'fields': spec.fields_param,
                'maxRows': query.limit,
            }
            if query.start is not None:
                params['startDate'] = query.start
            if query.end is not None:
                params['endDate'] = query.end
            if cursor:
                params['start_key'] = cursor

            payload = await self._get_json(url, params, query.tenant)
            next_cursor = extract_cursor(payload)
            if next_cursor is not None and next_cursor in sent_cursors:
                logger.warning(
                    f"{query.kind.value} (tenant={query.tenant}) returned cursor {next_cursor} "
                    f"that was already requested; treating the report as exhausted"
                )
                next_cursor = None

            remaining = query.limit - len(rows)
            if remaining > 0:
                rows.extend(extract_rows(payload)[:remaining])

            # Hand back as soon as anything arrived; the cursor resumes from here
            if rows or next_cursor is None:
                break
            logger.debug(f"Empty page from {query.kind.value}, following cursor {next_cursor}")
            cursor = next_cursor
            sent_cursors.add(cursor)

        return RawPage(rows=rows, next_cursor=next_cursor)

    async def _get_json(self, url: str, params: Dict[str, Any], tenant: str) -> Any:
        token = await self._token_provider.get_token(tenant)
        headers = {
            'Authorization': f"Bearer {token}",
            'X-User-Agent': USER_AGENT_HEADER,
            'X-Account-ID': self._account_id_header or tenant,
        }

        try:
            response = await self._client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise UpstreamTransportError(f"Upstream request failed: {e}") from e

        if not response.is_success:
            message, structured = upstream_error_message(response)
            raise UpstreamStatusError(
                message,
                status=response.status_code,
                structured=structured,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamStatusError(
                'Upstream returned a non-JSON body',
                status=response.status_code,
            ) from e
