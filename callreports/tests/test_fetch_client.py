"""
Upstream Fetch Client Tests

Drives ReportClient against httpx.MockTransport:
- Request contract (endpoint, projection, window, cursor, headers)
- Payload shapes and cursor extraction
- Empty-page cursor following and the row cap
- Retry / backoff with a recording sleep
- Upstream error message extraction
"""

from typing import List

import httpx
import pytest

from callreports.core.errors import UpstreamStatusError, UpstreamTransportError
from callreports.core.tokens import SettingsTokenProvider
from callreports.models import ReportKind, ReportQuery
from callreports.services.fetch_client import (
    ReportClient,
    extract_cursor,
    extract_rows,
    upstream_error_message,
)
from callreports.services.report_config import CDR_FIELDS, INBOUND_QUEUE_FIELDS
from callreports.tests.factories import mock_client


def make_client(settings, handler, sleep) -> ReportClient:
    return ReportClient(
        settings,
        SettingsTokenProvider(settings),
        client=mock_client(handler),
        sleep=sleep,
    )


def query(kind=ReportKind.CDR, tenant='acme', **kwargs) -> ReportQuery:
    return ReportQuery(tenant=tenant, kind=kind, **kwargs)


# =============================================================================
# Payload helpers
# =============================================================================

class TestExtractRows:
    """Tests for the accepted payload shapes."""

    def test_data_array(self):
        assert extract_rows({'data': [{'a': 1}], 'rows': [{'b': 2}]}) == [{'a': 1}]

    def test_bare_array(self):
        assert extract_rows([{'a': 1}]) == [{'a': 1}]

    def test_rows_array(self):
        assert extract_rows({'rows': [{'b': 2}], 'next_start_key': 'k'}) == [{'b': 2}]

    def test_object_of_objects_is_flattened(self):
        payload = {'q1': {'calls': 3}, 'q2': {'calls': 5}, 'next_start_key': 'k'}
        assert extract_rows(payload) == [
            {'key': 'q1', 'calls': 3},
            {'key': 'q2', 'calls': 5},
        ]

    def test_scalars_yield_nothing(self):
        assert extract_rows(None) == []
        assert extract_rows('oops') == []

    def test_cursor(self):
        assert extract_cursor({'next_start_key': 'abc'}) == 'abc'
        assert extract_cursor({'next_start_key': None}) is None
        assert extract_cursor({'next_start_key': ''}) is None
        assert extract_cursor([]) is None


class TestUpstreamErrorMessage:
    """Tests for upstream error message extraction."""

    def test_error_string(self):
        response = httpx.Response(400, json={'error': 'startDate out of range'})
        assert upstream_error_message(response) == ('startDate out of range', True)

    def test_error_object(self):
        response = httpx.Response(403, json={'error': {'message': 'token expired'}})
        assert upstream_error_message(response) == ('token expired', True)

    def test_generic_message(self):
        response = httpx.Response(503, text='Service Unavailable')
        assert upstream_error_message(response) == ('Upstream returned HTTP 503', False)


# =============================================================================
# Request contract
# =============================================================================

class TestRequestContract:
    """Tests for what goes over the wire."""

    @pytest.mark.asyncio
    async def test_first_page_request(self, settings, recording_sleep):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={'data': [{'call_id': 'd1'}], 'next_start_key': 'k1'})

        client = make_client(settings, handler, recording_sleep)
        page = await client.fetch(query(start=1717200000, end=1717286399, limit=200))

        assert page.rows == [{'call_id': 'd1'}]
        assert page.next_cursor == 'k1'

        request = seen[0]
        assert request.url.path == '/api/v2/reports/cdrs'
        assert request.url.params['fields'] == ','.join(CDR_FIELDS)
        assert request.url.params['startDate'] == '1717200000'
        assert request.url.params['endDate'] == '1717286399'
        assert request.url.params['maxRows'] == '200'
        assert 'start_key' not in request.url.params
        assert request.headers['Authorization'] == 'Bearer acme-token'
        assert request.headers['X-User-Agent'] == 'portal'
        assert request.headers['X-Account-ID'] == 'acme'

    @pytest.mark.asyncio
    async def test_cursor_and_projection_per_kind(self, settings, recording_sleep):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{'call_id': 'c1'}])

        client = make_client(settings, handler, recording_sleep)
        page = await client.fetch(query(kind=ReportKind.INBOUND_QUEUE, cursor='k7'))

        assert page.next_cursor is None
        assert seen[0].url.path == '/api/v2/reports/queues_cdrs'
        assert seen[0].url.params['start_key'] == 'k7'
        assert seen[0].url.params['fields'] == ','.join(INBOUND_QUEUE_FIELDS)
        assert 'startDate' not in seen[0].url.params

    @pytest.mark.asyncio
    async def test_default_token_and_account_header(self, settings, recording_sleep):
        settings.account_id_header = 'portal-account'
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={'data': []})

        client = make_client(settings, handler, recording_sleep)
        await client.fetch(query(tenant='other'))

        assert seen[0].headers['Authorization'] == 'Bearer default-token'
        assert seen[0].headers['X-Account-ID'] == 'portal-account'


# =============================================================================
# Pagination inside one fetch
# =============================================================================

class TestPagination:
    """Tests for empty-page skipping and the row cap."""

    @pytest.mark.asyncio
    async def test_follows_cursor_past_empty_pages(self, settings, recording_sleep):
        pages = {
            None: {'data': [], 'next_start_key': 'k1'},
            'k1': {'data': [], 'next_start_key': 'k2'},
            'k2': {'data': [{'call_id': 'd1'}], 'next_start_key': 'k3'},
        }
        seen_cursors = []

        def handler(request: httpx.Request) -> httpx.Response:
            cursor = request.url.params.get('start_key')
            seen_cursors.append(cursor)
            return httpx.Response(200, json=pages[cursor])

        client = make_client(settings, handler, recording_sleep)
        page = await client.fetch(query())

        assert seen_cursors == [None, 'k1', 'k2']
        assert page.rows == [{'call_id': 'd1'}]
        assert page.next_cursor == 'k3'

    @pytest.mark.asyncio
    async def test_stops_when_cursor_runs_out(self, settings, recording_sleep):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={'data': []})

        client = make_client(settings, handler, recording_sleep)
        page = await client.fetch(query())

        assert page.rows == []
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_repeated_cursor_on_empty_pages_ends_the_report(self, settings, recording_sleep):
        calls = {'count': 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls['count'] += 1
            if calls['count'] > 20:
                raise AssertionError('cursor loop was not broken')
            return httpx.Response(200, json={'data': [], 'next_start_key': 'same'})

        client = make_client(settings, handler, recording_sleep)
        page = await client.fetch(query())

        assert calls['count'] == 2
        assert page.rows == []
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_cursor_cycle_ends_the_report(self, settings, recording_sleep):
        cycle = {None: 'k1', 'k1': 'k2', 'k2': 'k1'}
        seen_cursors = []

        def handler(request: httpx.Request) -> httpx.Response:
            cursor = request.url.params.get('start_key')
            seen_cursors.append(cursor)
            if len(seen_cursors) > 20:
                raise AssertionError('cursor loop was not broken')
            return httpx.Response(200, json={'data': [], 'next_start_key': cycle[cursor]})

        client = make_client(settings, handler, recording_sleep)
        page = await client.fetch(query())

        assert seen_cursors == [None, 'k1', 'k2']
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_echoed_request_cursor_is_not_returned(self, settings, recording_sleep):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={'data': [{'call_id': 'd1'}], 'next_start_key': 'k7'})

        client = make_client(settings, handler, recording_sleep)
        page = await client.fetch(query(cursor='k7'))

        assert page.rows == [{'call_id': 'd1'}]
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_rows_capped_at_limit(self, settings, recording_sleep):
        def handler(request: httpx.Request) -> httpx.Response:
            rows = [{'call_id': f"d{i}"} for i in range(10)]
            return httpx.Response(200, json={'data': rows, 'next_start_key': 'k1'})

        client = make_client(settings, handler, recording_sleep)
        page = await client.fetch(query(limit=3))

        assert [r['call_id'] for r in page.rows] == ['d0', 'd1', 'd2']
        assert page.next_cursor == 'k1'


# =============================================================================
# Retry / backoff
# =============================================================================

class TestRetry:
    """Tests for the retry loop."""

    @pytest.mark.asyncio
    async def test_succeeds_on_third_attempt(self, settings, recording_sleep):
        attempts = {'count': 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts['count'] += 1
            if attempts['count'] < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={'data': [{'call_id': 'd1'}, {'call_id': 'd2'}]})

        client = make_client(settings, handler, recording_sleep)
        page = await client.fetch(query())

        assert attempts['count'] == 3
        assert recording_sleep.delays == [1.0, 2.0]
        assert [r['call_id'] for r in page.rows] == ['d1', 'd2']

    @pytest.mark.asyncio
    async def test_raises_after_three_failures(self, settings, recording_sleep):
        attempts = {'count': 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts['count'] += 1
            return httpx.Response(500, json={'error': 'report engine down'})

        client = make_client(settings, handler, recording_sleep)
        with pytest.raises(UpstreamStatusError) as exc_info:
            await client.fetch(query(kind=ReportKind.OUTBOUND_QUEUE))

        assert attempts['count'] == 3
        assert recording_sleep.delays == [1.0, 2.0]
        assert exc_info.value.status == 500
        assert exc_info.value.message == 'report engine down'
        assert exc_info.value.structured is True
        assert exc_info.value.kind == ReportKind.OUTBOUND_QUEUE

    @pytest.mark.asyncio
    async def test_redirect_status_is_a_failure(self, settings, recording_sleep):
        attempts = {'count': 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts['count'] += 1
            if attempts['count'] == 1:
                return httpx.Response(302, headers={'Location': '/login'})
            return httpx.Response(200, json={'data': [{'call_id': 'd1'}]})

        client = make_client(settings, handler, recording_sleep)
        page = await client.fetch(query())

        assert attempts['count'] == 2
        assert recording_sleep.delays == [1.0]
        assert page.rows == [{'call_id': 'd1'}]

    @pytest.mark.asyncio
    async def test_non_success_status_surfaces_after_retries(self, settings, recording_sleep):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(304)

        client = make_client(settings, handler, recording_sleep)
        with pytest.raises(UpstreamStatusError) as exc_info:
            await client.fetch(query())

        assert exc_info.value.status == 304
        assert exc_info.value.message == 'Upstream returned HTTP 304'

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self, settings, recording_sleep):
        attempts = {'count': 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts['count'] += 1
            if attempts['count'] == 1:
                raise httpx.ConnectError('connection refused', request=request)
            return httpx.Response(200, json={'data': [{'call_id': 'd1'}]})

        client = make_client(settings, handler, recording_sleep)
        page = await client.fetch(query())

        assert attempts['count'] == 2
        assert recording_sleep.delays == [1.0]
        assert page.rows == [{'call_id': 'd1'}]

    @pytest.mark.asyncio
    async def test_transport_failure_surfaces_after_retries(self, settings, recording_sleep):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout('timed out', request=request)

        client = make_client(settings, handler, recording_sleep)
        with pytest.raises(UpstreamTransportError) as exc_info:
            await client.fetch(query())

        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_token_requested_every_attempt(self, settings, recording_sleep):
        tokens = []

        class CountingProvider:
            async def get_token(self, tenant: str) -> str:
                tokens.append(tenant)
                return f"token-{len(tokens)}"

        seen_auth = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen_auth.append(request.headers['Authorization'])
            if len(seen_auth) == 1:
                return httpx.Response(401, json={'error': 'token expired'})
            return httpx.Response(200, json={'data': [{'call_id': 'd1'}]})

        client = ReportClient(
            settings,
            CountingProvider(),
            client=mock_client(handler),
            sleep=recording_sleep,
        )
        await client.fetch(query())

        assert tokens == ['acme', 'acme']
        assert seen_auth == ['Bearer token-1', 'Bearer token-2']

    @pytest.mark.asyncio
    async def test_missing_credential_is_retried_then_raised(self, settings, recording_sleep):
        settings.upstream_default_token = None

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError('no request without a token')

        client = make_client(settings, handler, recording_sleep)
        with pytest.raises(UpstreamTransportError):
            await client.fetch(query(tenant='unknown-tenant'))

        assert recording_sleep.delays == [1.0, 2.0]
