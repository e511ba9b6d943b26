"""
Report aggregation services.

Services:
- report_config: static per-kind table (endpoint, field projection, mapping, derived-field rules)
- fetch_client: retrying, cursor-following upstream HTTP client
- query_cache: TTL cache of first-page results
- phone_country: dialed-country heuristic
- normalizer: upstream row -> CanonicalRecord mapping with derived fields
- report_service: single-report query pipeline
- merge_engine: multi-source merge, dedup, reveal and fallback window
- sessions: in-process registry of reveal sessions

All services are consumed by the API layer (callreports/api/).
"""

# =============================================================================
# Per-kind configuration
# =============================================================================

from callreports.services.report_config import (
    REPORT_SPECS,
    ReportSpec,
    get_report_spec,
)

# =============================================================================
# Fetching and caching
# =============================================================================

from callreports.services.fetch_client import (
    ReportClient,
    extract_cursor,
    extract_rows,
)
from callreports.services.query_cache import QueryCache

# =============================================================================
# Normalization
# =============================================================================

from callreports.services.phone_country import extract_country
from callreports.services.normalizer import (
    compute_abandoned,
    dedup_legs,
    normalize,
    normalize_page,
    parse_timestamp,
)

# =============================================================================
# Query pipeline, merging and sessions
# =============================================================================

from callreports.services.report_service import (
    ReportService,
    build_query,
    parse_datetime_param,
)
from callreports.services.merge_engine import (
    MergeEngine,
    RevealState,
    SourceBuffer,
    SourceState,
)
from callreports.services.sessions import SessionStore

__all__ = [
    # Per-kind configuration
    'REPORT_SPECS',
    'ReportSpec',
    'get_report_spec',
    # Fetching and caching
    'ReportClient',
    'extract_cursor',
    'extract_rows',
    'QueryCache',
    # Normalization
    'extract_country',
    'compute_abandoned',
    'dedup_legs',
    'normalize',
    'normalize_page',
    'parse_timestamp',
    # Query pipeline
    'ReportService',
    'build_query',
    'parse_datetime_param',
    # Merging and sessions
    'MergeEngine',
    'RevealState',
    'SourceBuffer',
    'SourceState',
    'SessionStore',
]
