'''
Call Activity Reports Test Suite

Test Modules:
-------------
- test_phone_country.py: dialed-country heuristic and parser fallback
- test_normalizer.py: per-kind mapping, derived durations, abandonment, extension, leg dedup
- test_query_cache.py: TTL, copy-on-read, first-page-only keys
- test_fetch_client.py: request contract, retry/backoff, empty-page cursor following, error messages
- test_report_service.py: input validation, cache use, single-report pipeline
- test_merge_engine.py: ordering, dedup across pages and refills, partial failure, fallback window, exhaustion
- test_sessions.py: session registry, idle expiry, size bound
- test_api.py: FastAPI routers and error mapping
'''
