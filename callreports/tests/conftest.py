"""
Pytest Configuration and Shared Fixtures for the Call Activity Reports Tests.

This module provides:
- Custom marker registration
- Settings built without reading the environment or a .env file
- A recording `sleep` replacement so retry backoff runs instantly
- A manual clock for cache TTL tests

Factories for upstream rows, scripted services and mock HTTP clients live in
callreports/tests/factories.py.
"""

import pytest

from callreports.core.config import Settings
from callreports.tests.factories import UPSTREAM, ManualClock, RecordingSleep


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Register custom markers.

    - merge: tests exercising the multi-source merge engine
    - http: tests driving the FastAPI routers
    """
    config.addinivalue_line('markers', 'merge: multi-source merge engine tests')
    config.addinivalue_line('markers', 'http: FastAPI router tests')


# ============================================================
# SETTINGS
# ============================================================

@pytest.fixture
def settings() -> Settings:
    """Settings pointing at a fake upstream, with a default token for every tenant."""
    return Settings(
        _env_file=None,
        upstream_base_url=UPSTREAM,
        upstream_tokens={'acme': 'acme-token'},
        upstream_default_token='default-token',
        max_retries=3,
        retry_base_delay_seconds=1.0,
        cache_ttl_seconds=300,
        page_size=500,
        max_limit=1000,
    )


# ============================================================
# TIME CONTROL
# ============================================================

@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()
