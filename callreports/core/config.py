"""
Settings and environment management module for the call activity reports service.

This module provides centralized configuration management using pydantic-settings,
which automatically loads settings from environment variables and .env files.

Key Features:
- Environment variable validation and type coercion
- Defaults that reproduce the upstream contract constants (retry count, backoff,
  cache TTL, page size, row limit)
- Singleton pattern via @lru_cache for efficient access

Environment Variables:
- UPSTREAM_BASE_URL: Base URL of the tenant report API (default: http://localhost:8080)
- ACCOUNT_ID_HEADER: Optional fixed value for the X-Account-ID header
- UPSTREAM_TOKENS: JSON object mapping tenant -> bearer token
- UPSTREAM_DEFAULT_TOKEN: Bearer token used for tenants absent from UPSTREAM_TOKENS
- HTTP_TIMEOUT_SECONDS, MAX_RETRIES, RETRY_BASE_DELAY_SECONDS
- CACHE_TTL_SECONDS, CACHE_MAX_ENTRIES, PAGE_SIZE, MAX_LIMIT
- SESSION_IDLE_TTL_SECONDS, MAX_SESSIONS
- CORS_ORIGINS, LOG_LEVEL

Usage:
    from callreports.core.config import get_settings

    settings = get_settings()
    ttl = settings.cache_ttl_seconds
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        upstream_base_url: Prefix for every report endpoint.
        account_id_header: Value sent as X-Account-ID; the tenant is used when unset.
        upstream_tokens: Static tenant -> bearer token mapping.
        upstream_default_token: Token for tenants missing from upstream_tokens.
        http_timeout_seconds: Per-request timeout for upstream calls.
        max_retries: Attempts per fetch before the source is reported as failed.
        retry_base_delay_seconds: Delay before the second attempt; doubles afterwards.
        cache_ttl_seconds: Lifetime of a cached first page.
        cache_max_entries: Upper bound on cached first pages.
        page_size: Reveal batch quota and per-source fetch size.
        max_limit: Upper bound for caller supplied row limits.
        session_idle_ttl_seconds: Idle lifetime of a reveal session.
        max_sessions: Upper bound on live reveal sessions.
        cors_origins: Origins allowed by the CORS middleware.
        log_level: Root logging level.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Upstream Report API
    # =========================================================================

    upstream_base_url: str = 'http://localhost:8080'
    account_id_header: Optional[str] = None
    upstream_tokens: Dict[str, str] = {}
    upstream_default_token: Optional[str] = None
    http_timeout_seconds: float = 30.0

    # =========================================================================
    # Retry / Backoff
    # =========================================================================

    # 3 attempts, waiting 1s then 2s between them
    max_retries: int = 3
    retry_base_delay_seconds: float = 1.0

    # =========================================================================
    # Cache and Pagination
    # =========================================================================

    cache_ttl_seconds: int = 300
    cache_max_entries: int = 1024

    # One user-visible page should need at most one round-trip per source,
    # so the batch quota and the fetch page size share this value.
    page_size: int = 500

    max_limit: int = 1000

    # =========================================================================
    # Reveal Sessions
    # =========================================================================

    # Sessions untouched for this long are dropped with their buffers
    session_idle_ttl_seconds: int = 1800
    max_sessions: int = 1000

    # =========================================================================
    # HTTP Service
    # =========================================================================

    cors_origins: List[str] = [
        'http://localhost:3000',
        'http://127.0.0.1:3000',
    ]
    log_level: str = 'INFO'


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The cached settings instance.

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
