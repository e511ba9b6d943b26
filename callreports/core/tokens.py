"""
Upstream credential capability.

Token issuance is owned by an external provider; the aggregation engine only
needs `get_token(tenant) -> token`. The fetch client asks for a token on every
attempt, so providers are expected to cache.
"""

import logging
from typing import Dict, Optional, Protocol

from callreports.core.config import Settings
from callreports.core.errors import UpstreamTransportError

logger = logging.getLogger(__name__)


class TokenProvider(Protocol):
    """Anything that can hand out a bearer token for a tenant."""

    async def get_token(self, tenant: str) -> str:
        ...


class SettingsTokenProvider:
    """
    Token provider backed by static configuration.

    Looks the tenant up in `Settings.upstream_tokens`, falling back to
    `Settings.upstream_default_token`. Resolved tokens are cached per tenant.
    """

    def __init__(self, settings: Settings):
        self._tokens = dict(settings.upstream_tokens)
        self._default = settings.upstream_default_token
        self._cache: Dict[str, str] = {}

    async def get_token(self, tenant: str) -> str:
        cached = self._cache.get(tenant)
        if cached:
            return cached

        token: Optional[str] = self._tokens.get(tenant) or self._default
        if not token:
            # Treated like a transport failure so the fetch client retries it
            raise UpstreamTransportError(f"No upstream credential configured for tenant {tenant}")

        self._cache[tenant] = token
        logger.debug(f"Resolved upstream token for tenant {tenant}")
        return token
