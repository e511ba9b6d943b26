"""
Core infrastructure package for the call activity reports service.

Provides:
- Configuration management via pydantic-settings
- The error taxonomy shared by services and API handlers
- The upstream credential capability
- FastAPI dependency providers (in callreports.core.dependencies)

Usage:
    from callreports.core import get_settings, InvalidQueryError
"""

from callreports.core.config import Settings, get_settings
from callreports.core.errors import (
    AllSourcesFailedError,
    InvalidQueryError,
    PartialSourceFailure,
    ReportError,
    UpstreamError,
    UpstreamStatusError,
    UpstreamTransportError,
)
from callreports.core.tokens import SettingsTokenProvider, TokenProvider

__all__ = [
    # Configuration
    "Settings",
    "get_settings",
    # Errors
    "ReportError",
    "UpstreamError",
    "UpstreamTransportError",
    "UpstreamStatusError",
    "InvalidQueryError",
    "PartialSourceFailure",
    "AllSourcesFailedError",
    # Credentials
    "TokenProvider",
    "SettingsTokenProvider",
]
