"""
Package initialization file for models.

Re-exports the enumerations and Pydantic schemas so other modules can import
them from callreports.models directly.

Usage:
    from callreports.models import ReportKind, CanonicalRecord, RevealBatch
"""

from callreports.models.enums import (
    AbandonedFlag,
    REPORT_KIND_ALIASES,
    ReportKind,
    RevealPhase,
)
from callreports.models.schemas import (
    AgentLeg,
    CanonicalRecord,
    QueueVisit,
    RawPage,
    ReportQuery,
    ReportResponse,
    RevealBatch,
    SessionCreateRequest,
    SessionCreateResponse,
    SourceWarning,
    TimeWindow,
)

__all__ = [
    # Enums
    'AbandonedFlag',
    'REPORT_KIND_ALIASES',
    'ReportKind',
    'RevealPhase',
    # Upstream query models
    'TimeWindow',
    'ReportQuery',
    'RawPage',
    # Canonical record models
    'AgentLeg',
    'QueueVisit',
    'CanonicalRecord',
    # Responses
    'ReportResponse',
    'SourceWarning',
    'RevealBatch',
    # Session API
    'SessionCreateRequest',
    'SessionCreateResponse',
]
