"""
Enumeration definitions for the call activity reports service.

All enums inherit from both `str` and `Enum` to ensure JSON serialization
compatibility with Pydantic models in API responses.
"""

from enum import Enum
from typing import Dict


class ReportKind(str, Enum):
    """
    Upstream report sources merged into the unified activity stream.

    Declaration order is the source priority used to break exact event-time
    ties during merging: inbound, outbound, campaign, cdr.
    """
    INBOUND_QUEUE = "inbound-queue"
    OUTBOUND_QUEUE = "outbound-queue"
    CAMPAIGN_ACTIVITY = "campaign-activity"
    CDR = "cdr"

    @classmethod
    def parse(cls, value: str) -> "ReportKind":
        """
        Resolve a canonical kind name or a legacy route alias.

        Raises:
            ValueError: If the value names no report kind.
        """
        if isinstance(value, cls):
            return value
        key = (value or "").strip()
        if key in REPORT_KIND_ALIASES:
            return REPORT_KIND_ALIASES[key]
        return cls(key.lower())


# Legacy portal route names
REPORT_KIND_ALIASES: Dict[str, ReportKind] = {
    "queueCalls": ReportKind.INBOUND_QUEUE,
    "queueOutboundCalls": ReportKind.OUTBOUND_QUEUE,
    "campaignsActivity": ReportKind.CAMPAIGN_ACTIVITY,
    "cdrs": ReportKind.CDR,
}


class AbandonedFlag(str, Enum):
    """
    Abandonment flag booked on inbound queue calls.

    Outbound, campaign and CDR records carry an empty flag instead.
    """
    YES = "YES"
    NO = "NO"


class RevealPhase(str, Enum):
    """
    Lifecycle of a reveal session.

    FETCHING -> MERGING -> REVEALED_BATCH -> (FETCHING | EXHAUSTED)
    """
    FETCHING = "fetching"
    MERGING = "merging"
    REVEALED_BATCH = "revealed_batch"
    EXHAUSTED = "exhausted"
