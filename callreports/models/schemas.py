"""
Pydantic models for the call activity reports service.

This module provides type-safe validation and serialization for:
- Upstream queries and pages (TimeWindow, ReportQuery, RawPage)
- The canonical record shape all report kinds are normalized into
  (CanonicalRecord, AgentLeg, QueueVisit)
- Consumer facing responses (ReportResponse, RevealBatch, SourceWarning)
- Reveal session API contracts (SessionCreateRequest, SessionCreateResponse)

All models use Pydantic v2 syntax.
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from callreports.models.enums import AbandonedFlag, ReportKind, RevealPhase


# =============================================================================
# Upstream Query Models
# =============================================================================


class TimeWindow(BaseModel):
    """
    Query time window in epoch seconds. Either bound may be open.

    The window is part of the query cache key; the cursor is not.
    """
    model_config = ConfigDict(frozen=True)

    start: Optional[int] = Field(default=None, description="Window start (epoch seconds)")
    end: Optional[int] = Field(default=None, description="Window end (epoch seconds)")

    def ending_at(self, end: int) -> "TimeWindow":
        """Return a copy of this window with a new end bound."""
        return TimeWindow(start=self.start, end=end)

    def as_key(self) -> Tuple[Optional[int], Optional[int]]:
        return (self.start, self.end)


class ReportQuery(BaseModel):
    """
    One immutable request against one report endpoint for one tenant.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "tenant": "acme.example.com",
                "kind": "inbound-queue",
                "start": 1717200000,
                "end": 1717286399,
                "limit": 500,
                "cursor": None,
            }
        },
    )

    tenant: str = Field(..., min_length=1, description="Tenant / account identifier")
    kind: ReportKind = Field(..., description="Report kind to query")
    start: Optional[int] = Field(default=None, description="Window start (epoch seconds)")
    end: Optional[int] = Field(default=None, description="Window end (epoch seconds)")
    limit: int = Field(default=1000, ge=1, le=1000, description="Maximum rows returned")
    cursor: Optional[str] = Field(default=None, description="Continuation cursor")

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(start=self.start, end=self.end)


class RawPage(BaseModel):
    """
    Rows as returned by an upstream endpoint plus the continuation cursor.

    A None cursor means the query has no further pages.
    """
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(default=None)


# =============================================================================
# Canonical Record Models
# =============================================================================


class AgentLeg(BaseModel):
    """One per-leg attempt event in a call's agent history."""
    timestamp: Optional[float] = Field(default=None, description="Attempt time (epoch seconds)")
    agent_name: str = Field(default="")
    extension: str = Field(default="")
    event_type: str = Field(default="")
    connected: bool = Field(default=False)
    hangup_cause: str = Field(default="")


class QueueVisit(BaseModel):
    """One queue the call passed through."""
    timestamp: Optional[float] = Field(default=None, description="Entry time (epoch seconds)")
    queue_name: str = Field(default="")


class CanonicalRecord(BaseModel):
    """
    Unified row shape every report kind is mapped into before merging.

    `event_time` is the chronological anchor (called, queued or campaign
    time). None is the unknown sentinel and sorts after every known time.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "call_id": "b1f0c2e4-0001",
                "kind": "inbound-queue",
                "event_time": 1717243200.0,
                "caller_number": "0568334181",
                "callee_number": "800123",
                "queue_or_campaign": "Sales",
                "talk_duration": 95.0,
                "wait_duration": 12.0,
                "abandoned": "NO",
                "country": "UAE",
                "extension": "1001",
            }
        }
    )

    call_id: str = Field(..., min_length=1, description="Cross-source unique call identifier")
    kind: ReportKind = Field(..., description="Report kind the record came from")
    event_time: Optional[float] = Field(default=None, description="Primary time anchor (epoch seconds)")
    answered_time: Optional[float] = Field(default=None)
    hangup_time: Optional[float] = Field(default=None)

    caller_number: str = Field(default="")
    caller_name: str = Field(default="")
    callee_number: str = Field(default="")

    queue_or_campaign: str = Field(default="", description="Queue name or campaign name")
    campaign_type: str = Field(default="")
    agent_name: str = Field(default="")

    talk_duration: Optional[float] = Field(default=None, description="Seconds")
    wait_duration: Optional[float] = Field(default=None, description="Seconds")

    agent_history: List[AgentLeg] = Field(default_factory=list)
    queue_history: List[QueueVisit] = Field(default_factory=list)

    status: str = Field(default="")
    disposition: str = Field(default="")
    agent_disposition: str = Field(default="")
    sub_disposition_1: str = Field(default="")
    sub_disposition_2: str = Field(default="")
    lead_disposition: str = Field(default="")

    abandoned: Optional[AbandonedFlag] = Field(default=None, description="Inbound queue calls only")
    country: str = Field(default="", description="Derived from the dialed number")
    extension: str = Field(default="", description="Derived per report kind")
    recording: str = Field(default="", description="Recording id or file name")


# =============================================================================
# Consumer Facing Responses
# =============================================================================


class ReportResponse(BaseModel):
    """Single report page: normalized rows plus the cursor for the next page."""
    rows: List[CanonicalRecord] = Field(default_factory=list)
    next: Optional[str] = Field(default=None, description="Cursor for the next page, None when exhausted")


class SourceWarning(BaseModel):
    """Annotation naming a source that failed while the others succeeded."""
    kind: ReportKind
    status: Optional[int] = Field(default=None, description="Upstream HTTP status, if any")
    message: str


class RevealBatch(BaseModel):
    """
    One batch of merged, deduplicated, time-ordered records.
    """
    records: List[CanonicalRecord] = Field(default_factory=list)
    warnings: List[SourceWarning] = Field(default_factory=list)
    phase: RevealPhase = Field(default=RevealPhase.REVEALED_BATCH)
    exhausted: bool = Field(default=False)
    batch_number: int = Field(default=0, ge=0)
    revealed_total: int = Field(default=0, ge=0, description="Records revealed so far in the session")
    type_totals: Dict[str, int] = Field(
        default_factory=dict,
        description="Cumulative revealed record count per report kind",
    )


# =============================================================================
# Session API Contracts
# =============================================================================


class SessionCreateRequest(BaseModel):
    """Request body for opening a reveal session."""
    model_config = ConfigDict(str_strip_whitespace=True)

    account: str = Field(..., description="Tenant / account identifier")
    start: Optional[str] = Field(default=None, description="ISO-8601 or epoch seconds")
    end: Optional[str] = Field(default=None, description="ISO-8601 or epoch seconds")


class SessionCreateResponse(BaseModel):
    session_id: str
