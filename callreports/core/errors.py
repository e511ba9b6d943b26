"""
Error taxonomy for the report aggregation engine.

Hierarchy:
    ReportError
    ├── UpstreamError              (retried by the fetch client)
    │   ├── UpstreamTransportError (network failure, timeout, missing credential)
    │   └── UpstreamStatusError    (non-2xx response)
    ├── InvalidQueryError          (bad caller input, never retried)
    ├── PartialSourceFailure       (one source failed after retries, others succeeded)
    └── AllSourcesFailedError      (nothing could be fetched from any source)

Upstream errors that survive retries reach the merge engine as per-source
failures; only InvalidQueryError and AllSourcesFailedError reach callers.
"""

from typing import List, Optional

from callreports.models.enums import ReportKind


class ReportError(Exception):
    """Base class for all report aggregation errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UpstreamError(ReportError):
    """
    A fetch against an upstream report endpoint failed.

    Attributes:
        kind: Report kind being fetched, when known.
        status: HTTP status code, None for transport failures.
        message: Upstream supplied message when present, otherwise a generic one.
        structured: True when the message came from the upstream error payload.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        kind: Optional[ReportKind] = None,
        structured: bool = False,
    ):
        super().__init__(message)
        self.status = status
        self.kind = kind
        self.structured = structured


class UpstreamTransportError(UpstreamError):
    """Network level failure (connection, timeout) or an unobtainable credential."""


class UpstreamStatusError(UpstreamError):
    """Upstream answered with a non-2xx status."""


class InvalidQueryError(ReportError):
    """Malformed caller input: bad date, missing tenant, unknown report kind."""


class PartialSourceFailure(ReportError):
    """
    One source failed after exhausting its retries while the others kept going.

    The merge engine collects these per batch instead of raising them.
    """

    def __init__(self, kind: ReportKind, cause: Exception):
        super().__init__(f"{kind.value}: {_message_of(cause)}")
        self.kind = kind
        self.cause = cause

    @property
    def status(self) -> Optional[int]:
        return getattr(self.cause, 'status', None)


class AllSourcesFailedError(ReportError):
    """Every source in a fetch round failed and nothing could be revealed."""

    def __init__(self, failures: List[PartialSourceFailure]):
        super().__init__(most_specific_message(failures))
        self.failures = failures


def _message_of(exc: Exception) -> str:
    return getattr(exc, 'message', None) or str(exc) or exc.__class__.__name__


def _specificity(failure: PartialSourceFailure) -> int:
    cause = failure.cause
    if isinstance(cause, UpstreamError) and cause.structured:
        return 3
    if isinstance(cause, UpstreamStatusError):
        return 2
    if isinstance(cause, UpstreamTransportError):
        return 1
    return 0


def most_specific_message(failures: List[PartialSourceFailure]) -> str:
    """
    Pick the most informative message among source failures.

    Upstream supplied structured messages beat generic status messages,
    which beat transport messages. Ties keep the first failure seen.
    """
    if not failures:
        return 'All report sources failed'
    best = failures[0]
    for failure in failures[1:]:
        if _specificity(failure) > _specificity(best):
            best = failure
    return _message_of(best.cause)
