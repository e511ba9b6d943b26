"""
Multi-Source Merge Engine

Blends the four paginated report feeds of one tenant into a single
time-ordered, deduplicated stream revealed in fixed-size batches.

State machine per session:

    FETCHING -> MERGING -> REVEALED_BATCH -> (FETCHING | EXHAUSTED)

- FETCHING: every live source whose buffer is below the batch quota is
  fetched in parallel (first pages through the shared cache). A source whose
  cursor comes back empty is exhausted for the current window. A source that
  fails after retries becomes a warning and is skipped for the window.
- MERGING: the newest buffered head across all sources is revealed until the
  quota is met. A live source whose buffer runs dry is refilled before
  anything older is revealed. Records whose call_id was already revealed are
  dropped and do not count toward the quota.
- Fallback window: once every source is exhausted and the consumer asks for
  more, all sources are re-queried from their first page with the window
  ending one second before the oldest revealed record. A fallback round that
  brings nothing new exhausts the session.

Exact event-time ties are broken by source priority (ReportKind declaration
order: inbound, outbound, campaign, cdr) and then by buffer arrival order.
Records with an unknown event time sort after every known time.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Sequence, Set, Tuple

from callreports.core.errors import AllSourcesFailedError, PartialSourceFailure, ReportError
from callreports.models import (
    CanonicalRecord,
    RawPage,
    ReportKind,
    ReportQuery,
    RevealBatch,
    RevealPhase,
    SourceWarning,
    TimeWindow,
)
from callreports.services.normalizer import normalize_page
from callreports.services.report_service import ReportService

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 500
MAX_FETCH_LIMIT = 1000


def recency_key(record: CanonicalRecord) -> Tuple[bool, float]:
    """Sort key ordering known times newest first and unknown times last (with reverse=True)."""
    if record.event_time is None:
        return (False, 0.0)
    return (True, record.event_time)


def sort_descending(records: List[CanonicalRecord]) -> None:
    # list.sort is stable, so equal keys keep arrival order
    records.sort(key=recency_key, reverse=True)


# =============================================================================
# Per-source pagination state
# =============================================================================

@dataclass
class SourceState:
    """
    Pagination position of one source within the current window.

    A None cursor after at least one successful fetch means the source is
    exhausted for the window. A failed source is also skipped until the
    window changes.
    """
    kind: ReportKind
    window: TimeWindow
    cursor: Optional[str] = None
    started: bool = False
    exhausted: bool = False
    failed: bool = False

    @property
    def live(self) -> bool:
        return not self.exhausted

    def advance(self, next_cursor: Optional[str]) -> None:
        if next_cursor is not None and next_cursor == self.cursor:
            logger.warning(f"{self.kind.value} returned its own cursor again, treating it as exhausted")
            next_cursor = None
        self.started = True
        self.cursor = next_cursor
        self.exhausted = next_cursor is None
        self.failed = False

    def mark_failed(self) -> None:
        self.failed = True
        self.exhausted = True

    def retry(self) -> None:
        self.failed = False
        self.exhausted = False

    def reset(self, window: TimeWindow) -> None:
        """Start over from the first page of a new window."""
        self.window = window
        self.cursor = None
        self.started = False
        self.exhausted = False
        self.failed = False

    def to_query(self, tenant: str, limit: int) -> ReportQuery:
        return ReportQuery(
            tenant=tenant,
            kind=self.kind,
            start=self.window.start,
            end=self.window.end,
            limit=limit,
            cursor=self.cursor,
        )


class SourceBuffer:
    """Read-ahead records of one source, kept newest first."""

    def __init__(self, kind: ReportKind):
        self.kind = kind
        self._records: List[CanonicalRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def extend(self, records: Sequence[CanonicalRecord]) -> None:
        self._records.extend(records)
        sort_descending(self._records)

    def head(self) -> Optional[CanonicalRecord]:
        return self._records[0] if self._records else None

    def pop(self) -> CanonicalRecord:
        return self._records.pop(0)

    def clear(self) -> None:
        self._records.clear()


@dataclass
class RevealState:
    """
    Everything one consumer session has seen so far.

    `revealed` stays sorted newest first and holds each call_id once.
    """
    tenant: str
    window: TimeWindow
    sources: Dict[ReportKind, SourceState]
    revealed: List[CanonicalRecord] = field(default_factory=list)
    revealed_ids: Set[str] = field(default_factory=set)
    type_totals: Dict[str, int] = field(default_factory=dict)
    batch_number: int = 0
    fallback_rounds: int = 0
    phase: RevealPhase = RevealPhase.FETCHING

    @classmethod
    def create(cls, tenant: str, window: TimeWindow, kinds: Sequence[ReportKind]) -> "RevealState":
        return cls(
            tenant=tenant,
            window=window,
            sources={kind: SourceState(kind=kind, window=window) for kind in kinds},
            type_totals={kind.value: 0 for kind in kinds},
        )

    @property
    def per_source_cursor(self) -> Dict[ReportKind, Optional[str]]:
        return {kind: state.cursor for kind, state in self.sources.items()}

    def record_revealed(self, records: List[CanonicalRecord]) -> None:
        for record in records:
            self.revealed_ids.add(record.call_id)
            self.type_totals[record.kind.value] = self.type_totals.get(record.kind.value, 0) + 1
        self.revealed.extend(records)
        sort_descending(self.revealed)

    def oldest_revealed_time(self) -> Optional[float]:
        known = [r.event_time for r in self.revealed if r.event_time is not None]
        return min(known) if known else None


# =============================================================================
# Engine
# =============================================================================

class MergeEngine:
    """
    Pull-based reveal session over all report sources of one tenant.

    Args:
        service: Report service used to fetch pages (shares the query cache).
        tenant: Tenant / account identifier.
        window: Initial query window.
        page_size: Batch quota and per-source fetch size.
        kinds: Sources to merge, in tie-break priority order.
    """

    def __init__(
        self,
        service: ReportService,
        tenant: str,
        window: Optional[TimeWindow] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        kinds: Sequence[ReportKind] = tuple(ReportKind),
    ):
        self.service = service
        self.page_size = page_size
        self.fetch_limit = min(page_size, MAX_FETCH_LIMIT)
        self.kinds: Tuple[ReportKind, ...] = tuple(kinds)
        self.state = RevealState.create(tenant, window or TimeWindow(), self.kinds)
        self.buffers: Dict[ReportKind, SourceBuffer] = {kind: SourceBuffer(kind) for kind in self.kinds}
        self._lock = asyncio.Lock()
        self._round_new_records = 0
        self._last_round_failures: List[PartialSourceFailure] = []
        # call_ids merged into the batch being assembled, across refills
        self._batch_ids: Set[str] = set()

    @property
    def phase(self) -> RevealPhase:
        return self.state.phase

    @property
    def exhausted(self) -> bool:
        return self.state.phase == RevealPhase.EXHAUSTED

    # =========================================================================
    # Public API
    # =========================================================================

    async def next_batch(self) -> RevealBatch:
        """
        Reveal the next batch of at most `page_size` records.

        Returns:
            RevealBatch with the new records, any source warnings raised while
            fetching them, and the cumulative per-kind totals.

        Raises:
            AllSourcesFailedError: Every source failed in a round that
                attempted all of them and nothing could be revealed.
        """
        async with self._lock:
            if self.exhausted:
                return self._build_batch([], [])
            return await self._next_batch()

    async def iter_batches(self) -> AsyncIterator[RevealBatch]:
        """Yield batches until the session is exhausted."""
        while True:
            batch = await self.next_batch()
            if batch.records:
                yield batch
            if batch.exhausted:
                return

    # =========================================================================
    # Batch assembly
    # =========================================================================

    async def _next_batch(self) -> RevealBatch:
        self._batch_ids = set()
        warnings: List[SourceWarning] = []
        batch: List[CanonicalRecord] = []
        all_failed: Optional[List[PartialSourceFailure]] = None
        fallback_used = False
        first_round = True

        while len(batch) < self.page_size:
            if first_round:
                targets = [
                    s for s in self._live_sources()
                    if len(self.buffers[s.kind]) < self.page_size
                ]
                first_round = False
            else:
                targets = [s for s in self._live_sources() if not self.buffers[s.kind]]

            if targets:
                failures = await self._fetch_round(targets, warnings)
                if len(failures) == len(self.kinds):
                    all_failed = failures

            self.state.phase = RevealPhase.MERGING
            batch.extend(self._merge(self.page_size - len(batch)))

            if len(batch) >= self.page_size:
                break
            if any(not self.buffers[s.kind] for s in self._live_sources()):
                continue
            if self._buffered_total():
                continue

            # Every source exhausted and every buffer drained
            if batch or fallback_used or all_failed:
                break
            if not self.state.revealed:
                logger.info(f"No records found for tenant={self.state.tenant}")
                self.state.phase = RevealPhase.EXHAUSTED
                break

            fallback_used = True
            found_new = await self._fallback(warnings)
            if found_new is None:
                all_failed = self._last_round_failures
                break
            if not found_new:
                self.state.phase = RevealPhase.EXHAUSTED
                break

        if not batch and all_failed:
            for failure in all_failed:
                self.state.sources[failure.kind].retry()
            self.state.phase = RevealPhase.FETCHING
            raise AllSourcesFailedError(all_failed)

        return self._build_batch(batch, warnings)

    def _build_batch(self, records: List[CanonicalRecord], warnings: List[SourceWarning]) -> RevealBatch:
        if records:
            self.state.record_revealed(records)
            self.state.batch_number += 1
        if not self.exhausted:
            self.state.phase = RevealPhase.REVEALED_BATCH

        buffer_sizes = {kind.value: len(buffer) for kind, buffer in self.buffers.items()}
        logger.info(
            f"Revealed batch {self.state.batch_number} for tenant={self.state.tenant}: "
            f"{len(records)} records, {len(self.state.revealed)} total, buffers={buffer_sizes}"
        )

        return RevealBatch(
            records=records,
            warnings=warnings,
            phase=self.state.phase,
            exhausted=self.exhausted,
            batch_number=self.state.batch_number,
            revealed_total=len(self.state.revealed),
            type_totals=dict(self.state.type_totals),
        )

    # =========================================================================
    # Fetching
    # =========================================================================

    def _live_sources(self) -> List[SourceState]:
        return [self.state.sources[kind] for kind in self.kinds if self.state.sources[kind].live]

    def _buffered_total(self) -> int:
        return sum(len(buffer) for buffer in self.buffers.values())

    async def _fetch_source(self, source: SourceState) -> RawPage:
        return await self.service.fetch_page(source.to_query(self.state.tenant, self.fetch_limit))

    async def _fetch_round(
        self,
        targets: List[SourceState],
        warnings: List[SourceWarning],
    ) -> List[PartialSourceFailure]:
        """
        Fetch every target source concurrently and buffer what arrives.

        Returns:
            The failures of this round.
        """
        self.state.phase = RevealPhase.FETCHING
        results = await asyncio.gather(
            *(self._fetch_source(source) for source in targets),
            return_exceptions=True,
        )

        failures: List[PartialSourceFailure] = []
        self._round_new_records = 0
        for source, result in zip(targets, results):
            if isinstance(result, ReportError):
                failure = PartialSourceFailure(source.kind, result)
                source.mark_failed()
                failures.append(failure)
                warnings.append(
                    SourceWarning(kind=source.kind, status=failure.status, message=failure.message)
                )
                logger.warning(f"Source failed for tenant={self.state.tenant}: {failure.message}")
                continue
            if isinstance(result, BaseException):
                raise result

            source.advance(result.next_cursor)
            self._round_new_records += self._buffer(source.kind, result.rows)

        self._last_round_failures = failures
        return failures

    def _buffer(self, kind: ReportKind, rows: List[dict]) -> int:
        """
        Normalize rows into the source buffer.

        Returns:
            How many of them were neither revealed nor already buffered.
        """
        records = [
            record for record in normalize_page(kind, rows)
            if record.call_id not in self.state.revealed_ids
            and record.call_id not in self._batch_ids
        ]
        buffered_ids = {r.call_id for buffer in self.buffers.values() for r in buffer}
        new_ids = {r.call_id for r in records} - buffered_ids
        self.buffers[kind].extend(records)
        return len(new_ids)

    async def _fallback(self, warnings: List[SourceWarning]) -> Optional[bool]:
        """
        Re-query every source with the window ending just before the oldest revealed record.

        Returns:
            True if the round produced unseen records, False if it produced
            nothing new, None if every source failed.
        """
        oldest = self.state.oldest_revealed_time()
        if oldest is None:
            logger.warning(f"No known event time to move the window back from, tenant={self.state.tenant}")
            return False

        new_end = math.floor(oldest) - 1
        window = self.state.window.ending_at(new_end)
        if window.start is not None and new_end < window.start:
            logger.warning(f"Fallback window end {new_end} precedes window start {window.start}")
            return False

        self.state.window = window
        self.state.fallback_rounds += 1
        for kind in self.kinds:
            self.state.sources[kind].reset(window)
        logger.info(
            f"Fallback round {self.state.fallback_rounds} for tenant={self.state.tenant}: "
            f"window end moved to {new_end}"
        )

        failures = await self._fetch_round(list(self.state.sources.values()), warnings)
        if len(failures) == len(self.kinds):
            return None
        if not self._round_new_records:
            logger.warning(
                f"Fallback window ending {new_end} returned nothing new for "
                f"tenant={self.state.tenant}; session exhausted"
            )
            return False
        return True

    # =========================================================================
    # Merging
    # =========================================================================

    def _merge(self, quota: int) -> List[CanonicalRecord]:
        """
        Pop the newest buffered heads until the quota is met, a live source
        runs dry, or every buffer is empty.
        """
        merged: List[CanonicalRecord] = []

        while len(merged) < quota:
            if any(not self.buffers[s.kind] for s in self._live_sources()):
                break

            best: Optional[SourceBuffer] = None
            for kind in self.kinds:
                buffer = self.buffers[kind]
                head = buffer.head()
                if head is None:
                    continue
                if best is None or recency_key(head) > recency_key(best.head()):
                    best = buffer
            if best is None:
                break

            record = best.pop()
            if record.call_id in self.state.revealed_ids or record.call_id in self._batch_ids:
                continue
            self._batch_ids.add(record.call_id)
            merged.append(record)

        return merged
