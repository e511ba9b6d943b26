"""
In-process registry of reveal sessions.

Each session owns one MergeEngine (and with it one RevealState). Sessions
are discarded explicitly, or dropped with their buffers once idle for
`idle_ttl_seconds`; when `max_sessions` is reached the least recently used
session goes first. Nothing is persisted.
"""

import logging
import time
import uuid
from typing import Callable, Optional

from cachetools import TTLCache

from callreports.models import TimeWindow
from callreports.services.merge_engine import MergeEngine
from callreports.services.report_service import ReportService

logger = logging.getLogger(__name__)


class SessionStore:
    """Maps session ids to live merge engines."""

    def __init__(
        self,
        service: ReportService,
        page_size: int,
        idle_ttl_seconds: float = 1800,
        max_sessions: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service = service
        self.page_size = page_size
        self._sessions: TTLCache = TTLCache(maxsize=max_sessions, ttl=idle_ttl_seconds, timer=clock)

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, tenant: str, window: TimeWindow) -> str:
        session_id = str(uuid.uuid4())
        self._sessions[session_id] = MergeEngine(
            self.service,
            tenant=tenant,
            window=window,
            page_size=self.page_size,
        )
        logger.info(f"Opened reveal session {session_id} for tenant={tenant} window={window.as_key()}")
        return session_id

    def get(self, session_id: str) -> Optional[MergeEngine]:
        engine = self._sessions.get(session_id)
        if engine is None:
            return None
        # Re-store to restart the idle timer
        self._sessions[session_id] = engine
        return engine

    def discard(self, session_id: str) -> bool:
        engine = self._sessions.pop(session_id, None)
        if engine is None:
            return False
        logger.info(f"Closed reveal session {session_id}")
        return True

    def clear(self) -> None:
        self._sessions.clear()
