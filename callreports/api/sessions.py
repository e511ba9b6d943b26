"""
FastAPI router for reveal sessions.

A reveal session merges all four report sources of one tenant into a single
time-ordered, deduplicated stream and hands it out one batch per request.

Key Endpoints:
- POST /sessions - Open a session for {account, start?, end?}
- GET /sessions/{session_id}/next - Reveal the next batch
- DELETE /sessions/{session_id} - Discard the session and its buffers

Error Mapping:
- InvalidQueryError -> 400
- Unknown session id -> 404
- AllSourcesFailedError -> 502 with the most specific upstream message
"""

import logging

from fastapi import APIRouter, HTTPException

from callreports.core.dependencies import SessionStoreDep
from callreports.core.errors import AllSourcesFailedError, InvalidQueryError
from callreports.models import RevealBatch, SessionCreateRequest, SessionCreateResponse, TimeWindow
from callreports.services.report_service import parse_datetime_param

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=SessionCreateResponse, status_code=201)
async def create_session(
    request: SessionCreateRequest,
    store: SessionStoreDep,
) -> SessionCreateResponse:
    """Open a reveal session over all report sources of a tenant."""
    try:
        if not request.account:
            raise InvalidQueryError('Missing account')
        window = TimeWindow(
            start=parse_datetime_param(request.start, 'start'),
            end=parse_datetime_param(request.end, 'end'),
        )
        session_id = store.create(request.account, window)
        return SessionCreateResponse(session_id=session_id)

    except InvalidQueryError as e:
        logger.warning(f"POST /sessions rejected: {e.message}")
        raise HTTPException(status_code=400, detail={"error": e.message})
    except Exception as e:
        logger.error(f"Error opening reveal session: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail={"error": "Failed to open session"})


@router.get("/{session_id}/next", response_model=RevealBatch)
async def next_batch(session_id: str, store: SessionStoreDep) -> RevealBatch:
    """
    Reveal the next batch of a session.

    Sources that failed while the others succeeded are listed in `warnings`;
    `exhausted` is true once the fallback window found nothing new.
    """
    engine = store.get(session_id)
    if engine is None:
        logger.warning(f"Reveal session not found: {session_id}")
        raise HTTPException(status_code=404, detail={"error": "Session not found"})

    try:
        return await engine.next_batch()

    except AllSourcesFailedError as e:
        logger.error(f"All sources failed for session {session_id}: {e.message}")
        raise HTTPException(status_code=502, detail={"error": e.message})
    except Exception as e:
        logger.error(f"Error revealing batch for session {session_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail={"error": "Failed to reveal batch"})


@router.delete("/{session_id}", status_code=204)
async def delete_session(session_id: str, store: SessionStoreDep) -> None:
    """Discard a session; its buffers are released immediately."""
    if not store.discard(session_id):
        raise HTTPException(status_code=404, detail={"error": "Session not found"})
