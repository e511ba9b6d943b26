"""
FastAPI router for single-report queries.

Key Endpoints:
- GET /reports/{kind} - One normalized page of one report for one tenant

Query Parameters:
- account: Tenant / account identifier (required)
- start, end: Window bounds, ISO-8601 or epoch seconds (optional)
- limit: Maximum rows, default 1000, clamped to the configured maximum
- startKey: Continuation cursor from a previous response

`kind` accepts canonical names (inbound-queue, outbound-queue,
campaign-activity, cdr) and the legacy route names (queueCalls,
queueOutboundCalls, campaignsActivity, cdrs).

Response shape: { rows: [CanonicalRecord...], next: cursor | null }

Error Mapping:
- InvalidQueryError -> 400 {"error": ...}
- UpstreamError -> 502 {"error": ...} (upstream supplied message preferred)
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from callreports.core.dependencies import ReportServiceDep
from callreports.core.errors import InvalidQueryError, UpstreamError
from callreports.models import ReportResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{kind}", response_model=ReportResponse)
async def get_report(
    kind: str,
    service: ReportServiceDep,
    account: Optional[str] = Query(default=None, description="Tenant / account identifier"),
    start: Optional[str] = Query(default=None, description="Window start (ISO-8601 or epoch seconds)"),
    end: Optional[str] = Query(default=None, description="Window end (ISO-8601 or epoch seconds)"),
    limit: Optional[int] = Query(default=None, description="Maximum rows (default 1000)"),
    startKey: Optional[str] = Query(default=None, description="Continuation cursor"),
) -> ReportResponse:
    """
    Fetch one page of one report.

    Example Request:
        GET /api/reports/queueCalls?account=acme.example.com&start=2024-06-01T00:00:00Z&limit=200

    Example Response:
        {"rows": [{"call_id": "...", "kind": "inbound-queue", ...}], "next": "c2"}
    """
    try:
        return await service.query_report(
            kind,
            account,
            start=start,
            end=end,
            cursor=startKey,
            limit=limit,
        )

    except InvalidQueryError as e:
        logger.warning(f"GET /reports/{kind} rejected: {e.message}")
        raise HTTPException(status_code=400, detail={"error": e.message})
    except UpstreamError as e:
        logger.error(f"Upstream failure for GET /reports/{kind} (account={account}): {e.message}")
        raise HTTPException(status_code=502, detail={"error": e.message})
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching report {kind}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail={"error": "Failed to fetch report"})
