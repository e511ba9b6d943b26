"""
API package initialization.

Router modules:
- reports: single-report page queries
- sessions: merged multi-source reveal sessions
"""

from fastapi import APIRouter

from callreports.api.reports import router as reports_router
from callreports.api.sessions import router as sessions_router

# Create main API router
api_router = APIRouter()

api_router.include_router(reports_router, prefix="/reports", tags=["reports"])
api_router.include_router(sessions_router, prefix="/sessions", tags=["sessions"])

__all__ = [
    "api_router",
    "reports_router",
    "sessions_router",
]
