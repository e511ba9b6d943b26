"""
FastAPI dependency injection for the call activity reports service.

Shared, process-wide resources (the httpx-backed ReportClient, the QueryCache
and the SessionStore) are created in the application lifespan and kept on
`app.state`; these providers hand them to endpoint handlers. Tests swap any
of them through `app.dependency_overrides`.

Dependencies Provided:
- get_report_service / ReportServiceDep: single-report query pipeline
- get_session_store / SessionStoreDep: reveal session registry
"""

from typing import Annotated

from fastapi import Depends, Request

from callreports.services.report_service import ReportService
from callreports.services.sessions import SessionStore


# =============================================================================
# Shared Service Dependencies
# =============================================================================

def get_report_service(request: Request) -> ReportService:
    return request.app.state.report_service


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

ReportServiceDep = Annotated[ReportService, Depends(get_report_service)]

SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]
