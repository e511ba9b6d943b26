"""
FastAPI application entry point for the Call Activity Reports API.

This module wires the shared, process-scoped resources of the aggregation
engine and exposes them over HTTP:

- One ReportClient (httpx.AsyncClient) per process, closed on shutdown
- One QueryCache per process, shared by every query and reveal session
- One SessionStore holding the live reveal sessions

Routes:
- /api/reports/{kind} - single-report pages
- /api/sessions - merged multi-source reveal sessions
- /health - liveness check
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from callreports import __version__
from callreports.api import api_router
from callreports.core.config import Settings, get_settings
from callreports.core.tokens import SettingsTokenProvider, TokenProvider
from callreports.services.fetch_client import ReportClient
from callreports.services.query_cache import QueryCache
from callreports.services.report_service import ReportService
from callreports.services.sessions import SessionStore

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    token_provider: Optional[TokenProvider] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use; the cached singleton when omitted.
        http_client: Upstream HTTP client; tests pass one built on httpx.MockTransport.
        token_provider: Upstream credential capability; SettingsTokenProvider by default.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        On startup: build the fetch client, cache, report service and session store.
        On shutdown: drop every session and close the upstream client.
        """
        logger.info("Call Activity Reports API starting")

        client = ReportClient(
            settings,
            token_provider or SettingsTokenProvider(settings),
            client=http_client,
        )
        cache = QueryCache(
            ttl_seconds=settings.cache_ttl_seconds,
            maxsize=settings.cache_max_entries,
        )
        service = ReportService(client, cache, settings)
        app.state.report_service = service
        app.state.session_store = SessionStore(
            service,
            page_size=settings.page_size,
            idle_ttl_seconds=settings.session_idle_ttl_seconds,
            max_sessions=settings.max_sessions,
        )

        yield

        logger.info("Call Activity Reports API shutting down")
        app.state.session_store.clear()
        await client.aclose()

    app = FastAPI(
        title="Call Activity Reports API",
        version=__version__,
        description=(
            "Aggregates inbound queue, outbound queue, campaign activity and CDR "
            "reports of one tenant into a single time-ordered, deduplicated stream."
        ),
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring and load balancer checks."""
        return {"status": "healthy"}

    return app


configure_logging(get_settings())

app = create_app()


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "callreports.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
