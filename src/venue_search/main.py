"""FastAPI application entry point with lifespan management."""

from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
import structlog
from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import RequestResponseEndpoint

from venue_search.config import settings
from venue_search.models import (
    AutocompleteResponse,
    HealthResponse,
    PlanExplanation,
    VenueSearchRequest,
    VenueSearchResult,
)
from venue_search.pipeline.orchestrator import search_by_name, search_venues
from venue_search.pipeline.stage2_tiers import compile_tiers, explain_plan
from venue_search.pipeline.stage4_results import to_contact
from venue_search.services.elasticsearch import ElasticsearchClient
from venue_search.utils.logging import bind_request_context, configure_logging

logger = structlog.get_logger(__name__)

_startup_time: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the Elasticsearch client at startup and close it on shutdown."""
    global _startup_time
    configure_logging(settings.environment, settings.log_level)
    log = structlog.get_logger(__name__)

    log.info(
        "venue_search.startup",
        environment=settings.environment,
        elasticsearch=settings.elasticsearch_url,
        index=settings.elasticsearch_index,
    )

    async with ElasticsearchClient(
        settings.elasticsearch_url,
        settings.elasticsearch_index,
        api_key=settings.elasticsearch_api_key,
        timeout=settings.request_timeout_seconds,
    ) as es:
        app.state.es = es
        _startup_time = time.time()
        log.info("venue_search.ready")

        yield

        log.info("venue_search.shutdown")


app = FastAPI(
    title="Venue Search",
    description="Location-aware tiered fallback search over the venue contact index.",
    version="0.1.0",
    lifespan=lifespan,
)

REQUEST_ID_HEADER = "x-request-id"


@app.middleware("http")
async def request_context(request: Request, call_next: RequestResponseEndpoint) -> Response:
    """Tag every log line of a request with its id and echo the id back."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
    bind_request_context(request_id=request_id, path=request.url.path)
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/search", response_model=VenueSearchResult, summary="Search venues by free text")
async def search(
    q: str = Query(..., min_length=1, max_length=512, description="Free-text venue query"),
    limit: int = Query(default=settings.default_limit, ge=1, le=1000, description="Maximum hits"),
    verification_status: str | None = Query(default=None, description="Required email verification status"),
    exclude_ids: str | None = Query(default=None, description="Comma-separated contact ids to drop"),
) -> VenueSearchResult:
    """Run the tiered fallback search and return shaped contacts."""
    if not q.strip():
        raise HTTPException(status_code=400, detail="Query cannot be blank.")

    request = VenueSearchRequest(
        query=q.strip(),
        limit=limit,
        verification_status=verification_status,
        exclude_ids=[i.strip() for i in (exclude_ids or "").split(",") if i.strip()],
    )
    return await search_venues(request, app.state.es)


@app.get("/venues/autocomplete", response_model=AutocompleteResponse, summary="Venue name typeahead")
async def autocomplete(
    name: str = Query(..., min_length=1, max_length=128, description="Partial venue name"),
    limit: int = Query(default=10, ge=1, le=50),
) -> AutocompleteResponse:
    """Prefix and fuzzy match on company names."""
    try:
        hits = await search_by_name(name.strip(), app.state.es, limit=limit)
    except httpx.HTTPError as exc:
        logger.error("autocomplete.backend_failed", error=str(exc))
        raise HTTPException(status_code=502, detail=f"Search backend failed: {exc}") from exc

    return AutocompleteResponse(query=name, results=[to_contact(doc) for doc in hits])


@app.get("/debug/tiers", response_model=PlanExplanation, summary="Explain the compiled tiers")
async def debug_tiers(
    q: str = Query(..., min_length=1, max_length=512, description="Free-text venue query"),
) -> PlanExplanation:
    """Show the parsed location and what each tier would send."""
    return explain_plan(compile_tiers(q))


@app.get("/health", response_model=HealthResponse, summary="Service health check")
async def health() -> HealthResponse:
    """Check that the Elasticsearch cluster answers."""
    uptime = time.time() - _startup_time if _startup_time else 0.0

    es_status = "reachable"
    try:
        await app.state.es.ping()
    except Exception:  # noqa: BLE001
        es_status = "unreachable"

    return HealthResponse(
        status="ok" if es_status == "reachable" else "degraded",
        elasticsearch=es_status,
        uptime_seconds=round(uptime, 1),
    )


# ---------------------------------------------------------------------------
# Generic error handler
# ---------------------------------------------------------------------------


@app.exception_handler(Exception)
async def generic_exception_handler(request, exc: Exception) -> JSONResponse:  # noqa: ANN001
    """Catch-all error handler that logs and returns a structured response."""
    logger.error("unhandled_exception", path=str(request.url), error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error.", "error": str(exc)},
    )
