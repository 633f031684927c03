"""Search facade — wires normalisation, tier compilation, fallback and shaping."""

from __future__ import annotations

import time

import structlog

from venue_search.config import settings
from venue_search.models import ScoredDocument, VenueSearchRequest, VenueSearchResult
from venue_search.pipeline import stage3_fallback, stage4_results
from venue_search.pipeline.stage2_tiers import QueryTierCompiler, build_name_query, default_compiler
from venue_search.services.backend import SearchBackend

logger = structlog.get_logger(__name__)


async def search_venues(
    request: VenueSearchRequest,
    backend: SearchBackend | None,
    *,
    compiler: QueryTierCompiler | None = None,
    tier_timeout: float | None = None,
) -> VenueSearchResult:
    """Resolve a free-text venue query into typed contacts.

    Stages:
        1. Location normalisation (inside the compiler).
        2. Tier compilation.
        3. Tiered fallback execution against *backend*.
        4. Post-filters, contact shaping and suggestions.

    Args:
        request:      Query and post-filter options.
        backend:      Search backend; ``None`` is a configuration error.
        compiler:     Tier compiler; defaults to the shared one.
        tier_timeout: Per-tier timeout in seconds; defaults to settings.

    Returns:
        :class:`VenueSearchResult`. Never raises for "no venues found".

    Raises:
        BackendNotConfiguredError: If *backend* is ``None``.
    """
    t_start = time.perf_counter()
    log = logger.bind(query=request.query[:80], limit=request.limit)
    log.info("search.start")

    plan = (compiler or default_compiler()).compile(request.query)

    outcome = await stage3_fallback.run_with_fallback(
        plan,
        backend,
        request.limit,
        tier_timeout=settings.tier_timeout_seconds if tier_timeout is None else tier_timeout,
    )

    hits = stage4_results.apply_post_filters(
        outcome.hits,
        verification_status=request.verification_status,
        exclude_ids=request.exclude_ids,
    )
    contacts = [stage4_results.to_contact(doc) for doc in hits]
    suggestions = stage4_results.build_suggestions(
        outcome.tier_used, len(contacts), plan.location, total_matches=outcome.total
    )

    elapsed_ms = (time.perf_counter() - t_start) * 1000
    log.info(
        "search.complete",
        location=plan.location.kind,
        tier_used=outcome.tier_used,
        hits=len(outcome.hits),
        results=len(contacts),
        latency_ms=round(elapsed_ms, 1),
    )

    return VenueSearchResult(
        query=request.query,
        contacts=contacts,
        tier_used=outcome.tier_used,
        total=len(contacts),
        message=outcome.message,
        suggestions=suggestions or None,
        location_parsed=plan.location,
    )


async def search_by_name(name: str, backend: SearchBackend, limit: int = 10) -> list[ScoredDocument]:
    """Venue-name typeahead in a single round-trip.

    Raises:
        Exception: Whatever the backend raises; there is no fallback here.
    """
    response = await backend.search(build_name_query(name), size=limit)
    hits, _ = stage3_fallback.parse_hits(response)
    logger.debug("search.autocomplete", name=name[:80], hits=len(hits))
    return hits
