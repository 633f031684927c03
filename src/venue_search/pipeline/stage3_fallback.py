"""Stage 3 — Run tiers in order until one returns hits."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from venue_search.models import ScoredDocument, SearchOutcome, TierPlan
from venue_search.services.backend import SearchBackend

logger = structlog.get_logger(__name__)

TIER_MESSAGES: dict[int, str | None] = {
    1: None,
    2: "Showing results with flexible matching",
    3: "Expanded search to nearby areas",
    4: "Showing all venues in the state",
    5: "Showing broadest results - try adding a location",
}
EXHAUSTED_MESSAGE = "No results found. Try broadening your search terms."

DEFAULT_TIER_TIMEOUT = 10.0


class BackendNotConfiguredError(RuntimeError):
    """Raised before any tier runs when no search backend was supplied."""


def _parse_total(raw: Any, fallback: int) -> int:  # noqa: ANN401
    if isinstance(raw, dict):
        raw = raw.get("value")
    try:
        return int(raw)
    except (TypeError, ValueError):
        return fallback


def parse_hits(response: Any) -> tuple[list[ScoredDocument], int]:  # noqa: ANN401
    """Extract hits and the total count from a backend response.

    A response without a usable ``hits`` section counts as zero hits;
    individual hits that cannot be parsed are skipped.

    Returns:
        ``(documents, total)``.
    """
    section = response.get("hits") if isinstance(response, dict) else None
    if not isinstance(section, dict) or not isinstance(section.get("hits", []), list):
        logger.warning("fallback.malformed_response", response_type=type(response).__name__)
        return [], 0

    documents: list[ScoredDocument] = []
    for rank, item in enumerate(section.get("hits") or []):
        try:
            documents.append(
                ScoredDocument(
                    id=str(item.get("_id", "")),
                    source=item.get("_source") or {},
                    score=float(item.get("_score") or 0.0),
                    highlights=item.get("highlight") or {},
                )
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("fallback.hit_parse_error", rank=rank, error=str(exc))

    return documents, _parse_total(section.get("total"), len(documents))


async def run_with_fallback(
    plan: TierPlan,
    backend: SearchBackend | None,
    page_size: int,
    *,
    tier_timeout: float = DEFAULT_TIER_TIMEOUT,
) -> SearchOutcome:
    """Execute *plan* against *backend*, stopping at the first tier with hits.

    Tiers run sequentially with at most one backend round-trip each. A tier
    that errors, times out, or answers malformed is treated as empty and the
    next tier is tried. Cancelling the calling task aborts the in-flight
    request and skips the remaining tiers.

    Args:
        plan:         Compiled :class:`TierPlan`.
        backend:      Search backend; required.
        page_size:    Maximum hits requested per tier.
        tier_timeout: Seconds allowed for each tier's round-trip.

    Returns:
        :class:`SearchOutcome` for the first non-empty tier, or the exhausted
        outcome (``tier_used=5``, no hits) when every tier comes back empty.

    Raises:
        BackendNotConfiguredError: If *backend* is ``None``.
    """
    if backend is None:
        raise BackendNotConfiguredError("run_with_fallback requires a search backend")

    log = logger.bind(query=plan.query[:80], location=plan.location.kind)

    for tier in plan.tiers:
        try:
            response = await asyncio.wait_for(
                backend.search(tier.to_query(), size=page_size),
                timeout=tier_timeout,
            )
        except asyncio.TimeoutError:
            log.warning("fallback.tier_timeout", tier=tier.tier, timeout_s=tier_timeout)
            continue
        except Exception as exc:  # noqa: BLE001
            log.warning("fallback.tier_error", tier=tier.tier, error=str(exc))
            continue

        hits, total = parse_hits(response)
        if hits:
            log.info("fallback.tier_satisfied", tier=tier.tier, hits=len(hits), total=total)
            return SearchOutcome(
                tier_used=tier.tier,
                hits=hits,
                total=total,
                message=TIER_MESSAGES[tier.tier],
            )

        log.info("fallback.tier_empty", tier=tier.tier)

    log.warning("fallback.exhausted", tiers=len(plan.tiers))
    return SearchOutcome(
        tier_used=len(plan.tiers),
        hits=[],
        total=0,
        message=EXHAUSTED_MESSAGE,
        exhausted=True,
    )
