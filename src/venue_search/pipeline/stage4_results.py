"""Stage 4 — Post-filters, contact shaping, and search suggestions."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from venue_search.models import (
    CityOnly,
    CityState,
    LocationIntent,
    ScoredDocument,
    StateOnly,
    VenueContact,
)

logger = structlog.get_logger(__name__)

FEW_RESULTS = 5
MANY_RESULTS = 100

SUGGEST_WHOLE_STATE = "Try searching for the entire state"
SUGGEST_BROADER_TERMS = 'Try using broader terms like "venue" or "live music"'
SUGGEST_GENERAL = "Remove specific requirements and search more generally"
SUGGEST_NARROW = "Add more specific terms to narrow results"
SUGGEST_ADD_CITY = "Try adding a city name for more targeted results"


def document_id(doc: ScoredDocument) -> str:
    """The contact identifier: ``contactId`` when indexed, else the hit id."""
    contact_id = doc.source.get("contactId")
    return str(contact_id) if contact_id not in (None, "") else doc.id


def apply_post_filters(
    hits: Iterable[ScoredDocument],
    verification_status: str | None = None,
    exclude_ids: Iterable[str] = (),
) -> list[ScoredDocument]:
    """Drop hits the query DSL cannot express filters for.

    Args:
        hits:                Backend hits in rank order.
        verification_status: Keep only hits whose ``emailValidationStatus``
                             equals this value, when given.
        exclude_ids:         Contact identifiers to drop.

    Returns:
        Surviving hits, order preserved.
    """
    excluded = {str(i) for i in exclude_ids}
    kept: list[ScoredDocument] = []
    for doc in hits:
        if verification_status and doc.source.get("emailValidationStatus") != verification_status:
            continue
        if excluded and document_id(doc) in excluded:
            continue
        kept.append(doc)
    return kept


def _float_or_none(value: Any) -> float | None:  # noqa: ANN401
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _text_or_none(value: Any) -> str | None:  # noqa: ANN401
    if value is None or value == "":
        return None
    return str(value)


def to_contact(doc: ScoredDocument) -> VenueContact:
    """Shape a backend hit into a :class:`VenueContact`."""
    src = doc.source
    coordinates = src.get("coordinates") if isinstance(src.get("coordinates"), dict) else {}
    return VenueContact(
        id=document_id(doc),
        email=str(src.get("email") or ""),
        first_name=_text_or_none(src.get("firstName")),
        last_name=_text_or_none(src.get("lastName")),
        company=_text_or_none(src.get("company")),
        title=_text_or_none(src.get("title")),
        headline=_text_or_none(src.get("headline")),
        city=_text_or_none(src.get("city")),
        state=_text_or_none(src.get("state")),
        country=_text_or_none(src.get("country")),
        address=_text_or_none(src.get("address")),
        website=_text_or_none(src.get("website")),
        metadata=_text_or_none(src.get("metadata")),
        company_type=_text_or_none(src.get("companyType")),
        company_industry=_text_or_none(src.get("companyIndustry")),
        latitude=_float_or_none(coordinates.get("lat")),
        longitude=_float_or_none(coordinates.get("lon")),
        score=doc.score,
        highlights=doc.highlights,
    )


def build_suggestions(
    tier_used: int,
    result_count: int,
    location: LocationIntent,
    total_matches: int | None = None,
) -> list[str]:
    """Advice for the user based on how hard the search had to fall back.

    Broad tiers with few results suggest widening; a strict tier with a flood
    of results suggests narrowing. A city narrowing is only suggested when
    the user searched by state.

    Args:
        tier_used:     Tier that produced the hits.
        result_count:  Contacts actually returned.
        location:      Parsed location intent.
        total_matches: Backend match count before the page-size cap; the
                       flood check uses it when given.
    """
    suggestions: list[str] = []

    if tier_used > 2 and result_count < FEW_RESULTS:
        if isinstance(location, (CityOnly, CityState)):
            suggestions.append(SUGGEST_WHOLE_STATE)
        suggestions.append(SUGGEST_BROADER_TERMS)
        suggestions.append(SUGGEST_GENERAL)

    matches = result_count if total_matches is None else total_matches
    if tier_used == 1 and matches > MANY_RESULTS:
        suggestions.append(SUGGEST_NARROW)
        if isinstance(location, StateOnly):
            suggestions.append(SUGGEST_ADD_CITY)

    return suggestions
