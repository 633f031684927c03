"""Domain term knowledge base loaded from ``data/venue_terms.yaml``."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import structlog
import yaml

from venue_search.models import BoostedTerm, VenueTerms

logger = structlog.get_logger(__name__)

DEFAULT_TERMS_PATH = Path(__file__).resolve().parents[1] / "data" / "venue_terms.yaml"


def load_venue_terms(path: Path = DEFAULT_TERMS_PATH) -> VenueTerms:
    """Load and validate a venue vocabulary file.

    Args:
        path: YAML file with ``venue_synonyms``, ``boosted_terms``,
              ``exclusion_phrases`` and ``venue_indicator_phrases`` keys.

    Returns:
        Frozen :class:`VenueTerms`.

    Raises:
        OSError: If the file cannot be read.
        pydantic.ValidationError: If a list is missing, empty, or a boost is
            not positive.
    """
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    terms = VenueTerms.model_validate(raw)
    logger.info(
        "venue_terms.loaded",
        path=str(path),
        synonyms=len(terms.venue_synonyms),
        boosted=len(terms.boosted_terms),
        exclusions=len(terms.exclusion_phrases),
        indicators=len(terms.venue_indicator_phrases),
    )
    return terms


@lru_cache(maxsize=1)
def default_venue_terms() -> VenueTerms:
    """Load and cache the bundled vocabulary."""
    return load_venue_terms()


def venue_synonyms() -> tuple[str, ...]:
    return default_venue_terms().venue_synonyms


def boosted_terms() -> tuple[BoostedTerm, ...]:
    return default_venue_terms().boosted_terms


def exclusion_phrases() -> tuple[str, ...]:
    return default_venue_terms().exclusion_phrases


def venue_indicator_phrases() -> tuple[str, ...]:
    return default_venue_terms().venue_indicator_phrases
