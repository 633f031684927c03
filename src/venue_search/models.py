"""Pydantic v2 data models for the venue search pipeline."""

from __future__ import annotations

import copy
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

TIER_COUNT = 5


# ---------------------------------------------------------------------------
# Location intents
# ---------------------------------------------------------------------------


class NoLocation(BaseModel):
    """No usable location could be read from the query."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["none"] = "none"


class StateOnly(BaseModel):
    """A whole US state, always the canonical full name."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["state"] = "state"
    state: str


class CityOnly(BaseModel):
    """A city with no state qualifier."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["city_only"] = "city_only"
    city: str


class CityState(BaseModel):
    """A city qualified by its canonical state name."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["city_state"] = "city_state"
    city: str
    state: str


LocationIntent = Annotated[
    Union[NoLocation, StateOnly, CityOnly, CityState],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Domain terms
# ---------------------------------------------------------------------------


class BoostedTerm(BaseModel):
    """A phrase that raises the score of documents containing it."""

    model_config = ConfigDict(frozen=True)

    phrase: str = Field(..., min_length=1)
    boost: float = Field(..., gt=0.0)


class VenueTerms(BaseModel):
    """The curated vocabulary used to boost venues and suppress non-venues."""

    model_config = ConfigDict(frozen=True)

    venue_synonyms: tuple[str, ...] = Field(..., min_length=5)
    boosted_terms: tuple[BoostedTerm, ...] = Field(..., min_length=1)
    exclusion_phrases: tuple[str, ...] = Field(..., min_length=1)
    venue_indicator_phrases: tuple[str, ...] = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Query plan
# ---------------------------------------------------------------------------


class TierQuery(BaseModel):
    """One structured query in the fallback sequence.

    Every clause is an Elasticsearch query-DSL mapping. ``filter`` clauses
    exclude without scoring, ``should`` clauses only add score (unless
    ``minimum_should_match`` says otherwise) and ``must_not`` clauses remove
    documents outright.
    """

    model_config = ConfigDict(frozen=True)

    tier: int = Field(..., ge=1, le=TIER_COUNT)
    must: list[dict[str, Any]] = Field(default_factory=list)
    filter: list[dict[str, Any]] = Field(default_factory=list)
    should: list[dict[str, Any]] = Field(default_factory=list)
    must_not: list[dict[str, Any]] = Field(default_factory=list)
    minimum_should_match: int = 0

    def to_query(self) -> dict[str, Any]:
        """Serialise to an Elasticsearch ``bool`` query document."""
        return {
            "bool": {
                "must": copy.deepcopy(self.must),
                "filter": copy.deepcopy(self.filter),
                "should": copy.deepcopy(self.should),
                "must_not": copy.deepcopy(self.must_not),
                "minimum_should_match": self.minimum_should_match,
            }
        }


class TierPlan(BaseModel):
    """Strictest-to-broadest tiers compiled from one raw query."""

    model_config = ConfigDict(frozen=True)

    query: str
    cleaned_query: str
    location: LocationIntent
    tiers: list[TierQuery]

    @field_validator("tiers")
    @classmethod
    def _exactly_five_tiers(cls, tiers: list[TierQuery]) -> list[TierQuery]:
        if len(tiers) != TIER_COUNT:
            raise ValueError(f"a tier plan needs exactly {TIER_COUNT} tiers, got {len(tiers)}")
        if [t.tier for t in tiers] != list(range(1, TIER_COUNT + 1)):
            raise ValueError("tiers must be numbered 1..5 in order")
        return tiers


# ---------------------------------------------------------------------------
# Execution results
# ---------------------------------------------------------------------------


class ScoredDocument(BaseModel):
    """A single backend hit."""

    id: str = ""
    source: dict[str, Any] = Field(default_factory=dict)
    score: float = 0.0
    highlights: dict[str, list[str]] = Field(default_factory=dict)


class SearchOutcome(BaseModel):
    """Result of running a plan through the fallback executor."""

    tier_used: int = Field(..., ge=1, le=TIER_COUNT)
    hits: list[ScoredDocument] = Field(default_factory=list)
    total: int = 0
    message: Optional[str] = None
    exhausted: bool = False


# ---------------------------------------------------------------------------
# Facade models
# ---------------------------------------------------------------------------


class VenueSearchRequest(BaseModel):
    """Caller-supplied search options."""

    query: str
    limit: int = Field(default=100, ge=1, le=1000)
    verification_status: Optional[str] = None
    exclude_ids: frozenset[str] = frozenset()

    @field_validator("exclude_ids", mode="before")
    @classmethod
    def _ids_as_strings(cls, value: Any) -> Any:  # noqa: ANN401
        if value is None:
            return frozenset()
        return frozenset(str(v) for v in value)


class VenueContact(BaseModel):
    """A contact record shaped from a backend hit."""

    id: str
    email: str = ""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    title: Optional[str] = None
    headline: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    address: Optional[str] = None
    website: Optional[str] = None
    metadata: Optional[str] = None
    company_type: Optional[str] = None
    company_industry: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    score: float = 0.0
    highlights: dict[str, list[str]] = Field(default_factory=dict)


class VenueSearchResult(BaseModel):
    """Top-level response from :func:`search_venues` and ``GET /search``."""

    query: str
    contacts: list[VenueContact]
    tier_used: int
    total: int
    message: Optional[str] = None
    suggestions: Optional[list[str]] = None
    location_parsed: LocationIntent


# ---------------------------------------------------------------------------
# API response models
# ---------------------------------------------------------------------------


class TierSummary(BaseModel):
    """Readable digest of one compiled tier."""

    tier: int
    text: Optional[str] = None
    minimum_should_match: Optional[str] = None
    fuzziness: Optional[str] = None
    filter_count: int
    should_count: int
    must_not_count: int


class PlanExplanation(BaseModel):
    """Response from GET /debug/tiers."""

    query: str
    cleaned_query: str
    location: LocationIntent
    tiers: list[TierSummary]


class AutocompleteResponse(BaseModel):
    """Response from GET /venues/autocomplete."""

    query: str
    results: list[VenueContact]


class HealthResponse(BaseModel):
    """Response from GET /health."""

    status: str
    elasticsearch: str
    uptime_seconds: float
