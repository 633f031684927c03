"""Stage 2 — Compile a raw query into five strictest-to-broadest tiers."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any

import structlog

from venue_search.knowledge.geography import GeographyKB, default_geography
from venue_search.knowledge.venue_terms import default_venue_terms
from venue_search.models import (
    CityOnly,
    CityState,
    LocationIntent,
    PlanExplanation,
    StateOnly,
    TierPlan,
    TierQuery,
    TierSummary,
    VenueTerms,
)
from venue_search.pipeline.stage1_location import PLACE_TERMINATORS, LocationNormalizer, default_normalizer
from venue_search.utils import dsl
from venue_search.utils.dsl import CITY_KEYWORD, STATE_KEYWORD, Clause

logger = structlog.get_logger(__name__)

GENERIC_VENUE_QUERY = "music venue live music bar club venue"
CORE_VENUE_VOCABULARY = "live music concert venue bar club theater"

CITY_BOOST = 2.0

# Cities to widen a New York, New York filter to; borough data is labelled
# inconsistently in the index.
NYC_FILTER_CITIES: tuple[str, ...] = ("New York", "Brooklyn")

# Applied when the query literally says "new york city" / "nyc" so Manhattan
# ranks first while borough venues still surface.
NYC_BOROUGH_BOOSTS: tuple[tuple[str, float], ...] = (
    ("Brooklyn", 0.8),
    ("Queens", 0.6),
    ("Bronx", 0.6),
    ("Staten Island", 0.5),
)

_IN_LOCATION = re.compile(rf"\bin\s+[a-z\s,]+?(?=\s+(?:{PLACE_TERMINATORS})\b|$)")


# ---------------------------------------------------------------------------
# Location filters
# ---------------------------------------------------------------------------


def location_filters(location: LocationIntent) -> list[Clause]:
    """Exact-match filters for a location intent."""
    if isinstance(location, CityState):
        if location.city == "New York" and location.state == "New York":
            city_filter = dsl.any_of(dsl.term(CITY_KEYWORD, c) for c in NYC_FILTER_CITIES)
        else:
            city_filter = dsl.term(CITY_KEYWORD, location.city)
        return [city_filter, dsl.term(STATE_KEYWORD, location.state)]
    if isinstance(location, CityOnly):
        return [dsl.term(CITY_KEYWORD, location.city)]
    if isinstance(location, StateOnly):
        return [dsl.term(STATE_KEYWORD, location.state)]
    return []


def nyc_borough_boosts(query: str) -> list[Clause]:
    lower = query.lower()
    if "new york city" not in lower and "nyc" not in lower:
        return []
    return [dsl.term(CITY_KEYWORD, city, boost=boost) for city, boost in NYC_BOROUGH_BOOSTS]


def _city_values(clause: Clause) -> list[str]:
    """Cities constrained by a filter clause; empty if it is not a city filter."""
    value = dsl.term_value(clause, CITY_KEYWORD)
    if value is not None:
        return [value]
    group = clause.get("bool", {}).get("should")
    if group:
        nested = [_city_values(c) for c in group]
        if all(nested):
            return [city for values in nested for city in values]
    return []


def with_city_as_boost(tier: TierQuery, boost: float = CITY_BOOST) -> TierQuery:
    """Move city filters into should-boosts, keeping every other filter."""
    kept: list[Clause] = []
    boosts: list[Clause] = []
    for clause in tier.filter:
        cities = _city_values(clause)
        if cities:
            boosts.extend(dsl.term(CITY_KEYWORD, city, boost=boost) for city in cities)
        else:
            kept.append(clause)
    return tier.model_copy(update={"filter": kept, "should": [*boosts, *tier.should]})


def without_city_filters(tier: TierQuery) -> TierQuery:
    """Drop city filters entirely, keeping state-level filters."""
    kept = [clause for clause in tier.filter if not _city_values(clause)]
    return tier.model_copy(update={"filter": kept})


# ---------------------------------------------------------------------------
# Query text
# ---------------------------------------------------------------------------


def clean_query_text(query: str, location: LocationIntent, geography: GeographyKB | None = None) -> str:
    """Strip the location out of *query*, leaving the subject text.

    Removes an ``in <place>`` span up to the next venue noun, then a trailing
    state name, postal abbreviation or city name as the query spelled it.
    Falls back to :data:`GENERIC_VENUE_QUERY` when fewer than three
    characters survive.
    """
    geo = geography or default_geography()
    cleaned = _IN_LOCATION.sub("", query.lower())

    trailing: list[str] = []
    if isinstance(location, (StateOnly, CityState)):
        trailing.append(location.state)
        abbreviation = geo.abbreviation_for(location.state)
        if abbreviation:
            trailing.append(abbreviation)
    if isinstance(location, (CityOnly, CityState)):
        trailing.append(location.city)
    for name in trailing:
        cleaned = re.sub(rf"\s+{re.escape(name.lower())}[.,]*$", "", cleaned.rstrip())

    cleaned = " ".join(cleaned.split())
    if len(cleaned) < 3:
        return GENERIC_VENUE_QUERY
    return cleaned


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------


class QueryTierCompiler:
    """Builds a :class:`TierPlan` from a raw query.

    A pure function of the query string and the two knowledge bases: the
    same input always yields an equal plan.
    """

    def __init__(
        self,
        normalizer: LocationNormalizer | None = None,
        terms: VenueTerms | None = None,
    ) -> None:
        self.normalizer = normalizer or default_normalizer()
        self.terms = terms or default_venue_terms()

    # Clause families shared across tiers ---------------------------------

    def synonym_boosts(self) -> list[Clause]:
        return [
            dsl.match_phrase(field, term.phrase, boost=term.boost)
            for term in self.terms.boosted_terms
            for field in dsl.TEXT_FIELDS
        ]

    def venue_indicator_boosts(self) -> list[Clause]:
        return [
            dsl.multi_match(phrase, dsl.INDICATOR_FIELDS, type="phrase", boost=0.5)
            for phrase in self.terms.venue_indicator_phrases
        ]

    def exclusions(self) -> list[Clause]:
        return [
            dsl.any_of(dsl.match_phrase(field, phrase) for field in dsl.TEXT_FIELDS)
            for phrase in self.terms.exclusion_phrases
        ]

    # --------------------------------------------------------------------

    def compile(self, query: str) -> TierPlan:
        """Compile *query* into exactly five tiers, strictest first."""
        query = " ".join(query.split())
        location = self.normalizer.normalize(query)
        filters = location_filters(location)
        cleaned = clean_query_text(query, location, self.normalizer.geography)
        synonyms = self.terms.venue_synonyms

        indicator_boosts = self.venue_indicator_boosts()
        shared_should = [*self.synonym_boosts(), *indicator_boosts, *nyc_borough_boosts(query)]
        must_not = self.exclusions()

        tier1 = TierQuery(
            tier=1,
            must=[
                dsl.multi_match(
                    cleaned,
                    dsl.SEARCH_FIELDS,
                    type="best_fields",
                    operator="AND",
                    minimum_should_match="75%",
                    tie_breaker=0.3,
                )
            ],
            filter=filters,
            should=[
                *shared_should,
                dsl.multi_match(cleaned, dsl.NAME_FIELDS, type="phrase", boost=2.0),
            ],
            must_not=must_not,
        )

        tier2 = TierQuery(
            tier=2,
            must=[
                dsl.dis_max(
                    [
                        dsl.multi_match(
                            cleaned,
                            dsl.SEARCH_FIELDS,
                            type="best_fields",
                            operator="OR",
                            minimum_should_match="50%",
                            fuzziness="AUTO:4,7",
                        ),
                        dsl.multi_match(cleaned, dsl.NAME_FIELDS, type="phrase_prefix", boost=1.5),
                    ],
                    tie_breaker=0.3,
                )
            ],
            filter=filters,
            should=shared_should,
            must_not=must_not,
        )

        first_word = cleaned.split(" ")[0]
        tier3 = with_city_as_boost(
            TierQuery(
                tier=3,
                must=[
                    dsl.multi_match(
                        f"{cleaned} {' '.join(synonyms[:5])}",
                        dsl.SEARCH_FIELDS,
                        type="most_fields",
                        operator="OR",
                        minimum_should_match="35%",
                        fuzziness="AUTO",
                    )
                ],
                filter=filters,
                should=[*shared_should, dsl.wildcard("company", f"*{first_word}*", boost=0.5)],
                must_not=must_not,
            )
        )

        tier4 = without_city_filters(
            TierQuery(
                tier=4,
                must=[
                    dsl.any_of(
                        [
                            dsl.multi_match(
                                cleaned,
                                dsl.SEARCH_FIELDS,
                                operator="OR",
                                minimum_should_match="25%",
                                fuzziness="AUTO",
                            ),
                            dsl.multi_match(
                                " ".join(synonyms),
                                dsl.SYNONYM_FIELDS,
                                operator="OR",
                                minimum_should_match="20%",
                            ),
                        ]
                    )
                ],
                filter=filters,
                should=[
                    *shared_should,
                    dsl.multi_match(CORE_VENUE_VOCABULARY, dsl.CORE_VOCABULARY_FIELDS, operator="OR", boost=1.0),
                ],
                must_not=must_not,
            )
        )

        tier5 = TierQuery(
            tier=5,
            should=[
                dsl.multi_match(
                    query or GENERIC_VENUE_QUERY,
                    dsl.SEARCH_FIELDS,
                    type="best_fields",
                    operator="OR",
                    fuzziness="AUTO",
                    boost=2.0,
                ),
                dsl.multi_match(
                    " ".join(synonyms),
                    dsl.SYNONYM_FIELDS[:3],
                    operator="OR",
                    minimum_should_match="10%",
                    boost=1.0,
                ),
                *indicator_boosts,
                dsl.match_all(boost=0.01),
            ],
            must_not=must_not,
            minimum_should_match=1,
        )

        plan = TierPlan(
            query=query,
            cleaned_query=cleaned,
            location=location,
            tiers=[tier1, tier2, tier3, tier4, tier5],
        )
        logger.debug("tiers.compiled", query=query[:80], location=location.kind, cleaned=cleaned[:80])
        return plan


@lru_cache(maxsize=1)
def default_compiler() -> QueryTierCompiler:
    return QueryTierCompiler()


def compile_tiers(query: str) -> TierPlan:
    """Compile *query* with the shared default knowledge bases."""
    return default_compiler().compile(query)


# ---------------------------------------------------------------------------
# Typeahead and diagnostics
# ---------------------------------------------------------------------------


def build_name_query(name: str) -> dict[str, Any]:
    """Venue-name typeahead: prefix phrase on company, or a fuzzy match."""
    return {
        "bool": {
            "should": [
                dsl.match_phrase_prefix("company", name, boost=3.0),
                dsl.match("company", name, fuzziness="AUTO", boost=1.0),
            ],
            "minimum_should_match": 1,
        }
    }


def _primary_text_clause(tier: TierQuery) -> dict[str, Any] | None:
    clauses = tier.must or tier.should
    if not clauses:
        return None
    clause = clauses[0]
    if "dis_max" in clause:
        clause = clause["dis_max"]["queries"][0]
    elif "bool" in clause:
        clause = clause["bool"]["should"][0]
    return clause.get("multi_match")


def explain_plan(plan: TierPlan) -> PlanExplanation:
    """Summarise *plan* tier by tier for debugging."""
    summaries: list[TierSummary] = []
    for tier in plan.tiers:
        text_clause = _primary_text_clause(tier) or {}
        summaries.append(
            TierSummary(
                tier=tier.tier,
                text=text_clause.get("query"),
                minimum_should_match=text_clause.get("minimum_should_match"),
                fuzziness=text_clause.get("fuzziness"),
                filter_count=len(tier.filter),
                should_count=len(tier.should),
                must_not_count=len(tier.must_not),
            )
        )
    return PlanExplanation(
        query=plan.query,
        cleaned_query=plan.cleaned_query,
        location=plan.location,
        tiers=summaries,
    )
