"""Small builders for the Elasticsearch query DSL subset the tiers use."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

Clause = dict[str, Any]

CITY_KEYWORD = "city.keyword"
STATE_KEYWORD = "state.keyword"

# Primary multi-field match, field^weight.
SEARCH_FIELDS: tuple[str, ...] = (
    "company^8",
    "headline^3",
    "metadata^2",
    "title^2",
    "city^4",
    "state^1",
    "address^1",
    "website^0.5",
)

# Name/entity fields for higher-precision phrase matching.
NAME_FIELDS: tuple[str, ...] = ("company^10", "headline^2")

# The four primary text fields used for phrase boosts and exclusions.
TEXT_FIELDS: tuple[str, ...] = ("company", "headline", "metadata", "title")

SYNONYM_FIELDS: tuple[str, ...] = ("company^3", "headline^2", "metadata", "title")
INDICATOR_FIELDS: tuple[str, ...] = ("company^2", "headline^1.5", "metadata", "website")
CORE_VOCABULARY_FIELDS: tuple[str, ...] = ("company^2", "headline^1.5", "metadata")


def multi_match(
    query: str,
    fields: Sequence[str],
    *,
    type: str | None = None,  # noqa: A002
    operator: str | None = None,
    minimum_should_match: str | None = None,
    fuzziness: str | None = None,
    tie_breaker: float | None = None,
    boost: float | None = None,
) -> Clause:
    body: dict[str, Any] = {"query": query, "fields": list(fields)}
    optional = {
        "type": type,
        "operator": operator,
        "minimum_should_match": minimum_should_match,
        "fuzziness": fuzziness,
        "tie_breaker": tie_breaker,
        "boost": boost,
    }
    body.update({k: v for k, v in optional.items() if v is not None})
    return {"multi_match": body}


def match_phrase(field: str, phrase: str, boost: float | None = None) -> Clause:
    if boost is None:
        return {"match_phrase": {field: phrase}}
    return {"match_phrase": {field: {"query": phrase, "boost": boost}}}


def match_phrase_prefix(field: str, query: str, boost: float) -> Clause:
    return {"match_phrase_prefix": {field: {"query": query, "boost": boost}}}


def match(field: str, query: str, *, fuzziness: str | None = None, boost: float | None = None) -> Clause:
    body: dict[str, Any] = {"query": query}
    if fuzziness is not None:
        body["fuzziness"] = fuzziness
    if boost is not None:
        body["boost"] = boost
    return {"match": {field: body}}


def term(field: str, value: str, boost: float | None = None) -> Clause:
    if boost is None:
        return {"term": {field: value}}
    return {"term": {field: {"value": value, "boost": boost}}}


def term_value(clause: Clause, field: str) -> str | None:
    """Return the value of a ``term`` clause on *field*, or ``None``."""
    body = clause.get("term", {}).get(field)
    if isinstance(body, dict):
        return body.get("value")
    return body


def any_of(clauses: Iterable[Clause], minimum_should_match: int = 1) -> Clause:
    """Boolean OR-group."""
    return {"bool": {"should": list(clauses), "minimum_should_match": minimum_should_match}}


def dis_max(queries: Iterable[Clause], tie_breaker: float) -> Clause:
    return {"dis_max": {"tie_breaker": tie_breaker, "queries": list(queries)}}


def wildcard(field: str, value: str, boost: float) -> Clause:
    return {"wildcard": {field: {"value": value, "boost": boost}}}


def match_all(boost: float) -> Clause:
    return {"match_all": {"boost": boost}}
