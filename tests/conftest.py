"""Shared pytest fixtures and configuration."""

from __future__ import annotations

import fnmatch
import re
from typing import Any
from unittest.mock import AsyncMock

import pytest

from venue_search.knowledge.geography import GeographyKB
from venue_search.knowledge.venue_terms import default_venue_terms
from venue_search.pipeline.stage1_location import LocationNormalizer
from venue_search.pipeline.stage2_tiers import QueryTierCompiler


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def _tokens(text: Any) -> list[str]:  # noqa: ANN401
    return _TOKEN_RE.findall(str(text or "").lower())


def _field(spec: str) -> tuple[str, float]:
    name, _, weight = spec.partition("^")
    return name, float(weight) if weight else 1.0


def _edit_distance(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + (ca != cb)))
        previous = current
    return previous[-1]


def _allowed_edits(term: str, fuzziness: str | None) -> int:
    if not fuzziness:
        return 0
    low, high = 3, 6
    if fuzziness.startswith("AUTO:"):
        low, high = (int(x) for x in fuzziness[5:].split(","))
    if len(term) < low:
        return 0
    if len(term) < high:
        return 1
    return 2


def _contains_phrase(tokens: list[str], phrase: list[str], prefix: bool = False) -> bool:
    n = len(phrase)
    if n == 0:
        return False
    for i in range(len(tokens) - n + 1):
        if tokens[i : i + n - 1] != phrase[:-1]:
            continue
        last = tokens[i + n - 1]
        if last == phrase[-1] or (prefix and last.startswith(phrase[-1])):
            return True
    return False


def _required_terms(spec: str | None, n: int) -> int:
    if not spec:
        return 1
    pct = int(spec.rstrip("%"))
    return max(1, n * pct // 100)


def _multi_match(body: dict[str, Any], doc: dict[str, Any]) -> float | None:
    fields = [_field(f) for f in body["fields"]]
    boost = body.get("boost", 1.0)
    kind = body.get("type", "best_fields")

    if kind in ("phrase", "phrase_prefix"):
        phrase = _tokens(body["query"])
        weights = [
            w for name, w in fields if _contains_phrase(_tokens(doc.get(name)), phrase, kind == "phrase_prefix")
        ]
        return boost * max(weights) if weights else None

    terms = list(dict.fromkeys(_tokens(body["query"])))
    if not terms:
        return None
    matched, score = 0, 0.0
    for term in terms:
        edits = _allowed_edits(term, body.get("fuzziness"))
        weights = [
            w
            for name, w in fields
            if any(_edit_distance(term, tok) <= edits for tok in _tokens(doc.get(name)))
        ]
        if weights:
            matched += 1
            score += max(weights)

    if body.get("operator", "OR").upper() == "AND":
        required = len(terms)
    else:
        required = _required_terms(body.get("minimum_should_match"), len(terms))
    return boost * score if matched >= required else None


def _single(body: dict[str, Any]) -> tuple[str, Any]:
    ((key, value),) = body.items()
    return key, value


def evaluate(clause: dict[str, Any], doc: dict[str, Any]) -> float | None:
    """Score *doc* against one DSL clause; ``None`` means no match."""
    kind, body = _single(clause)

    if kind == "bool":
        score = 0.0
        for sub in body.get("must") or []:
            s = evaluate(sub, doc)
            if s is None:
                return None
            score += s
        for sub in body.get("filter") or []:
            if evaluate(sub, doc) is None:
                return None
        for sub in body.get("must_not") or []:
            if evaluate(sub, doc) is not None:
                return None
        matched = 0
        for sub in body.get("should") or []:
            s = evaluate(sub, doc)
            if s is not None:
                matched += 1
                score += s
        required = body.get("minimum_should_match")
        if required is None:
            required = 0 if (body.get("must") or body.get("filter")) else int(bool(body.get("should")))
        return score if matched >= int(required) else None

    if kind == "multi_match":
        return _multi_match(body, doc)
    if kind == "dis_max":
        scores = [s for s in (evaluate(q, doc) for q in body["queries"]) if s is not None]
        return max(scores) if scores else None
    if kind == "match_all":
        return body.get("boost", 1.0)

    field, spec = _single(body)
    if kind == "term":
        value, boost = (spec["value"], spec.get("boost", 1.0)) if isinstance(spec, dict) else (spec, 1.0)
        return boost if doc.get(field.removesuffix(".keyword")) == value else None
    if kind in ("match_phrase", "match_phrase_prefix"):
        text, boost = (spec["query"], spec.get("boost", 1.0)) if isinstance(spec, dict) else (spec, 1.0)
        hit = _contains_phrase(_tokens(doc.get(field)), _tokens(text), kind == "match_phrase_prefix")
        return boost if hit else None
    if kind == "match":
        return _multi_match({"fields": [field], **spec}, doc)
    if kind == "wildcard":
        hit = fnmatch.fnmatch(str(doc.get(field) or "").lower(), spec["value"].lower())
        return spec.get("boost", 1.0) if hit else None

    raise AssertionError(f"unsupported clause type: {kind}")


class FixtureBackend:
    """Evaluates the bool-query subset the tier compiler emits over a list of
    source documents, returning Elasticsearch-shaped responses."""

    def __init__(self, documents: list[dict[str, Any]]) -> None:
        self.documents = documents
        self.queries: list[dict[str, Any]] = []

    async def search(self, query: dict[str, Any], size: int) -> dict[str, Any]:
        self.queries.append(query)
        scored = []
        for position, doc in enumerate(self.documents):
            score = evaluate(query, doc)
            if score is not None:
                scored.append((score, position, doc))
        scored.sort(key=lambda item: (-item[0], item[1]))
        return {
            "took": 1,
            "hits": {
                "total": {"value": len(scored)},
                "hits": [
                    {"_id": str(doc.get("contactId", position)), "_score": score, "_source": doc}
                    for score, position, doc in scored[:size]
                ],
            },
        }

    async def ping(self) -> bool:
        return True


def es_response(*sources: dict[str, Any]) -> dict[str, Any]:
    """Build a minimal Elasticsearch response around *sources*."""
    return {
        "hits": {
            "total": {"value": len(sources)},
            "hits": [
                {"_id": str(src.get("contactId", i)), "_score": 1.0 - i * 0.1, "_source": src}
                for i, src in enumerate(sources)
            ],
        }
    }


EMPTY_RESPONSE: dict[str, Any] = {"hits": {"total": {"value": 0}, "hits": []}}


# ---------------------------------------------------------------------------
# Knowledge-base and compiler fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def geography() -> GeographyKB:
    return GeographyKB()


@pytest.fixture
def normalizer(geography: GeographyKB) -> LocationNormalizer:
    return LocationNormalizer(geography)


@pytest.fixture
def compiler(normalizer: LocationNormalizer) -> QueryTierCompiler:
    return QueryTierCompiler(normalizer, default_venue_terms())


# ---------------------------------------------------------------------------
# Document fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def venue_documents() -> list[dict[str, Any]]:
    """A small venue index spanning a few cities, plus two non-venues."""
    return [
        {
            "contactId": 1,
            "email": "booking@knittingfactory.example",
            "company": "Knitting Factory Concert House",
            "headline": "Live music venues and concert house in downtown Boise",
            "city": "Boise",
            "state": "Idaho",
            "emailValidationStatus": "valid",
            "coordinates": {"lat": 43.615, "lon": -116.202},
        },
        {
            "contactId": 2,
            "email": "info@neurolux.example",
            "company": "Neurolux Lounge",
            "headline": "Boise venues for indie rock and live music nightly",
            "city": "Boise",
            "state": "Idaho",
            "emailValidationStatus": "unknown",
        },
        {
            "contactId": 3,
            "email": "hello@paradise.example",
            "company": "Paradise Rock Club",
            "headline": "Music venue and bar with live music tonight",
            "city": "Boston",
            "state": "Massachusetts",
            "emailValidationStatus": "valid",
        },
        {
            "contactId": 4,
            "email": "events@bluenote.example",
            "company": "Blue Note Jazz Club",
            "headline": "Jazz club and music venue in Greenwich Village",
            "city": "New York",
            "state": "New York",
            "emailValidationStatus": "valid",
        },
        {
            "contactId": 5,
            "email": "bowery@example.com",
            "company": "Brooklyn Bowl",
            "headline": "Music venue, bowling and live music",
            "city": "Brooklyn",
            "state": "New York",
            "emailValidationStatus": "valid",
        },
        {
            "contactId": 6,
            "email": "troubadour@example.com",
            "company": "The Troubadour",
            "headline": "Legendary music venue and nightclub",
            "city": "Los Angeles",
            "state": "California",
            "emailValidationStatus": "valid",
        },
        {
            "contactId": 7,
            "email": "sales@weddingband.example",
            "company": "Wedding Band Agency",
            "headline": "Music venues booking and live music for weddings",
            "city": "Boston",
            "state": "Massachusetts",
            "emailValidationStatus": "valid",
        },
        {
            "contactId": 8,
            "email": "rent@djequip.example",
            "company": "DJ Equipment Rental Co",
            "headline": "Sound for music venues and live music events",
            "city": "Boise",
            "state": "Idaho",
            "emailValidationStatus": "valid",
        },
    ]


@pytest.fixture
def fixture_backend(venue_documents: list[dict[str, Any]]) -> FixtureBackend:
    return FixtureBackend(venue_documents)


# ---------------------------------------------------------------------------
# Mock backend fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_backend() -> AsyncMock:
    """Backend returning no hits unless a test scripts ``search``."""
    mock = AsyncMock()
    mock.search.return_value = EMPTY_RESPONSE
    return mock
