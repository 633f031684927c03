"""Stage 1 — Location normalisation from free-text queries."""

from __future__ import annotations

import re
from collections.abc import Callable
from functools import lru_cache

import structlog

from venue_search.knowledge.geography import GeographyKB, default_geography
from venue_search.models import CityOnly, CityState, LocationIntent, NoLocation, StateOnly

logger = structlog.get_logger(__name__)

VENUE_NOUNS: tuple[str, ...] = (
    r"venues?",
    r"clubs?",
    r"bars?",
    r"theaters?",
    r"theatres?",
    r"lounges?",
    r"concert\s+halls?",
    r"nightclubs?",
)

# Words that end an "in <place>" span: a venue noun or a qualifier.
PLACE_TERMINATORS = "|".join(("music", "live", *VENUE_NOUNS))

# A venue-type noun (optionally qualified) followed by trailing text, tried in
# this order; the first pattern that matches anywhere in the query is used.
_VENUE_PHRASE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(rf"\b(?:(?:music|jazz|live)\s+)?{noun}\s+(.+)$") for noun in VENUE_NOUNS
)

_IN_PHRASE = re.compile(rf"\bin\s+([a-z\s,]+?)(?:\s+(?:{PLACE_TERMINATORS})\b|$)")
_CITY_COMMA_STATE = re.compile(r"^([^,]+),\s*([a-z]+(?:\s+[a-z]+)*)$")
_BARE_WORD = re.compile(r"^[a-z]+$")

Rule = Callable[[str], "LocationIntent | None"]


def proper_case(text: str) -> str:
    """Capitalise the first letter of every whitespace-delimited word."""
    return " ".join(word[:1].upper() + word[1:] for word in text.split())


class LocationNormalizer:
    """Reads a location intent out of a raw query.

    The rules form an explicit priority chain; :meth:`normalize` returns the
    result of the first rule that applies. Each rule takes the lower-cased,
    stripped query and returns ``None`` when it does not apply, so they can
    be exercised one at a time.
    """

    def __init__(self, geography: GeographyKB | None = None) -> None:
        self.geography = geography or default_geography()
        self.rules: tuple[tuple[str, Rule], ...] = (
            ("alias", self.match_alias),
            ("venue_phrase", self.match_venue_phrase),
            ("in_phrase", self.match_in_phrase),
            ("trailing_tokens", self.match_trailing_tokens),
            ("borough_fallback", self.match_borough_fallback),
        )

    def normalize(self, query: str) -> LocationIntent:
        """Return the location intent for *query*; never raises."""
        lower = " ".join(query.lower().split())
        for name, rule in self.rules:
            intent = rule(lower)
            if intent is not None:
                logger.debug("location.matched", rule=name, kind=intent.kind)
                return intent
        return NoLocation()

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def match_alias(self, lower: str) -> LocationIntent | None:
        for alias, (city, state) in self.geography.aliases().items():
            if alias in lower:
                return CityState(city=city, state=state)
        return None

    def match_venue_phrase(self, lower: str) -> LocationIntent | None:
        """``<venue noun> <place>``, e.g. "jazz clubs chicago"."""
        for pattern in _VENUE_PHRASE_PATTERNS:
            match = pattern.search(lower)
            if match:
                # Only the first matching noun pattern is classified.
                return self._classify_trailing_place(match.group(1).strip())
        return None

    def match_in_phrase(self, lower: str) -> LocationIntent | None:
        """``in <place>``, e.g. "live music in boise, id"."""
        match = _IN_PHRASE.search(lower)
        if not match:
            return None
        place = match.group(1).strip(" ,")
        geo = self.geography

        state = geo.state_from_token(place)
        if state:
            return StateOnly(state=state)
        if geo.is_major_city(place):
            return CityOnly(city=proper_case(place))

        city_state = _CITY_COMMA_STATE.match(place)
        if city_state:
            state = geo.state_from_token(city_state.group(2))
            if state:
                return CityState(city=proper_case(city_state.group(1)), state=state)

        if len(place) > 2:
            return CityOnly(city=proper_case(place.split(",")[0]))
        return None

    def match_trailing_tokens(self, lower: str) -> LocationIntent | None:
        """Last one, two or three words of the query as a state or city."""
        words = lower.split()
        if len(words) < 2:
            return None
        tails = [" ".join(words[-n:]).replace(",", "").replace(".", "") for n in (1, 2, 3) if n <= len(words)]

        for tail in tails:
            state = self.geography.state_from_token(tail)
            if state:
                return StateOnly(state=state)
        for tail in tails:
            if self.geography.is_major_city(tail):
                return CityOnly(city=proper_case(tail))
        return None

    def match_borough_fallback(self, lower: str) -> LocationIntent | None:
        for borough in self.geography.borough_fallbacks:
            if borough in lower:
                return CityOnly(city=proper_case(borough))
        return None

    # ------------------------------------------------------------------

    def _classify_trailing_place(self, place: str) -> LocationIntent | None:
        geo = self.geography

        state = geo.state_from_token(place)
        if state:
            return StateOnly(state=state)
        if geo.is_major_city(place):
            return CityOnly(city=proper_case(place))

        words = place.split()
        for width in (2, 3):
            if len(words) >= width:
                state = geo.state_from_token(" ".join(words[:width]))
                if state:
                    return StateOnly(state=state)

        city = geo.known_multi_word_city(place)
        if city:
            return CityOnly(city=proper_case(city))

        if len(words) == 1 and len(place) > 2 and _BARE_WORD.match(place):
            return CityOnly(city=proper_case(place))
        return None


@lru_cache(maxsize=1)
def default_normalizer() -> LocationNormalizer:
    return LocationNormalizer()


def normalize_location(query: str) -> LocationIntent:
    """Normalise *query* with the shared default knowledge base."""
    return default_normalizer().normalize(query)
