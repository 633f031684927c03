"""Geography knowledge base: metro aliases, US states, and major cities."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from functools import lru_cache
from types import MappingProxyType

# Alias → (canonical city, canonical state). Order matters: the first alias
# found in a query wins.
METRO_ALIASES: dict[str, tuple[str, str]] = {
    "manhattan": ("New York", "New York"),
    "new york city": ("New York", "New York"),
    "nyc": ("New York", "New York"),
    "brooklyn": ("Brooklyn", "New York"),
    "queens": ("Queens", "New York"),
    "bronx": ("Bronx", "New York"),
    "staten island": ("Staten Island", "New York"),
    "washington dc": ("Washington", "District of Columbia"),
}

US_STATES: dict[str, str] = {
    "Alabama": "AL",
    "Alaska": "AK",
    "Arizona": "AZ",
    "Arkansas": "AR",
    "California": "CA",
    "Colorado": "CO",
    "Connecticut": "CT",
    "Delaware": "DE",
    "Florida": "FL",
    "Georgia": "GA",
    "Hawaii": "HI",
    "Idaho": "ID",
    "Illinois": "IL",
    "Indiana": "IN",
    "Iowa": "IA",
    "Kansas": "KS",
    "Kentucky": "KY",
    "Louisiana": "LA",
    "Maine": "ME",
    "Maryland": "MD",
    "Massachusetts": "MA",
    "Michigan": "MI",
    "Minnesota": "MN",
    "Mississippi": "MS",
    "Missouri": "MO",
    "Montana": "MT",
    "Nebraska": "NE",
    "Nevada": "NV",
    "New Hampshire": "NH",
    "New Jersey": "NJ",
    "New Mexico": "NM",
    "New York": "NY",
    "North Carolina": "NC",
    "North Dakota": "ND",
    "Ohio": "OH",
    "Oklahoma": "OK",
    "Oregon": "OR",
    "Pennsylvania": "PA",
    "Rhode Island": "RI",
    "South Carolina": "SC",
    "South Dakota": "SD",
    "Tennessee": "TN",
    "Texas": "TX",
    "Utah": "UT",
    "Vermont": "VT",
    "Virginia": "VA",
    "Washington": "WA",
    "West Virginia": "WV",
    "Wisconsin": "WI",
    "Wyoming": "WY",
    "District of Columbia": "DC",
}

# Disambiguation hints only, not a gazetteer.
MAJOR_CITIES: frozenset[str] = frozenset(
    {
        "boise",
        "los angeles",
        "san francisco",
        "san diego",
        "sacramento",
        "denver",
        "phoenix",
        "tucson",
        "atlanta",
        "miami",
        "orlando",
        "tampa",
        "chicago",
        "indianapolis",
        "detroit",
        "columbus",
        "cleveland",
        "cincinnati",
        "boston",
        "baltimore",
        "philadelphia",
        "pittsburgh",
        "nashville",
        "memphis",
        "new orleans",
        "houston",
        "dallas",
        "austin",
        "san antonio",
        "seattle",
        "portland",
        "las vegas",
        "salt lake city",
        "milwaukee",
        "minneapolis",
        "st louis",
        "kansas city",
        "omaha",
        "des moines",
        "oklahoma city",
        "albuquerque",
        "charlotte",
        "raleigh",
        "richmond",
        "washington dc",
    }
)

# Multi-word cities recognised as a prefix of trailing text.
MULTI_WORD_CITIES: tuple[str, ...] = (
    "los angeles",
    "san francisco",
    "san diego",
    "san antonio",
    "san jose",
    "new orleans",
    "las vegas",
    "salt lake city",
    "des moines",
    "oklahoma city",
    "kansas city",
    "st louis",
    "virginia beach",
    "colorado springs",
    "fort worth",
    "el paso",
    "long beach",
    "washington dc",
)

BOROUGH_FALLBACKS: tuple[str, ...] = ("manhattan", "brooklyn", "queens", "bronx")


def _key(token: str) -> str:
    return " ".join(token.lower().split())


class GeographyKB:
    """Read-only lookup tables for place names.

    Every lookup is a case-insensitive exact match against pre-normalised
    keys; there is no fuzzy matching at this layer. Instances are never
    mutated after construction and can be shared across threads.
    """

    __slots__ = ("_aliases", "_states", "_abbreviations", "_major_cities", "_multi_word", "_boroughs")

    def __init__(
        self,
        aliases: Mapping[str, tuple[str, str]] = METRO_ALIASES,
        states: Mapping[str, str] = US_STATES,
        major_cities: Iterable[str] = MAJOR_CITIES,
        multi_word_cities: Iterable[str] = MULTI_WORD_CITIES,
        borough_fallbacks: Iterable[str] = BOROUGH_FALLBACKS,
    ) -> None:
        self._aliases = MappingProxyType({_key(k): v for k, v in aliases.items()})

        by_token: dict[str, str] = {}
        for name, abbreviation in states.items():
            by_token[_key(name)] = name
            by_token[_key(abbreviation)] = name
        self._states = MappingProxyType(by_token)
        self._abbreviations = MappingProxyType({_key(n): a.upper() for n, a in states.items()})

        self._major_cities = frozenset(_key(c) for c in major_cities)
        self._multi_word = tuple(_key(c) for c in multi_word_cities)
        self._boroughs = tuple(_key(b) for b in borough_fallbacks)

    def aliases(self) -> Mapping[str, tuple[str, str]]:
        """Alias → ``(city, state)`` in priority order."""
        return self._aliases

    def resolve_alias(self, token: str) -> tuple[str, str] | None:
        """Return the canonical ``(city, state)`` for a metro alias."""
        return self._aliases.get(_key(token))

    def state_from_token(self, token: str) -> str | None:
        """Resolve a full state name or 2-letter abbreviation to its full name.

        Args:
            token: e.g. ``"idaho"``, ``"ID"`` or ``"district of columbia"``.

        Returns:
            Canonical state name such as ``"Idaho"``, or ``None``.
        """
        return self._states.get(_key(token))

    def abbreviation_for(self, state: str) -> str | None:
        """Return the postal abbreviation for a full state name."""
        return self._abbreviations.get(_key(state))

    def is_major_city(self, token: str) -> bool:
        return _key(token) in self._major_cities

    def known_multi_word_city(self, place: str) -> str | None:
        """Return the first multi-word city that *place* starts with."""
        key = _key(place)
        for city in self._multi_word:
            if key.startswith(city):
                return city
        return None

    @property
    def borough_fallbacks(self) -> tuple[str, ...]:
        return self._boroughs


@lru_cache(maxsize=1)
def default_geography() -> GeographyKB:
    """Process-wide geography tables, built on first use."""
    return GeographyKB()
