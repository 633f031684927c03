"""The contract the fallback executor needs from a text-search backend."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class SearchBackend(Protocol):
    """Anything that can run one bool query and return an Elasticsearch-shaped
    response::

        {"hits": {"total": {"value": 3}, "hits": [{"_id": ..., "_score": ...,
                  "_source": {...}, "highlight": {...}}]}}
    """

    async def search(self, query: dict[str, Any], size: int) -> dict[str, Any]:
        """Run *query* and return at most *size* hits."""
        ...
