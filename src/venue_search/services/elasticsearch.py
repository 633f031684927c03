"""Async Elasticsearch HTTP client."""

from __future__ import annotations

from types import TracebackType
from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)

HIGHLIGHT_FIELDS: tuple[str, ...] = ("company", "headline", "metadata")


class ElasticsearchClient:
    """Async HTTP client for the contacts index.

    Designed to be used as an async context manager::

        async with ElasticsearchClient(base_url, index) as client:
            response = await client.search(query, size=25)

    Args:
        base_url: Cluster URL, e.g. ``"http://localhost:9200"``.
        index:    Index to search.
        api_key:  Optional API key sent as ``Authorization: ApiKey <key>``.
        timeout:  Overall per-request timeout in seconds.
        transport: Optional custom ``httpx`` transport.
    """

    def __init__(
        self,
        base_url: str,
        index: str,
        api_key: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._index = index
        self._api_key = api_key
        self._timeout = httpx.Timeout(timeout, connect=5.0)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "ElasticsearchClient":
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"ApiKey {self._api_key}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("ElasticsearchClient must be used as an async context manager.")
        return self._client

    async def ping(self) -> bool:
        """Perform a lightweight GET / to verify the cluster is reachable.

        Raises:
            httpx.HTTPError: If the request fails.
        """
        resp = await self._http.get("/", timeout=5.0)
        resp.raise_for_status()
        return True

    async def search(self, query: dict[str, Any], size: int) -> dict[str, Any]:
        """Run a query against the index.

        Args:
            query: Query DSL document, e.g. ``{"bool": {...}}``.
            size:  Maximum hits to return.

        Returns:
            The decoded ``_search`` response body.

        Raises:
            httpx.HTTPError: On network or HTTP errors.
        """
        body: dict[str, Any] = {
            "query": query,
            "size": size,
            "track_scores": True,
            "_source": True,
            "highlight": {"fields": {field: {} for field in HIGHLIGHT_FIELDS}},
        }

        logger.debug("elasticsearch.search", index=self._index, size=size)

        resp = await self._http.post(f"/{self._index}/_search", json=body)
        resp.raise_for_status()

        data: dict[str, Any] = resp.json()
        logger.debug("elasticsearch.response", took_ms=data.get("took"))
        return data
