"""
Web search collaborator backed by SerpAPI.

Usage:
    service = SerpApiSearchService(api_key="...")
    results = await service.search("2BHK rent Kupondole", location="Kathmandu, Nepal")

The returned dict keeps SerpAPI's own keys (organic_results, news_results,
related_searches, answer_box); shaping for the Search tool happens in
shape_search_payload().
"""

from typing import Protocol

import httpx
import structlog

from app.config import SearchConfig
from app.constants import SEARCH_MAX_NEWS, SEARCH_MAX_ORGANIC, SEARCH_MAX_RELATED

logger = structlog.get_logger(__name__)


class WebSearchError(RuntimeError):
    """Transport or provider failure while searching."""


class WebSearchProvider(Protocol):
    async def search(self, query: str, location: str | None = None, limit: int = 10) -> dict: ...


class SerpApiSearchService:
    """Google results via SerpAPI's JSON endpoint."""

    def __init__(
        self,
        api_key: str,
        search_config: SearchConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            api_key: SerpAPI key.
            search_config: Endpoint, engine, default location and timeout.
            client: Optional pre-built client (tests pass one with a MockTransport).
        """
        self.api_key = api_key
        self.search_config = search_config or SearchConfig()
        self._client = client or httpx.AsyncClient(timeout=self.search_config.request_timeout_seconds)

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def search(self, query: str, location: str | None = None, limit: int = 10) -> dict:
        """
        Run one web search.

        Raises:
            WebSearchError: missing key, HTTP error, non-JSON body or a
                provider-reported error.
        """
        if not self.api_key:
            raise WebSearchError("Search API key not configured")

        params = {
            "q": query,
            "engine": self.search_config.engine,
            "location": location or self.search_config.default_location,
            "num": limit,
            "api_key": self.api_key,
        }
        try:
            response = await self._client.get(self.search_config.base_url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise WebSearchError(f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise WebSearchError(str(e) or type(e).__name__) from e
        except ValueError as e:
            raise WebSearchError("Invalid JSON from search provider") from e

        if not isinstance(data, dict):
            raise WebSearchError("Unexpected search response shape")
        if data.get("error"):
            raise WebSearchError(str(data["error"]))

        logger.debug(
            "web_search_completed",
            query=query,
            organic=len(data.get("organic_results") or []),
        )
        return data


def shape_search_payload(query: str, raw: dict) -> dict:
    """Trim a raw search response to the Search tool payload."""
    organic = raw.get("organic_results") or []
    return {
        "query": query,
        "organic_results": organic[:SEARCH_MAX_ORGANIC],
        "news_results": (raw.get("news_results") or [])[:SEARCH_MAX_NEWS],
        "related_searches": (raw.get("related_searches") or [])[:SEARCH_MAX_RELATED],
        "answer_box": raw.get("answer_box") or None,
        "total_results": len(organic),
    }
