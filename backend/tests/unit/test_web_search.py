"""Tests for the SerpAPI web search client, using httpx.MockTransport."""

import httpx
import pytest

from app.config import SearchConfig
from app.services.web_search import SerpApiSearchService, WebSearchError, shape_search_payload


def _service(handler, api_key: str = "serp-key") -> SerpApiSearchService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SerpApiSearchService(api_key, SearchConfig(), client=client)


class TestSearch:
    async def test_sends_query_params(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(200, json={"organic_results": [{"title": "Flats in Thamel"}]})

        service = _service(handler)
        data = await service.search("flats thamel", limit=7)
        await service.close()

        assert data["organic_results"][0]["title"] == "Flats in Thamel"
        assert seen["q"] == "flats thamel"
        assert seen["engine"] == "google"
        assert seen["location"] == "Kathmandu, Nepal"
        assert seen["num"] == "7"
        assert seen["api_key"] == "serp-key"

    async def test_missing_key(self):
        service = _service(lambda request: httpx.Response(200, json={}), api_key="")
        with pytest.raises(WebSearchError, match="not configured"):
            await service.search("x")

    async def test_http_error(self):
        service = _service(lambda request: httpx.Response(503))
        with pytest.raises(WebSearchError, match="HTTP 503"):
            await service.search("x")

    async def test_invalid_json(self):
        service = _service(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(WebSearchError, match="Invalid JSON"):
            await service.search("x")

    async def test_provider_error(self):
        service = _service(lambda request: httpx.Response(200, json={"error": "Invalid API key."}))
        with pytest.raises(WebSearchError, match="Invalid API key"):
            await service.search("x")

    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        service = _service(handler)
        with pytest.raises(WebSearchError, match="connection refused"):
            await service.search("x")


class TestShapeSearchPayload:
    def test_missing_sections_default_to_empty(self):
        payload = shape_search_payload("q", {})
        assert payload == {
            "query": "q",
            "organic_results": [],
            "news_results": [],
            "related_searches": [],
            "answer_box": None,
            "total_results": 0,
        }
