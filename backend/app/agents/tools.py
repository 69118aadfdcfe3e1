"""
Agent tools and the registry that dispatches them.

Every tool takes one free-text input and returns schema-less JSON data. The
registry resolves tool names case-insensitively, times each call and wraps the
outcome in a ToolResult. Handlers signal failure by raising; the registry is
the only place exceptions are converted into failed results.

Tools:
  Search            web search (top organic/news/related results)
  Maps              places lookup; synthesized fallback when unreachable
  Calculator        ROI, rental yield, basic arithmetic
  MarketAnalysis    structured market analysis; free-text fallback
  PropertyDatabase  listing corpus search
  Clarify           echo the question plus a fixed detail menu
"""

import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from app.agents.prompts import build_market_analysis_prompt, build_market_analysis_text_prompt
from app.config import AgentConfig, MapsConfig, SearchConfig
from app.constants import (
    CLARIFY_DETAIL_MENU,
    MARKET_ANALYSIS_SCHEMA,
    MARKET_FALLBACK_INSIGHTS,
    MARKET_FALLBACK_TRENDS,
)
from app.models.agent import ToolName, ToolResult
from app.models.property import Listing
from app.services.calculator import CalculationError, calculate
from app.services.llm import CompletionProvider
from app.services.maps import PlacesProvider, build_maps_payload, fallback_maps_payload
from app.services.property_search import search_properties
from app.services.web_search import WebSearchProvider, shape_search_payload

logger = structlog.get_logger(__name__)

ToolHandler = Callable[[str], Awaitable[Any]]


class ToolError(RuntimeError):
    """Raised by a tool handler; the message becomes the ToolResult error."""


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def _describe(error: Exception) -> str:
    return str(error) or type(error).__name__


class ToolRegistry:
    """Resolves tool names to handlers and runs them."""

    def __init__(
        self,
        completions: CompletionProvider,
        web_search: WebSearchProvider | None = None,
        places: PlacesProvider | None = None,
        agent_config: AgentConfig | None = None,
        search_config: SearchConfig | None = None,
        maps_config: MapsConfig | None = None,
        corpus: list[Listing] | None = None,
    ):
        self.completions = completions
        self.web_search = web_search
        self.places = places
        self.agent_config = agent_config or AgentConfig()
        self.search_config = search_config or SearchConfig()
        self.maps_config = maps_config or MapsConfig()
        self.corpus = corpus
        self._handlers: dict[ToolName, ToolHandler] = {
            ToolName.SEARCH: self.search,
            ToolName.MAPS: self.maps,
            ToolName.CALCULATOR: self.calculator,
            ToolName.MARKET_ANALYSIS: self.market_analysis,
            ToolName.PROPERTY_DATABASE: self.property_database,
            ToolName.CLARIFY: self.clarify,
        }

    def register(self, tool: ToolName, handler: ToolHandler) -> None:
        """Replace the handler for a catalog tool."""
        self._handlers[tool] = handler

    async def dispatch(self, tool_name: str, tool_input: str) -> ToolResult:
        """
        Run one tool. Never raises: unknown names and handler exceptions
        come back as failed results.
        """
        started = time.perf_counter()
        tool = ToolName.resolve(tool_name)
        if tool is None:
            logger.warning("tool_unknown", tool=tool_name)
            return ToolResult.fail(f"Unknown tool: {tool_name}", _elapsed_ms(started))

        try:
            data = await self._handlers[tool](tool_input)
        except Exception as e:
            elapsed = _elapsed_ms(started)
            logger.warning("tool_failed", tool=tool.value, error=_describe(e), duration_ms=elapsed)
            return ToolResult.fail(_describe(e), elapsed)

        elapsed = _elapsed_ms(started)
        logger.info("tool_dispatched", tool=tool.value, duration_ms=elapsed)
        return ToolResult.ok(data, elapsed)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def search(self, query: str) -> dict:
        if self.web_search is None:
            raise ToolError("Search failed: no search provider configured")
        try:
            raw = await self.web_search.search(query, limit=self.search_config.result_limit)
        except Exception as e:
            logger.warning("search_tool_failed", query=query, error=_describe(e))
            raise ToolError(f"Search failed: {_describe(e)}") from e
        return shape_search_payload(query, raw)

    async def maps(self, query: str) -> dict:
        if self.places is None:
            logger.warning("maps_fallback_used", query=query, reason="no places provider configured")
            return fallback_maps_payload(query)
        try:
            places = await self.places.search_places(query)
        except Exception as e:
            logger.warning("maps_fallback_used", query=query, reason=_describe(e))
            return fallback_maps_payload(query)
        return build_maps_payload(query, places, self.maps_config.max_places)

    async def calculator(self, expression: str) -> dict:
        try:
            calculation = calculate(expression)
        except CalculationError as e:
            raise ToolError(f"Calculation failed: {_describe(e)}") from e
        return calculation.model_dump(mode="json")

    async def market_analysis(self, topic: str) -> dict:
        try:
            return await self.completions.generate_object(
                build_market_analysis_prompt(topic), MARKET_ANALYSIS_SCHEMA, name="market_analysis"
            )
        except Exception as structured_error:
            logger.warning("market_analysis_structured_failed", topic=topic, error=_describe(structured_error))
            try:
                text = await self.completions.generate_text(
                    build_market_analysis_text_prompt(topic),
                    max_tokens=self.agent_config.market_analysis_max_tokens,
                )
            except Exception as text_error:
                logger.warning("market_analysis_text_failed", topic=topic, error=_describe(text_error))
                raise ToolError(f"Market analysis failed: {_describe(structured_error)}") from structured_error

        return {
            "topic": topic,
            "analysis": text,
            "market_trends": list(MARKET_FALLBACK_TRENDS),
            "key_insights": list(MARKET_FALLBACK_INSIGHTS),
            "fallback": True,
        }

    async def property_database(self, query: str) -> dict:
        try:
            return search_properties(query, corpus=self.corpus)
        except Exception as e:
            raise ToolError(f"Property database query failed: {_describe(e)}") from e

    async def clarify(self, question: str) -> dict:
        return {
            "clarification_needed": True,
            "question": question,
            "suggested_details": list(CLARIFY_DETAIL_MENU),
        }
