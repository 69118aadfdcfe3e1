"""
Agent trace and tool result models.

A trace parsed from one completion becomes an ordered list of Step records.
ToolResult is the uniform envelope every tool returns; its `data` stays
schema-less JSON on the wire and in storage, and is narrowed into a typed
payload (keyed by tool name) only where it is rendered.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ToolName(str, Enum):
    """The fixed tool catalog."""

    SEARCH = "Search"
    MAPS = "Maps"
    CALCULATOR = "Calculator"
    MARKET_ANALYSIS = "MarketAnalysis"
    PROPERTY_DATABASE = "PropertyDatabase"
    CLARIFY = "Clarify"

    @classmethod
    def resolve(cls, raw: str) -> "ToolName | None":
        """Case- and whitespace-insensitive lookup ("market analysis" -> MARKET_ANALYSIS)."""
        key = "".join(raw.split()).lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        return None


class ToolResult(BaseModel):
    """Uniform result envelope. A failed result never carries data."""

    success: bool
    data: Any = None
    error: str | None = None
    execution_time_ms: float = Field(default=0.0, ge=0.0)

    @model_validator(mode="after")
    def _failure_has_error_and_no_data(self) -> "ToolResult":
        if not self.success:
            if self.data is not None:
                raise ValueError("failed ToolResult must have data=None")
            if not self.error:
                raise ValueError("failed ToolResult must carry a non-empty error")
        return self

    @classmethod
    def ok(cls, data: Any, execution_time_ms: float = 0.0) -> "ToolResult":
        return cls(success=True, data=data, execution_time_ms=execution_time_ms)

    @classmethod
    def fail(cls, error: str, execution_time_ms: float = 0.0) -> "ToolResult":
        return cls(
            success=False,
            data=None,
            error=error or "Unknown error",
            execution_time_ms=execution_time_ms,
        )


class StepKind(str, Enum):
    THOUGHT = "thought"
    ACTION = "action"
    OBSERVATION = "observation"


class Step(BaseModel):
    """One parsed unit of a trace. Frozen once appended."""

    model_config = ConfigDict(frozen=True)

    kind: StepKind
    text: str
    action_name: str | None = None
    action_input: str | None = None
    tool_result: ToolResult | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class ToolCallRecord(BaseModel):
    """Tool call captured in assistant message metadata for UI replay."""

    name: str
    input: str
    result: ToolResult | None = None


class AgentResponse(BaseModel):
    """Result of one process_query call."""

    steps: list[Step] = Field(default_factory=list)
    final_answer: str
    is_complete: bool = True
    needs_clarification: bool = False

    def tool_calls(self) -> list[ToolCallRecord]:
        """Pair each action step with the observation that follows it."""
        records: list[ToolCallRecord] = []
        for step in self.steps:
            if step.kind == StepKind.ACTION and step.action_name:
                records.append(
                    ToolCallRecord(
                        name=step.action_name,
                        input=step.action_input or "",
                        result=step.tool_result,
                    )
                )
        return records


# ---------------------------------------------------------------------------
# Tagged tool payloads
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    # Providers add fields over time; unknown keys are kept, not rejected.
    model_config = ConfigDict(extra="allow")


class SearchPayload(_Payload):
    tool: str = ToolName.SEARCH.value
    query: str
    organic_results: list[dict] = Field(default_factory=list)
    news_results: list[dict] = Field(default_factory=list)
    related_searches: list[Any] = Field(default_factory=list)
    answer_box: dict | None = None
    total_results: int = 0


class Coordinates(BaseModel):
    lat: float
    lng: float


class Place(_Payload):
    name: str
    address: str = ""
    coordinates: Coordinates | None = None
    rating: float | None = None
    types: list[str] = Field(default_factory=list)
    nearby_amenities: list[str] = Field(default_factory=list)


class MapsPayload(_Payload):
    tool: str = ToolName.MAPS.value
    query: str
    places: list[Place] = Field(default_factory=list)
    total_results: int = 0
    fallback: bool = False
    commute_times: dict[str, str] = Field(default_factory=dict)
    infrastructure_projects: list[str] = Field(default_factory=list)


class CalculatorPayload(_Payload):
    tool: str = ToolName.CALCULATOR.value
    expression: str
    result: float
    formatted: str
    calculation_type: str
    interpretation: str


class MarketAnalysisPayload(_Payload):
    tool: str = ToolName.MARKET_ANALYSIS.value
    topic: str
    market_overview: str | None = None
    current_trends: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    analysis: str | None = None
    fallback: bool = False


class PropertyDatabasePayload(_Payload):
    tool: str = ToolName.PROPERTY_DATABASE.value
    query: str
    total_found: int
    properties: list[dict] = Field(default_factory=list)
    search_criteria: dict = Field(default_factory=dict)
    database_stats: dict = Field(default_factory=dict)


class ClarifyPayload(_Payload):
    tool: str = ToolName.CLARIFY.value
    clarification_needed: bool = True
    question: str
    suggested_details: list[str] = Field(default_factory=list)


ToolPayload = (
    SearchPayload
    | MapsPayload
    | CalculatorPayload
    | MarketAnalysisPayload
    | PropertyDatabasePayload
    | ClarifyPayload
)

_PAYLOAD_MODELS: dict[ToolName, type[_Payload]] = {
    ToolName.SEARCH: SearchPayload,
    ToolName.MAPS: MapsPayload,
    ToolName.CALCULATOR: CalculatorPayload,
    ToolName.MARKET_ANALYSIS: MarketAnalysisPayload,
    ToolName.PROPERTY_DATABASE: PropertyDatabasePayload,
    ToolName.CLARIFY: ClarifyPayload,
}


def parse_tool_payload(tool_name: str, data: Any) -> ToolPayload | None:
    """
    Narrow a tool's schema-less `data` into its typed payload.

    Returns None for unknown tools, non-dict data, or data that does not fit
    the tool's payload shape; callers fall back to raw JSON in that case.
    """
    tool = ToolName.resolve(tool_name)
    if tool is None or not isinstance(data, dict):
        return None
    model = _PAYLOAD_MODELS[tool]
    try:
        return model.model_validate(data)  # type: ignore[return-value]
    except ValidationError as e:
        logger.debug("tool_payload_shape_mismatch", tool=tool.value, errors=e.error_count())
        return None
