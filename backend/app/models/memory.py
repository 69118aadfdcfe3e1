"""
Conversation memory models.

ConversationSession groups a user's messages inside a recency window;
UserPreferences is the single per-user record of everything inferred so far.
Timestamps are integer epoch milliseconds, matching the store's columns.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from app.models.agent import ToolCallRecord


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class CommunicationStyle(str, Enum):
    DETAILED = "detailed"
    CONCISE = "concise"
    TECHNICAL = "technical"


class Language(str, Enum):
    ENGLISH = "en"
    NEPALI = "ne"


class ReasoningStepRecord(BaseModel):
    """Compact copy of a trace step kept in assistant message metadata."""

    kind: str
    text: str
    created_at: str


class MessageMetadata(BaseModel):
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    reasoning_steps: list[ReasoningStepRecord] = Field(default_factory=list)


class ConversationMessage(BaseModel):
    id: str
    role: MessageRole
    content: str
    created_at_ms: int
    metadata: MessageMetadata | None = None


class SessionContext(BaseModel):
    # Older rows carry extra keys (current_search, extracted_preferences).
    model_config = ConfigDict(extra="allow")

    last_activity_ms: int


class ConversationSession(BaseModel):
    id: str
    user_id: str
    title: str = "New Property Search"
    messages: list[ConversationMessage] = Field(default_factory=list)
    context: SessionContext
    created_at_ms: int
    updated_at_ms: int
    # True when the store was unreachable and the session only lives in memory
    is_fallback: bool = False


class PriceRange(BaseModel):
    min: int = 0
    max: int = 0


class UserPreferences(BaseModel):
    id: str
    user_id: str
    property_type: list[str] = Field(default_factory=list)
    price_range: PriceRange | None = None
    locations: list[str] = Field(default_factory=list)
    bedrooms: int | None = None
    amenities: list[str] = Field(default_factory=list)
    search_history: list[str] = Field(default_factory=list)
    viewed_properties: list[str] = Field(default_factory=list)
    favorite_properties: list[str] = Field(default_factory=list)
    communication_style: CommunicationStyle = CommunicationStyle.DETAILED
    language: Language = Language.ENGLISH
    updated_at_ms: int


class PreferenceSummary(BaseModel):
    """What the assistant has understood so far, for UI display."""

    user_id: str
    property_type: list[str]
    price_range: PriceRange | None
    locations: list[str]
    bedrooms: int | None
    amenities: list[str]
    recent_searches: list[str]
    summary: str
