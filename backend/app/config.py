"""
Application configuration using pydantic-settings.
Loads environment variables from .env file.

Nested config groups (AgentConfig, MemoryConfig, SearchConfig, MapsConfig) are
env-overridable via the double-underscore delimiter, e.g.:
    AGENT__MAX_STEPS=10
    MEMORY__SESSION_TIMEOUT_MINUTES=30
    SEARCH__REQUEST_TIMEOUT_SECONDS=5
"""

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentConfig(BaseModel):
    """Agent loop parameters.

    Env-overridable via AGENT__KEY format, e.g.:
        AGENT__MODEL=gpt-4o-mini
        AGENT__COMPLETION_MAX_TOKENS=1500
    """

    model: str = "gpt-4o"
    temperature: float = 0.2
    # Upper bound on parsed steps per query (thoughts + actions + observations)
    max_steps: int = 15
    completion_max_tokens: int = 2000
    # Free-text fallback for MarketAnalysis when structured generation fails
    market_analysis_max_tokens: int = 500
    # Conversation messages folded into the prompt for returning users
    history_messages_in_prompt: int = 10


class MemoryConfig(BaseModel):
    """Conversation memory budgets and storage tables."""

    max_messages_in_memory: int = 20
    # Rough estimate: 1 token ~= 4 characters
    max_context_tokens: int = 8000
    chars_per_token: int = 4
    # A session idle for longer than this is archived and a new one is created
    session_timeout_minutes: int = 60
    search_history_limit: int = 50
    sessions_table: str = "conversation_sessions"
    preferences_table: str = "user_preferences"


class SearchConfig(BaseModel):
    """Web search collaborator (SerpAPI-compatible endpoint)."""

    base_url: str = "https://serpapi.com/search.json"
    engine: str = "google"
    default_location: str = "Kathmandu, Nepal"
    result_limit: int = 10
    request_timeout_seconds: float = 15.0


class MapsConfig(BaseModel):
    """Geospatial collaborator (Google Places text search)."""

    places_url: str = "https://maps.googleapis.com/maps/api/place/textsearch/json"
    max_places: int = 5
    request_timeout_seconds: float = 10.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # API Keys
    openai_api_key: str
    serpapi_api_key: str = ""
    google_maps_api_key: str = ""

    # Supabase
    supabase_url: str = ""
    supabase_secret_key: str = ""

    # LangSmith / Observability
    langsmith_api_key: str = ""
    langsmith_project: str = "ghar-agent"
    langchain_tracing_v2: bool = False  # Explicit opt-in

    # App Settings
    debug: bool = False
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Nested config groups (env-overridable via SECTION__KEY format)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    maps: MapsConfig = Field(default_factory=MapsConfig)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
