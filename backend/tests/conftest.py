"""
Shared test fixtures for the Ghar Agent backend test suite.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
import structlog
from fastapi.testclient import TestClient

from app.agents.agent import PropertyAgent
from app.agents.tools import ToolRegistry
from app.services.llm import OpenAICompletionProvider
from app.services.memory_manager import MemoryManager
from app.services.memory_store import InMemoryMemoryRepository


@pytest.fixture(autouse=True)
def _set_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set required environment variables for tests so Settings can be instantiated."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-fake-key-for-testing")
    monkeypatch.setenv("SUPABASE_URL", "")
    monkeypatch.setenv("SUPABASE_SECRET_KEY", "")
    # Disable LangSmith tracing in tests
    monkeypatch.setenv("LANGCHAIN_TRACING_V2", "false")


@pytest.fixture(autouse=True)
def _configure_structlog_for_tests():
    """Configure structlog for tests using a simple, deterministic setup."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(0),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


class FakeClock:
    """Settable clock for MemoryManager(now_provider=...)."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    @property
    def ms(self) -> int:
        return int(self.now.timestamp() * 1000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 1, 9, 0, tzinfo=UTC))


@pytest.fixture
def memory_repository() -> InMemoryMemoryRepository:
    return InMemoryMemoryRepository()


@pytest.fixture
def memory_manager(memory_repository: InMemoryMemoryRepository, clock: FakeClock) -> MemoryManager:
    return MemoryManager(memory_repository, now_provider=clock)


@pytest.fixture
def fake_completions() -> AsyncMock:
    """Completion provider double; set generate_text/generate_object per test."""
    completions = AsyncMock(spec=OpenAICompletionProvider)
    completions.generate_text.return_value = "Final Answer: ok"
    completions.generate_object.return_value = {}
    return completions


@pytest.fixture
def tool_registry(fake_completions: AsyncMock) -> ToolRegistry:
    """Registry with no web search or places provider (Maps uses its fallback)."""
    return ToolRegistry(fake_completions)


@pytest.fixture
def agent(fake_completions: AsyncMock, tool_registry: ToolRegistry, memory_manager: MemoryManager) -> PropertyAgent:
    return PropertyAgent(fake_completions, tool_registry, memory=memory_manager)


@pytest.fixture
def client() -> TestClient:
    """FastAPI TestClient wrapping the main application (lifespan not run)."""
    # Clear the lru_cache so settings pick up test env vars
    from app.config import get_settings

    get_settings.cache_clear()

    from app.main import app

    return TestClient(app)


@pytest.fixture
def wired_client(client: TestClient, agent: PropertyAgent, memory_manager: MemoryManager):
    """TestClient whose app state holds the test agent and memory manager."""
    state = client.app.state
    state.agent = agent
    state.memory = memory_manager
    yield client
    del state.agent
    del state.memory
