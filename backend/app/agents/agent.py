"""
Property agent: one user query in, one AgentResponse out.

Flow per query:
  1. (user_id) initialize the memory session and record the query in search history
  2. build the prompt (personalized preamble + recent history when known)
  3. one completion call
  4. parse the trace, dispatching each action to the tool registry
  5. (user_id) persist the user message and the assistant answer with its trace

The model writes the whole trace in one pass, so its final answer is
committed before real observations exist. Real tool results replace the
model's guesses only in the returned steps.
"""

import structlog

from app.agents.prompts import build_agent_prompt
from app.agents.tools import ToolRegistry
from app.agents.trace_parser import parse_trace
from app.config import AgentConfig
from app.constants import APOLOGY_ANSWER
from app.models.agent import AgentResponse
from app.models.memory import MessageMetadata, MessageRole, ReasoningStepRecord
from app.services.llm import CompletionProvider
from app.services.memory_manager import MemoryManager

logger = structlog.get_logger(__name__)


class PropertyAgent:
    """Runs the think/act trace for a single query."""

    def __init__(
        self,
        completions: CompletionProvider,
        tools: ToolRegistry,
        memory: MemoryManager | None = None,
        agent_config: AgentConfig | None = None,
    ):
        self.completions = completions
        self.tools = tools
        self.memory = memory
        self.agent_config = agent_config or AgentConfig()

    def _build_prompt(self, query: str, user_id: str | None) -> str:
        if not user_id or self.memory is None:
            return build_agent_prompt(query)

        try:
            preamble = self.memory.get_personalized_system_prompt(user_id)
            history = self.memory.get_conversation_context(user_id)
        except Exception:
            logger.exception("agent_personalization_failed", user_id=user_id)
            return build_agent_prompt(query)

        return build_agent_prompt(
            query,
            preamble=preamble,
            history=history,
            history_limit=self.agent_config.history_messages_in_prompt,
        )

    async def _remember(self, user_id: str, query: str, response: AgentResponse) -> None:
        metadata = MessageMetadata(
            tool_calls=response.tool_calls(),
            reasoning_steps=[
                ReasoningStepRecord(kind=step.kind.value, text=step.text, created_at=step.created_at.isoformat())
                for step in response.steps
            ],
        )
        try:
            await self.memory.add_message(user_id, MessageRole.USER, query)
            await self.memory.add_message(user_id, MessageRole.ASSISTANT, response.final_answer, metadata)
        except Exception:
            logger.exception("agent_memory_persist_failed", user_id=user_id)

    async def process_query(self, query: str, user_id: str | None = None) -> AgentResponse:
        """
        Answer one query. Never raises: a failure before the trace is parsed
        yields the apology answer.
        """
        with structlog.contextvars.bound_contextvars(user_id=user_id):
            return await self._process(query, user_id)

    async def _process(self, query: str, user_id: str | None) -> AgentResponse:
        try:
            if user_id and self.memory is not None:
                await self.memory.initialize_session(user_id)
                await self.memory.add_to_search_history(user_id, query)

            prompt = self._build_prompt(query, user_id)
            completion = await self.completions.generate_text(
                prompt, max_tokens=self.agent_config.completion_max_tokens
            )
            response = await parse_trace(completion, self.tools.dispatch, self.agent_config.max_steps)
        except Exception:
            logger.exception("agent_query_failed", query_preview=query[:80])
            return AgentResponse(
                steps=[],
                final_answer=APOLOGY_ANSWER,
                is_complete=True,
                needs_clarification=False,
            )

        logger.info(
            "agent_query_completed",
            steps=len(response.steps),
            tool_calls=len(response.tool_calls()),
            needs_clarification=response.needs_clarification,
        )

        if user_id and self.memory is not None:
            await self._remember(user_id, query, response)

        return response
