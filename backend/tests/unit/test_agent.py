"""Tests for PropertyAgent.process_query."""

from unittest.mock import AsyncMock

from app.agents.agent import PropertyAgent
from app.agents.tools import ToolRegistry
from app.constants import APOLOGY_ANSWER
from app.models.agent import StepKind
from app.models.memory import MessageRole
from app.services.memory_manager import MemoryManager

CLARIFY_TRACE = """\
Thought: The user only said where. I need budget and property type.
Action: Clarify
Action Input: What kind of property are you looking for, and what is your budget?
Observation: (pending)
Thought: I can now provide the final answer or a clarifying question.
Final Answer: Could you tell me what kind of property you want and your approximate budget?"""


class TestProcessQuery:
    async def test_without_user_skips_memory(self, fake_completions: AsyncMock, tool_registry: ToolRegistry):
        fake_completions.generate_text.return_value = "Thought: easy\nFinal Answer: Hello!"
        agent = PropertyAgent(fake_completions, tool_registry)

        response = await agent.process_query("hi")

        assert response.final_answer == "Hello!"
        prompt = fake_completions.generate_text.await_args.args[0]
        assert prompt.rstrip().endswith('User Query: "hi"\n\nBegin your analysis:')
        assert fake_completions.generate_text.await_args.kwargs["max_tokens"] == 2000

    async def test_completion_failure_returns_apology(self, fake_completions: AsyncMock, agent: PropertyAgent):
        fake_completions.generate_text.side_effect = TimeoutError("upstream timeout")

        response = await agent.process_query("Find me a flat", user_id="u1")

        assert response.final_answer == APOLOGY_ANSWER
        assert response.steps == []
        assert response.is_complete is True
        assert response.needs_clarification is False

    async def test_clarification_is_flagged_and_persisted(
        self, fake_completions: AsyncMock, agent: PropertyAgent, memory_manager: MemoryManager
    ):
        fake_completions.generate_text.return_value = CLARIFY_TRACE

        response = await agent.process_query("I'm looking for a place to live in Kathmandu.", user_id="u1")

        assert response.needs_clarification is True
        assert [s.kind for s in response.steps][:3] == [StepKind.THOUGHT, StepKind.ACTION, StepKind.OBSERVATION]
        assert response.steps[2].tool_result.data["clarification_needed"] is True

        messages = memory_manager.get_session("u1").messages
        assert [m.role for m in messages] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert messages[1].content == response.final_answer
        assert messages[1].metadata.tool_calls[0].name == "Clarify"
        assert len(messages[1].metadata.reasoning_steps) == len(response.steps)

    async def test_query_recorded_in_search_history(self, agent: PropertyAgent, memory_manager: MemoryManager):
        await agent.process_query("flats in Pokhara", user_id="u1")
        assert memory_manager.get_search_history("u1") == ["flats in Pokhara"]

    async def test_returning_user_prompt_has_history_and_profile(
        self, fake_completions: AsyncMock, agent: PropertyAgent
    ):
        await agent.process_query("2BHK in Lalitpur please", user_id="u1")
        await agent.process_query("what about parking?", user_id="u1")

        prompt = fake_completions.generate_text.await_args.args[0]
        assert prompt.startswith("You are an AI real estate assistant for Nepal.")
        assert "- Preferred locations: Lalitpur" in prompt
        assert "User: 2BHK in Lalitpur please" in prompt
        assert "DO NOT repeat questions" in prompt

    async def test_memory_failure_does_not_fail_the_query(
        self, fake_completions: AsyncMock, tool_registry: ToolRegistry, memory_manager: MemoryManager
    ):
        fake_completions.generate_text.return_value = "Final Answer: fine"
        memory_manager.add_message = AsyncMock(side_effect=RuntimeError("disk full"))
        agent = PropertyAgent(fake_completions, tool_registry, memory=memory_manager)

        response = await agent.process_query("hello", user_id="u1")

        assert response.final_answer == "fine"
