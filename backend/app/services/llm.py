"""
Completion collaborator.

CompletionProvider is the seam the agent and the MarketAnalysis tool depend
on; OpenAICompletionProvider implements it with chat completions. Token usage
is logged per call.
"""

import json
from typing import Protocol

import structlog
from openai import AsyncOpenAI

from app.config import AgentConfig
from app.services.openai_client import get_openai_client

logger = structlog.get_logger(__name__)


class CompletionError(RuntimeError):
    """The provider returned no usable completion."""


class CompletionProvider(Protocol):
    async def generate_text(self, prompt: str, max_tokens: int) -> str: ...

    async def generate_object(self, prompt: str, schema: dict, name: str = "result") -> dict: ...


class OpenAICompletionProvider:
    """Text and JSON-schema completions over the OpenAI chat API."""

    def __init__(
        self,
        openai_api_key: str | None = None,
        agent_config: AgentConfig | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self.agent_config = agent_config or AgentConfig()
        self.client = client or get_openai_client(openai_api_key)

    def _log_usage(self, event: str, response) -> None:
        usage = getattr(response, "usage", None)
        if usage:
            logger.info(
                event,
                model=self.agent_config.model,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
            )

    async def generate_text(self, prompt: str, max_tokens: int) -> str:
        """
        Single-turn free-text completion.

        Raises:
            CompletionError: refusal or empty content.
            openai.OpenAIError: transport/provider failures propagate.
        """
        response = await self.client.chat.completions.create(
            model=self.agent_config.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=self.agent_config.temperature,
        )
        self._log_usage("completion_text_tokens", response)

        msg = response.choices[0].message
        if msg.refusal:
            raise CompletionError(f"Model refused: {msg.refusal}")
        if not msg.content:
            raise CompletionError(f"Empty completion (finish_reason={response.choices[0].finish_reason})")
        return msg.content

    async def generate_object(self, prompt: str, schema: dict, name: str = "result") -> dict:
        """
        Completion constrained to a JSON schema.

        Raises:
            CompletionError: refusal, empty content, invalid JSON, or missing
                required top-level keys.
        """
        response = await self.client.chat.completions.create(
            model=self.agent_config.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.agent_config.completion_max_tokens,
            response_format={
                "type": "json_schema",
                "json_schema": {"name": name, "schema": schema, "strict": True},
            },
        )
        self._log_usage("completion_object_tokens", response)

        msg = response.choices[0].message
        if msg.refusal:
            raise CompletionError(f"Model refused: {msg.refusal}")
        if not msg.content:
            raise CompletionError("Empty structured completion")

        try:
            data = json.loads(msg.content)
        except json.JSONDecodeError as e:
            raise CompletionError(f"Invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise CompletionError("Structured completion is not an object")
        missing = [key for key in schema.get("required", []) if key not in data]
        if missing:
            raise CompletionError(f"Missing required keys: {', '.join(missing)}")
        return data
