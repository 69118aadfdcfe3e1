"""Centralized OpenAI client factory with LangSmith tracing."""

import os

from openai import AsyncOpenAI

from app.config import get_settings


def _tracing_enabled() -> bool:
    # LangSmith reads LANGCHAIN_TRACING_V2 from the environment itself, so the
    # env var wins over the settings flag.
    env_value = os.getenv("LANGCHAIN_TRACING_V2")
    if env_value is not None:
        return env_value.lower() == "true"
    return get_settings().langchain_tracing_v2


def get_openai_client(api_key: str | None = None) -> AsyncOpenAI:
    """
    Create an AsyncOpenAI client for the completion provider, optionally
    wrapped with LangSmith tracing.

    Args:
        api_key: OpenAI API key. Defaults to settings.openai_api_key.

    Returns:
        AsyncOpenAI client (wrapped if tracing is enabled).
    """
    key = api_key or get_settings().openai_api_key

    client = AsyncOpenAI(api_key=key)

    if _tracing_enabled():
        from langsmith.wrappers import wrap_openai

        client = wrap_openai(client)

    return client
