"""LLM provider implementations."""

from copdwatch.core.llm.providers.anthropic import AnthropicProvider
from copdwatch.core.llm.providers.mock import MockProvider
from copdwatch.core.llm.providers.openai import OpenAIProvider

__all__ = ["AnthropicProvider", "MockProvider", "OpenAIProvider"]
