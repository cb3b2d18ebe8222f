"""Inner LLM client: the bridge between enrichment prompts and LLM calls."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from copdwatch.core.llm.provider import LLMProvider, ProviderResponse
from copdwatch.core.llm.response import LLMResponseError, extract_json_object, require_keys
from copdwatch.core.llm.system_prompt import build_full_system_prompt

logger = logging.getLogger(__name__)

__all__ = ["ClinicalLLMClient", "LLMResponse", "LLMResponseError"]


@dataclass
class LLMResponse:
    """Structured response from the inner LLM."""

    content: str
    data: dict[str, Any] = field(default_factory=dict)
    usage: dict[str, int] = field(default_factory=dict)


class ClinicalLLMClient:
    """Invokes the inner LLM and validates its JSON output."""

    def __init__(self, provider: LLMProvider) -> None:
        self.provider = provider

    async def generate_json(
        self,
        task_instructions: str,
        user_message: str,
        required_keys: Iterable[str] = (),
        max_tokens: int = 2048,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Ask for a JSON object and return it parsed.

        Provider exceptions propagate unchanged (callers inspect them, e.g. for
        quota errors).

        Raises:
            LLMResponseError: If the output is not a JSON object with
                ``required_keys``.
        """
        provider_response: ProviderResponse = await self.provider.generate(
            system_message=build_full_system_prompt(task_instructions),
            user_message=user_message,
            max_tokens=max_tokens,
            temperature=temperature,
            json_output=True,
        )

        logger.info(
            "Inner LLM call: model=%s, tokens=%d+%d, latency=%.0fms",
            provider_response.model,
            provider_response.input_tokens,
            provider_response.output_tokens,
            provider_response.latency_ms,
        )

        data = extract_json_object(provider_response.content)
        require_keys(data, required_keys)

        return LLMResponse(
            content=provider_response.content,
            data=data,
            usage={
                "input_tokens": provider_response.input_tokens,
                "output_tokens": provider_response.output_tokens,
            },
        )
