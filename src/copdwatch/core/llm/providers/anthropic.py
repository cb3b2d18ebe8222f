"""Anthropic Claude provider."""

from __future__ import annotations

import time

from copdwatch.core.llm.provider import ProviderResponse


class AnthropicProvider:
    """Claude provider using the Anthropic SDK.

    Claude has no JSON response mode; with ``json_output`` the assistant turn
    is prefilled with ``{`` so the reply starts inside the object.
    """

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-5-20250929") -> None:
        import anthropic

        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 2048,
        temperature: float = 0.3,
        json_output: bool = False,
    ) -> ProviderResponse:
        messages = [{"role": "user", "content": user_message}]
        if json_output:
            messages.append({"role": "assistant", "content": "{"})

        start = time.monotonic()
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_message,
            messages=messages,
        )
        elapsed_ms = (time.monotonic() - start) * 1000

        content = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        if json_output:
            content = "{" + content
        return ProviderResponse(
            content=content,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self.model,
            latency_ms=elapsed_ms,
        )
