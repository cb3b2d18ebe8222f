"""Mock LLM provider for testing and offline demos."""

from __future__ import annotations

import json

from copdwatch.core.llm.provider import ProviderResponse

DEFAULT_MOCK_RESPONSE = json.dumps({
    "summary": (
        "Simulated analysis: the risk level reflects the current activity, sleep, "
        "cough and oxygen saturation readings."
    ),
    "contributingFactors": [
        {
            "name": "Simulated review",
            "impact": "medium",
            "description": "No language model is configured; this narrative is a placeholder.",
        }
    ],
    "recommendations": ["Review the latest oximeter readings with the care team."],
    "impactLevel": "Medium",
})


class MockProvider:
    """Returns canned responses; can be scripted to fail for error-path tests.

    ``responses`` are consumed in order; once exhausted ``response_content``
    is returned for every call. ``error`` (if set) is raised instead.
    """

    def __init__(
        self,
        response_content: str = DEFAULT_MOCK_RESPONSE,
        *,
        responses: list[str] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.response_content = response_content
        self.responses = list(responses or [])
        self.error = error
        self.last_system_message: str = ""
        self.last_user_message: str = ""
        self.call_count: int = 0

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 2048,
        temperature: float = 0.3,
        json_output: bool = False,
    ) -> ProviderResponse:
        self.last_system_message = system_message
        self.last_user_message = user_message
        self.call_count += 1
        if self.error is not None:
            raise self.error

        content = self.responses.pop(0) if self.responses else self.response_content
        return ProviderResponse(
            content=content,
            input_tokens=len(system_message.split()) + len(user_message.split()),
            output_tokens=len(content.split()),
            model="mock",
            latency_ms=0.0,
        )
