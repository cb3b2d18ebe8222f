"""Tests for the inner LLM client, JSON extraction and provider adapters."""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import pytest

from copdwatch.core.llm.client import ClinicalLLMClient, LLMResponseError
from copdwatch.core.llm.provider import LLMProvider, create_provider
from copdwatch.core.llm.providers.mock import MockProvider
from copdwatch.core.llm.response import extract_json_object, normalize_impact, require_keys
from copdwatch.core.llm.system_prompt import COPD_DOMAIN_SYSTEM_PROMPT, build_full_system_prompt


def _run(coro):
    """Run an async function synchronously for testing."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestExtractJson:
    def test_bare_object(self):
        assert extract_json_object('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        assert extract_json_object('Here:\n```json\n{"a": 2}\n```') == {"a": 2}

    def test_surrounding_prose(self):
        assert extract_json_object('Sure! {"a": {"b": 3}} Hope this helps.') == {"a": {"b": 3}}

    def test_empty(self):
        with pytest.raises(LLMResponseError, match="Empty"):
            extract_json_object("   ")

    def test_array_is_not_an_object(self):
        with pytest.raises(LLMResponseError, match="JSON object"):
            extract_json_object("[1, 2]")

    def test_garbage(self):
        with pytest.raises(LLMResponseError):
            extract_json_object("no braces here")

    def test_require_keys(self):
        require_keys({"a": 1, "b": 2}, ["a", "b"])
        with pytest.raises(LLMResponseError, match="missing keys: b, c"):
            require_keys({"a": 1}, ["a", "b", "c"])


class TestNormalizeImpact:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("High", "high"),
            ("MODERATE", "medium"),
            ("faible", "low"),
            ("متوسط", "medium"),
            ("very high", "high"),
            ("unknown", "medium"),
            (None, "medium"),
        ],
    )
    def test_values(self, value, expected):
        assert normalize_impact(value) == expected


class TestSystemPrompt:
    def test_task_appended_to_domain_prompt(self):
        prompt = build_full_system_prompt("Task: do the thing.")
        assert prompt.startswith(COPD_DOMAIN_SYSTEM_PROMPT.strip()[:40])
        assert prompt.rstrip().endswith("Task: do the thing.")


class TestClinicalLLMClient:
    def test_generate_json(self):
        provider = MockProvider('{"summary": "ok", "extra": 1}')
        response = _run(ClinicalLLMClient(provider).generate_json("Task", "Data", required_keys=["summary"]))
        assert response.data == {"summary": "ok", "extra": 1}
        assert response.usage["output_tokens"] > 0
        assert "Task" in provider.last_system_message
        assert provider.last_user_message == "Data"

    def test_missing_key_raises(self):
        client = ClinicalLLMClient(MockProvider('{"summary": "ok"}'))
        with pytest.raises(LLMResponseError):
            _run(client.generate_json("Task", "Data", required_keys=["recommendations"]))

    def test_provider_errors_propagate(self):
        client = ClinicalLLMClient(MockProvider(error=TimeoutError("slow")))
        with pytest.raises(TimeoutError):
            _run(client.generate_json("Task", "Data"))

    def test_scripted_responses_in_order(self):
        provider = MockProvider(responses=['{"n": 1}', '{"n": 2}'])
        client = ClinicalLLMClient(provider)
        assert _run(client.generate_json("T", "U")).data == {"n": 1}
        assert _run(client.generate_json("T", "U")).data == {"n": 2}
        assert "summary" in _run(client.generate_json("T", "U")).data
        assert provider.call_count == 3


class TestCreateProvider:
    def test_mock(self):
        provider = create_provider("mock")
        assert isinstance(provider, MockProvider)
        assert isinstance(provider, LLMProvider)

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            create_provider("gemini")


def _fake_anthropic(text: str, calls: list):
    async def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(
            content=[SimpleNamespace(type="text", text=text)],
            usage=SimpleNamespace(input_tokens=10, output_tokens=5),
        )

    return SimpleNamespace(messages=SimpleNamespace(create=create))


def _fake_openai(text: str, calls: list):
    async def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
            usage=SimpleNamespace(prompt_tokens=12, completion_tokens=6),
        )

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


class TestAnthropicProvider:
    def test_json_output_prefills_brace(self):
        provider = create_provider("anthropic", api_key="test-key")
        calls: list = []
        provider.client = _fake_anthropic('"summary": "ok"}', calls)

        response = _run(provider.generate("sys", "user", json_output=True))
        assert json.loads(response.content) == {"summary": "ok"}
        assert calls[0]["messages"][-1] == {"role": "assistant", "content": "{"}
        assert calls[0]["system"] == "sys"
        assert response.input_tokens == 10

    def test_plain_output(self):
        provider = create_provider("anthropic", api_key="test-key", model="claude-test")
        calls: list = []
        provider.client = _fake_anthropic("hello", calls)

        response = _run(provider.generate("sys", "user"))
        assert response.content == "hello"
        assert response.model == "claude-test"
        assert len(calls[0]["messages"]) == 1


class TestOpenAIProvider:
    def test_json_mode(self):
        provider = create_provider("openai", api_key="test-key")
        calls: list = []
        provider.client = _fake_openai('{"summary": "ok"}', calls)

        response = _run(provider.generate("sys", "user", json_output=True))
        assert response.content == '{"summary": "ok"}'
        assert calls[0]["response_format"] == {"type": "json_object"}
        assert calls[0]["messages"][0] == {"role": "system", "content": "sys"}
        assert response.output_tokens == 6

    def test_plain_mode_has_no_response_format(self):
        provider = create_provider("openai", api_key="test-key")
        calls: list = []
        provider.client = _fake_openai("hi", calls)

        _run(provider.generate("sys", "user"))
        assert "response_format" not in calls[0]
