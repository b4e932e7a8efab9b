"""
Tests for the OpenRouter caller: per-model request shaping and answer clean-up.
"""
import json

import httpx
import pytest

from workers.llm.model_router import (
    chat_json,
    provider_of,
    request_body,
    strip_reasoning,
    traits_for,
)

JSON_OBJECT = {"type": "json_object"}


def _client(content="{}", status=200, seen=None, finish_reason="stop"):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if status != 200:
            return httpx.Response(status, text="bad request")
        return httpx.Response(200, json={
            "model": "google/gemini-2.0-flash-001",
            "choices": [{"message": {"content": content}, "finish_reason": finish_reason}],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
        })
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestTraits:

    @pytest.mark.parametrize("model, provider", [
        ("google/gemini-2.0-flash-001", "google"),
        ("Anthropic/claude-3.5-sonnet", "anthropic"),
        ("gpt-4o", ""),
    ])
    def test_provider_of(self, model, provider):
        assert provider_of(model) == provider

    def test_reasoning_models(self):
        assert traits_for("deepseek/deepseek-r1").reasoning
        assert traits_for("openai/o3-mini").reasoning
        assert not traits_for("deepseek/deepseek-chat").reasoning

    def test_unknown_model_is_prompt_only(self):
        assert not traits_for("someone/new-model").json_mode


class TestRequestBody:

    def test_json_mode(self):
        body = request_body("google/gemini-2.0-flash-001", "P", traits_for("google/gemini-2.0-flash-001"),
                            temperature=0.1, max_tokens=256)
        assert body["messages"] == [{"role": "user", "content": "P"}]
        assert body["temperature"] == 0.1
        assert body["max_tokens"] == 256
        assert body["response_format"] == JSON_OBJECT
        assert "provider" not in body

    def test_strict_routing(self):
        body = request_body("qwen/qwen-2.5-72b", "P", traits_for("qwen/qwen-2.5-72b"))
        assert body["provider"] == {"require_parameters": True}

    def test_prompt_only(self):
        body = request_body("deepseek/deepseek-r1", "P", traits_for("deepseek/deepseek-r1"))
        assert "response_format" not in body
        assert "max_tokens" not in body


class TestChatJson:

    def test_result(self):
        seen = []
        with _client('{"steps": []}', seen=seen) as client:
            result = chat_json(client, "key", "google/gemini-2.0-flash-001", "PROMPT", max_tokens=256)
        assert seen[0].headers["Authorization"] == "Bearer key"
        assert seen[0].url.path.endswith("/chat/completions")
        assert json.loads(seen[0].content)["response_format"] == JSON_OBJECT
        assert result.text == '{"steps": []}'
        assert result.total_tokens == 15
        assert not result.truncated

    def test_reasoning_stripped(self):
        with _client("<think>hmm {not this}</think>\n{\"a\": 1}") as client:
            result = chat_json(client, "key", "deepseek/deepseek-r1", "P")
        assert result.text == '{"a": 1}'

    def test_truncation_flagged(self):
        with _client('{"steps": ["ma', finish_reason="length") as client:
            assert chat_json(client, "key", "openai/gpt-4o", "P").truncated

    def test_http_error_raises(self):
        with _client(status=400) as client:
            with pytest.raises(httpx.HTTPStatusError):
                chat_json(client, "key", "openai/gpt-4o", "P")

    def test_empty_choices(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"choices": []})))
        assert chat_json(client, "key", "openai/gpt-4o", "P").text == ""

    def test_strip_reasoning(self):
        assert strip_reasoning("<THINK>x</THINK> answer") == "answer"
