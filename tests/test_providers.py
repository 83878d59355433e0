import asyncio

import pytest

from stock_analysis_agent.llm.providers import dashscope_provider
from stock_analysis_agent.llm.providers.base import BaseProviderAdapter
from stock_analysis_agent.llm.providers.dashscope_provider import DashScopeProvider
from stock_analysis_agent.llm.providers.gemini_provider import GeminiProvider
from stock_analysis_agent.llm.types import (
    GenerationRequest,
    Message,
    ProviderError,
    ProviderUnavailableError,
)

QWEN_REPLY = {
    "request_id": "req-1",
    "output": {
        "choices": [
            {
                "finish_reason": "stop",
                "message": {"role": "assistant", "content": "  综合评分：80  "},
            }
        ]
    },
    "usage": {"input_tokens": 1000, "output_tokens": 1000, "total_tokens": 2000},
}


class FakeHTTPResponse:
    def __init__(self, data):
        self._data = data

    def raise_for_status(self):
        return None

    def json(self):
        return self._data


def test_gemini_accepts_google_api_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("GOOGLE_API_KEY", "g-key")

    assert GeminiProvider().is_available()


def test_missing_key_marks_provider_unavailable(monkeypatch):
    monkeypatch.delenv("DASHSCOPE_API_KEY", raising=False)
    provider = DashScopeProvider()

    assert not provider.is_available()
    with pytest.raises(ProviderUnavailableError):
        asyncio.run(provider.generate(GenerationRequest(prompt="hi")))


def test_parse_response_reads_choices_and_usage(monkeypatch):
    monkeypatch.setenv("DASHSCOPE_API_KEY", "k")

    response = DashScopeProvider().parse_response(QWEN_REPLY, "qwen-plus", latency_ms=12)

    assert response.content == "综合评分：80"
    assert response.finish_reason == "stop"
    assert response.usage.total_tokens == 2000
    assert response.raw["request_id"] == "req-1"


def test_malformed_response_raises(monkeypatch):
    monkeypatch.setenv("DASHSCOPE_API_KEY", "k")
    provider = DashScopeProvider()

    with pytest.raises(ProviderError):
        provider.parse_response({"code": "InvalidParameter"}, "qwen-plus")
    with pytest.raises(ProviderError):
        provider.parse_response({"output": {}}, "qwen-plus")


def test_generate_posts_payload_and_estimates_cost(monkeypatch):
    monkeypatch.setenv("DASHSCOPE_API_KEY", "k")
    sent = {}

    def fake_post(url, headers, json, timeout):
        sent.update(url=url, headers=headers, json=json, timeout=timeout)
        return FakeHTTPResponse(QWEN_REPLY)

    monkeypatch.setattr(dashscope_provider.requests, "post", fake_post)

    request = GenerationRequest(prompt="分析600519", system="你是分析师", model="qwen-plus", timeout_seconds=5)
    response = asyncio.run(DashScopeProvider().generate(request))

    assert sent["url"].endswith("/services/aigc/text-generation/generation")
    assert sent["headers"]["Authorization"] == "Bearer k"
    assert sent["json"]["input"]["messages"][0] == {"role": "system", "content": "你是分析师"}
    assert sent["json"]["parameters"]["max_tokens"] == 2000
    assert response.provider == "dashscope"
    assert response.usage.cost == pytest.approx(0.024)


def test_invalid_temperature_rejected(monkeypatch):
    monkeypatch.setenv("DASHSCOPE_API_KEY", "k")

    with pytest.raises(ProviderError):
        asyncio.run(DashScopeProvider().generate(GenerationRequest(prompt="hi", temperature=1.5)))


def test_foreign_model_resolves_to_default(monkeypatch):
    monkeypatch.setenv("DASHSCOPE_API_KEY", "k")
    provider = DashScopeProvider()

    assert provider.resolve_model("gpt-4.1-mini") == "qwen-plus"
    assert provider.resolve_model("qwen-max") == "qwen-max"
    assert provider.resolve_model(None) == "qwen-plus"


def test_build_messages_keeps_existing_system_message():
    request = GenerationRequest(
        prompt=[Message(role="system", content="s"), Message(role="user", content="u")],
        system="other",
    )

    assert DashScopeProvider.build_messages(request) == [
        {"role": "system", "content": "s"},
        {"role": "user", "content": "u"},
    ]


def test_adapter_without_generate_cannot_be_built():
    class Incomplete(BaseProviderAdapter):
        name = "incomplete"

    with pytest.raises(TypeError):
        Incomplete()
