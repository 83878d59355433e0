"""Anthropic Messages API provider."""

from __future__ import annotations

import os
import time
from typing import Dict, List

import requests

from ..types import (
    GenerationRequest,
    GenerationResponse,
    ModelInfo,
    ProviderError,
    TokenUsage,
    ToolCall,
)
from .base import BaseProviderAdapter

ANTHROPIC_MODELS = (
    ModelInfo(
        name="claude-3-5-haiku-latest",
        description="Claude 3.5 Haiku",
        context_length=200000,
        supports_function_calling=True,
        cost_per_1k_input_tokens=0.00025,
        cost_per_1k_output_tokens=0.00125,
        recommended_for=("quick tasks",),
    ),
    ModelInfo(
        name="claude-3-7-sonnet-latest",
        description="Claude 3.7 Sonnet",
        context_length=200000,
        supports_function_calling=True,
        cost_per_1k_input_tokens=0.003,
        cost_per_1k_output_tokens=0.015,
        recommended_for=("complex analysis",),
    ),
)


class AnthropicProvider(BaseProviderAdapter):
    name = "anthropic"
    MODELS = ANTHROPIC_MODELS
    DEFAULT_MODEL = "claude-3-5-haiku-latest"

    def __init__(self) -> None:
        super().__init__(api_key=os.getenv("ANTHROPIC_API_KEY"))

    def _generate(
        self,
        request: GenerationRequest,
        model: str,
        messages: List[Dict[str, str]],
    ) -> GenerationResponse:
        url = "https://api.anthropic.com/v1/messages"
        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        payload = {
            "model": model,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "messages": [m for m in messages if m["role"] != "system"],
        }
        if system:
            payload["system"] = system
        if request.tools:
            payload["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.parameters}
                for t in request.tools
            ]

        start = time.perf_counter()
        try:
            res = requests.post(url, headers=headers, json=payload, timeout=request.timeout_seconds)
            res.raise_for_status()
            data = res.json()
        except Exception as exc:
            raise ProviderError(f"anthropic: {exc}") from exc

        latency_ms = int((time.perf_counter() - start) * 1000)
        content = data.get("content", [])
        text = ""
        tool_calls = []
        if content and isinstance(content, list):
            text = "".join(
                item.get("text", "")
                for item in content
                if isinstance(item, dict) and item.get("type") == "text"
            )
            tool_calls = [
                ToolCall(id=str(item.get("id", "")), name=str(item.get("name", "")), arguments=str(item.get("input", {})))
                for item in content
                if isinstance(item, dict) and item.get("type") == "tool_use"
            ]

        usage = data.get("usage", {})
        tokens_in = int(usage.get("input_tokens", 0) or 0)
        tokens_out = int(usage.get("output_tokens", 0) or 0)

        return GenerationResponse(
            content=text.strip(),
            finish_reason=str(data.get("stop_reason") or "stop"),
            provider=self.name,
            model=model,
            usage=TokenUsage(
                input_tokens=tokens_in,
                output_tokens=tokens_out,
                total_tokens=tokens_in + tokens_out,
            ),
            tool_calls=tool_calls,
            latency_ms=latency_ms,
            raw={"id": data.get("id")},
        )
