"""OpenAI Responses API provider."""

from __future__ import annotations

import os
import time
from typing import Dict, List

from openai import OpenAI

from ..types import (
    GenerationRequest,
    GenerationResponse,
    ModelInfo,
    ProviderError,
    TokenUsage,
    ToolCall,
)
from .base import BaseProviderAdapter

OPENAI_MODELS = (
    ModelInfo(
        name="gpt-4.1",
        description="GPT-4.1 flagship model",
        context_length=1047576,
        supports_function_calling=True,
        cost_per_1k_input_tokens=0.002,
        cost_per_1k_output_tokens=0.008,
        recommended_for=("complex analysis",),
    ),
    ModelInfo(
        name="gpt-4.1-mini",
        description="GPT-4.1 mini",
        context_length=1047576,
        supports_function_calling=True,
        cost_per_1k_input_tokens=0.0004,
        cost_per_1k_output_tokens=0.0016,
        recommended_for=("general analysis",),
    ),
    ModelInfo(
        name="gpt-4.1-nano",
        description="GPT-4.1 nano",
        context_length=1047576,
        supports_function_calling=True,
        cost_per_1k_input_tokens=0.0001,
        cost_per_1k_output_tokens=0.0004,
        recommended_for=("quick tasks",),
    ),
)


class OpenAIProvider(BaseProviderAdapter):
    name = "openai"
    MODELS = OPENAI_MODELS
    DEFAULT_MODEL = "gpt-4.1-mini"

    def __init__(self) -> None:
        super().__init__(api_key=os.getenv("OPENAI_API_KEY"))
        self._client = OpenAI(api_key=self._api_key) if self._api_key else None

    def is_available(self) -> bool:
        return self._client is not None

    def _generate(
        self,
        request: GenerationRequest,
        model: str,
        messages: List[Dict[str, str]],
    ) -> GenerationResponse:
        extra = {}
        if request.tools:
            extra["tools"] = [
                {
                    "type": "function",
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                }
                for tool in request.tools
            ]

        start = time.perf_counter()
        try:
            response = self._client.responses.create(
                model=model,
                temperature=request.temperature,
                max_output_tokens=request.max_tokens,
                input=messages,
                timeout=request.timeout_seconds,
                **extra,
            )
        except Exception as exc:
            raise ProviderError(f"openai: {exc}") from exc

        latency_ms = int((time.perf_counter() - start) * 1000)
        text = getattr(response, "output_text", "") or ""
        usage = getattr(response, "usage", None)
        tokens_in = int(getattr(usage, "input_tokens", 0) or 0)
        tokens_out = int(getattr(usage, "output_tokens", 0) or 0)

        tool_calls = [
            ToolCall(
                id=str(getattr(item, "call_id", "") or ""),
                name=str(getattr(item, "name", "") or ""),
                arguments=str(getattr(item, "arguments", "") or ""),
            )
            for item in getattr(response, "output", None) or []
            if getattr(item, "type", None) == "function_call"
        ]
        finish_reason = "stop" if getattr(response, "status", "completed") == "completed" else "length"

        return GenerationResponse(
            content=text.strip(),
            finish_reason=finish_reason,
            provider=self.name,
            model=model,
            usage=TokenUsage(
                input_tokens=tokens_in,
                output_tokens=tokens_out,
                total_tokens=tokens_in + tokens_out,
            ),
            tool_calls=tool_calls,
            latency_ms=latency_ms,
            raw={"id": getattr(response, "id", None)},
        )
