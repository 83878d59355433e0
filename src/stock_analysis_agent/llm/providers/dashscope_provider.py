"""Alibaba DashScope (Qwen) text-generation provider."""

from __future__ import annotations

import os
import time
from typing import Any, Dict, List

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

DEFAULT_BASE_URL = "https://dashscope.aliyuncs.com/api/v1"
GENERATION_PATH = "/services/aigc/text-generation/generation"

DASHSCOPE_MODELS = (
    ModelInfo(
        name="qwen-turbo",
        description="Qwen Turbo, fast responses for everyday and simple tasks",
        context_length=8192,
        supports_function_calling=True,
        cost_per_1k_input_tokens=0.003,
        cost_per_1k_output_tokens=0.006,
        recommended_for=("quick tasks", "simple analysis"),
    ),
    ModelInfo(
        name="qwen-plus",
        description="Qwen Plus, balanced performance and cost for complex analysis",
        context_length=32768,
        supports_function_calling=True,
        cost_per_1k_input_tokens=0.008,
        cost_per_1k_output_tokens=0.016,
        recommended_for=("complex analysis", "professional tasks"),
    ),
    ModelInfo(
        name="qwen-max",
        description="Qwen Max, strongest model for the hardest tasks",
        context_length=32768,
        supports_function_calling=True,
        cost_per_1k_input_tokens=0.02,
        cost_per_1k_output_tokens=0.06,
        recommended_for=("hardest tasks", "high quality output"),
    ),
    ModelInfo(
        name="qwen-max-longcontext",
        description="Qwen Max long-context edition",
        context_length=1000000,
        supports_function_calling=False,
        cost_per_1k_input_tokens=0.02,
        cost_per_1k_output_tokens=0.06,
        recommended_for=("long documents", "bulk data"),
    ),
)


class DashScopeProvider(BaseProviderAdapter):
    name = "dashscope"
    MODELS = DASHSCOPE_MODELS
    DEFAULT_MODEL = "qwen-plus"

    def __init__(self) -> None:
        super().__init__(api_key=os.getenv("DASHSCOPE_API_KEY"))
        self._base_url = (os.getenv("DASHSCOPE_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")

    def build_payload(
        self,
        request: GenerationRequest,
        model: str,
        messages: List[Dict[str, str]],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model,
            "input": {"messages": messages},
            "parameters": {
                "result_format": "message",
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
                "top_p": 0.9,
            },
        }
        info = self.model_info(model)
        if request.tools and (info is None or info.supports_function_calling):
            payload["input"]["tools"] = [tool.to_openai_schema() for tool in request.tools]
            payload["parameters"]["tool_choice"] = "auto"
        return payload

    def _generate(
        self,
        request: GenerationRequest,
        model: str,
        messages: List[Dict[str, str]],
    ) -> GenerationResponse:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "X-DashScope-SSE": "disable",
        }
        payload = self.build_payload(request, model, messages)

        start = time.perf_counter()
        try:
            res = requests.post(
                self._base_url + GENERATION_PATH,
                headers=headers,
                json=payload,
                timeout=request.timeout_seconds,
            )
            res.raise_for_status()
            data = res.json()
        except Exception as exc:
            raise ProviderError(f"dashscope: {exc}") from exc

        latency_ms = int((time.perf_counter() - start) * 1000)
        return self.parse_response(data, model, latency_ms)

    def parse_response(self, data: Dict[str, Any], model: str, latency_ms: int = 0) -> GenerationResponse:
        output = data.get("output")
        if not isinstance(output, dict):
            raise ProviderError(f"dashscope: malformed response ({data.get('code') or 'no output'})")

        content = ""
        finish_reason = "stop"
        tool_calls: List[ToolCall] = []
        choices = output.get("choices") or []
        if choices:
            choice = choices[0]
            message = choice.get("message") or {}
            content = message.get("content") or ""
            finish_reason = choice.get("finish_reason") or finish_reason
            for call in message.get("tool_calls") or []:
                function = call.get("function") or {}
                tool_calls.append(
                    ToolCall(
                        id=str(call.get("id", "")),
                        name=str(function.get("name", "")),
                        arguments=str(function.get("arguments", "")),
                    )
                )
        elif output.get("text") is not None:
            content = output["text"]
            finish_reason = output.get("finish_reason") or finish_reason
        else:
            raise ProviderError("dashscope: response contained no choices")

        usage = data.get("usage") or {}
        tokens_in = int(usage.get("input_tokens", 0) or 0)
        tokens_out = int(usage.get("output_tokens", 0) or 0)
        return GenerationResponse(
            content=content.strip(),
            finish_reason=finish_reason,
            provider=self.name,
            model=model,
            usage=TokenUsage(
                input_tokens=tokens_in,
                output_tokens=tokens_out,
                total_tokens=int(usage.get("total_tokens", tokens_in + tokens_out) or 0),
            ),
            tool_calls=tool_calls,
            latency_ms=latency_ms,
            raw={"request_id": data.get("request_id")},
        )
