"""Google Gemini REST provider."""

from __future__ import annotations

import os
import time
from typing import Dict, List

import requests

from ..types import GenerationRequest, GenerationResponse, ModelInfo, ProviderError, TokenUsage
from .base import BaseProviderAdapter

GEMINI_MODELS = (
    ModelInfo(
        name="gemini-1.5-flash",
        description="Gemini 1.5 Flash",
        context_length=1048576,
        supports_function_calling=True,
        cost_per_1k_input_tokens=0.00015,
        cost_per_1k_output_tokens=0.0006,
    ),
    ModelInfo(
        name="gemini-1.5-flash-8b",
        description="Gemini 1.5 Flash 8B",
        context_length=1048576,
        supports_function_calling=True,
        cost_per_1k_input_tokens=0.00008,
        cost_per_1k_output_tokens=0.0003,
    ),
    ModelInfo(
        name="gemini-1.5-pro",
        description="Gemini 1.5 Pro",
        context_length=2097152,
        supports_function_calling=True,
        cost_per_1k_input_tokens=0.00125,
        cost_per_1k_output_tokens=0.005,
    ),
)


class GeminiProvider(BaseProviderAdapter):
    name = "gemini"
    MODELS = GEMINI_MODELS
    DEFAULT_MODEL = "gemini-1.5-flash"

    def __init__(self) -> None:
        super().__init__(api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY"))

    def _generate(
        self,
        request: GenerationRequest,
        model: str,
        messages: List[Dict[str, str]],
    ) -> GenerationResponse:
        url = (
            f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
            f"?key={self._api_key}"
        )
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        payload = {
            "contents": [
                {
                    "role": "model" if m["role"] == "assistant" else "user",
                    "parts": [{"text": m["content"]}],
                }
                for m in messages
                if m["role"] != "system"
            ],
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens,
            },
        }
        if system:
            payload["system_instruction"] = {"parts": [{"text": system}]}

        start = time.perf_counter()
        try:
            res = requests.post(url, json=payload, timeout=request.timeout_seconds)
            res.raise_for_status()
            data = res.json()
        except Exception as exc:
            raise ProviderError(f"gemini: {exc}") from exc

        latency_ms = int((time.perf_counter() - start) * 1000)
        candidates = data.get("candidates", [])
        text = ""
        finish_reason = "stop"
        if candidates:
            parts = candidates[0].get("content", {}).get("parts", [])
            text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
            finish_reason = str(candidates[0].get("finishReason") or "STOP").lower()

        usage = data.get("usageMetadata", {})
        tokens_in = int(usage.get("promptTokenCount", 0) or 0)
        tokens_out = int(usage.get("candidatesTokenCount", 0) or 0)

        return GenerationResponse(
            content=text.strip(),
            finish_reason=finish_reason,
            provider=self.name,
            model=model,
            usage=TokenUsage(
                input_tokens=tokens_in,
                output_tokens=tokens_out,
                total_tokens=int(usage.get("totalTokenCount", tokens_in + tokens_out) or 0),
            ),
            latency_ms=latency_ms,
            raw={"responseId": data.get("responseId")},
        )
