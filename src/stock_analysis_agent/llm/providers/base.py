"""LLM provider interface and shared adapter plumbing."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Protocol

from ..types import (
    GenerationRequest,
    GenerationResponse,
    Message,
    ModelInfo,
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)

logger = logging.getLogger(__name__)


class ProviderAdapter(Protocol):
    name: str

    def is_available(self) -> bool:
        ...

    def supported_models(self) -> List[ModelInfo]:
        ...

    def default_model(self) -> str:
        ...

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        ...


class BaseProviderAdapter(ABC):
    """Runs a blocking HTTP/SDK call in a worker thread under a timeout.

    Subclasses set ``name``, ``MODELS`` and ``DEFAULT_MODEL`` and implement
    ``_generate(request, model, messages)``.
    """

    name = "base"
    MODELS: tuple[ModelInfo, ...] = ()
    DEFAULT_MODEL = ""

    def __init__(self, api_key: str | None = None) -> None:
        self._api_key = api_key

    def is_available(self) -> bool:
        return bool(self._api_key)

    def supported_models(self) -> List[ModelInfo]:
        return list(self.MODELS)

    def default_model(self) -> str:
        return self.DEFAULT_MODEL

    def model_info(self, model: str) -> ModelInfo | None:
        for info in self.MODELS:
            if info.name == model:
                return info
        return None

    def resolve_model(self, requested: str | None) -> str:
        # A model name belonging to another provider (e.g. after failover)
        # falls back to this adapter's default.
        if requested and (not self.MODELS or self.model_info(requested) is not None):
            return requested
        return self.default_model()

    def validate_request(self, request: GenerationRequest) -> None:
        if not 0.0 <= request.temperature <= 1.0:
            raise ProviderError(f"{self.name}: temperature must be between 0 and 1")
        if request.max_tokens <= 0:
            raise ProviderError(f"{self.name}: max_tokens must be positive")
        if request.timeout_seconds <= 0:
            raise ProviderError(f"{self.name}: timeout must be positive")

    @staticmethod
    def build_messages(request: GenerationRequest) -> List[Dict[str, str]]:
        if isinstance(request.prompt, str):
            messages = [Message(role="user", content=request.prompt)]
        else:
            messages = list(request.prompt)
        if request.system and (not messages or messages[0].role != "system"):
            messages.insert(0, Message(role="system", content=request.system))
        return [{"role": m.role, "content": m.content} for m in messages]

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        if not self.is_available():
            raise ProviderUnavailableError(f"{self.name}: API key missing")
        self.validate_request(request)
        model = self.resolve_model(request.model)
        messages = self.build_messages(request)

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self._generate, request, model, messages),
                timeout=request.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeoutError(
                f"{self.name}: request timed out after {request.timeout_seconds}s"
            ) from exc

        if response.usage.cost is None:
            info = self.model_info(model)
            if info is not None:
                response.usage.cost = info.estimate_cost(
                    response.usage.input_tokens, response.usage.output_tokens
                )
        logger.debug(
            "%s/%s answered in %sms (%s tokens)",
            self.name,
            model,
            response.latency_ms,
            response.usage.total_tokens,
        )
        return response

    @abstractmethod
    def _generate(
        self,
        request: GenerationRequest,
        model: str,
        messages: List[Dict[str, str]],
    ) -> GenerationResponse:
        ...
