"""Provider registry with ordered failover, retry backoff and health statistics."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Sequence

from ..storage import log_llm_call
from .providers.anthropic_provider import AnthropicProvider
from .providers.base import ProviderAdapter
from .providers.dashscope_provider import DashScopeProvider
from .providers.gemini_provider import GeminiProvider
from .providers.openai_provider import OpenAIProvider
from .types import (
    AllProvidersExhaustedError,
    GatewaySettings,
    GenerationRequest,
    GenerationResponse,
    ModelInfo,
    ProviderStatus,
    ProviderUnavailableError,
)

logger = logging.getLogger(__name__)

ADAPTER_CLASSES = (DashScopeProvider, OpenAIProvider, AnthropicProvider, GeminiProvider)

# Weight of the newest latency sample in the moving average.
LATENCY_ALPHA = 0.1


def build_default_adapters() -> List[ProviderAdapter]:
    adapters: List[ProviderAdapter] = []
    for adapter_cls in ADAPTER_CLASSES:
        try:
            adapters.append(adapter_cls())
        except Exception as exc:
            logger.warning("Skipping provider %s: %s", adapter_cls.name, exc)
    return adapters


@dataclass
class ProviderAttempt:
    """Outcome of trying one provider, including its retries."""

    provider: str
    response: GenerationResponse | None = None
    error: BaseException | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.response is not None


class LLMGateway:
    def __init__(
        self,
        settings: GatewaySettings | None = None,
        adapters: Iterable[ProviderAdapter] | None = None,
        conn: sqlite3.Connection | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self.settings = settings or GatewaySettings()
        self.conn = conn
        self._sleep = sleep or asyncio.sleep
        self._adapters: Dict[str, ProviderAdapter] = {}
        self._stats: Dict[str, ProviderStatus] = {}
        for adapter in adapters if adapters is not None else build_default_adapters():
            self.register_adapter(adapter)

    def register_adapter(self, adapter: ProviderAdapter) -> None:
        self._adapters[adapter.name] = adapter
        self._stats[adapter.name] = ProviderStatus(name=adapter.name, available=adapter.is_available())

    def provider_order(self, preferred: str | None = None) -> List[str]:
        if preferred and preferred in self._adapters:
            return [preferred]
        names = [self.settings.primary_provider]
        if self.settings.enable_fallback:
            names.extend(self.settings.fallback_providers)
        order: List[str] = []
        for name in names:
            if name in self._adapters and name not in order:
                order.append(name)
        return order

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        order = self.provider_order(request.provider)
        attempted: List[str] = []
        last_error: BaseException | None = None

        for name in order:
            adapter = self._adapters[name]
            if not adapter.is_available():
                self._stats[name].available = False
                last_error = ProviderUnavailableError(f"{name}: not available")
                logger.debug("Skipping unavailable provider %s", name)
                continue

            attempted.append(name)
            attempt = await self._try_provider(adapter, request)
            if attempt.ok:
                self._log_call(attempt.response, request)
                return attempt.response

            last_error = attempt.error
            logger.warning(
                "Provider %s failed after %s attempt(s): %s", name, attempt.attempts, attempt.error
            )

        logger.error("All providers failed (tried: %s)", ", ".join(attempted) or "none")
        raise AllProvidersExhaustedError(last_error, attempted)

    async def _try_provider(self, adapter: ProviderAdapter, request: GenerationRequest) -> ProviderAttempt:
        attempt = ProviderAttempt(provider=adapter.name)
        max_retries = max(1, self.settings.max_retries)
        for number in range(1, max_retries + 1):
            attempt.attempts = number
            start = time.perf_counter()
            try:
                response = await adapter.generate(request)
            except Exception as exc:
                self._update_stats(adapter.name, success=False)
                attempt.error = exc
                if number < max_retries:
                    delay = self.settings.retry_delay_seconds * (2 ** (number - 1))
                    logger.debug(
                        "Retrying %s in %.2fs (attempt %s/%s): %s",
                        adapter.name,
                        delay,
                        number,
                        max_retries,
                        exc,
                    )
                    await self._sleep(delay)
                continue

            elapsed_ms = (time.perf_counter() - start) * 1000
            self._update_stats(adapter.name, success=True, elapsed_ms=elapsed_ms)
            attempt.response = response
            attempt.error = None
            return attempt
        return attempt

    def _update_stats(self, name: str, success: bool, elapsed_ms: float = 0.0) -> None:
        # Plain read-modify-write; concurrent callers may interleave updates.
        status = self._stats[name]
        status.total_requests += 1
        if success:
            status.available = True
            status.consecutive_failures = 0
            status.average_response_time_ms = (
                status.average_response_time_ms * (1 - LATENCY_ALPHA) + elapsed_ms * LATENCY_ALPHA
            )
        else:
            status.total_failures += 1
            status.consecutive_failures += 1

    def _log_call(self, response: GenerationResponse, request: GenerationRequest) -> None:
        if self.conn is None:
            return
        try:
            log_llm_call(
                self.conn,
                stage=str(request.meta.get("analysis_type") or "generate"),
                provider=response.provider,
                model=response.model,
                tokens_in=response.usage.input_tokens,
                tokens_out=response.usage.output_tokens,
                cost=response.usage.cost or 0.0,
                latency_ms=response.latency_ms,
                meta=request.meta,
            )
        except sqlite3.Error as exc:
            logger.warning("Could not record LLM call: %s", exc)

    async def generate_batch(
        self,
        requests: Sequence[GenerationRequest],
        concurrency: int | None = None,
    ) -> List[GenerationResponse]:
        """Runs requests in chunks of ``concurrency``; output order matches input order.

        A request that fails every provider yields an empty response with
        ``finish_reason == "error"`` instead of failing the batch.
        """
        size = self.settings.batch_concurrency if concurrency is None else concurrency
        if size < 1:
            raise ValueError("concurrency must be at least 1")

        responses: List[GenerationResponse] = []
        for offset in range(0, len(requests), size):
            chunk = requests[offset:offset + size]
            outcomes = await asyncio.gather(
                *(self.generate(request) for request in chunk),
                return_exceptions=True,
            )
            for index, outcome in enumerate(outcomes, start=offset):
                if isinstance(outcome, Exception):
                    logger.error("Batch request %s failed: %s", index, outcome)
                    responses.append(GenerationResponse.error(str(outcome)))
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    responses.append(outcome)
        return responses

    def get_provider_status(self) -> Dict[str, ProviderStatus]:
        return {name: replace(status) for name, status in self._stats.items()}

    def get_available_providers(self) -> List[str]:
        return [name for name, adapter in self._adapters.items() if adapter.is_available()]

    def get_all_supported_models(self) -> Dict[str, List[ModelInfo]]:
        return {name: adapter.supported_models() for name, adapter in self._adapters.items()}

    def get_service_stats(self) -> Dict[str, Any]:
        return {
            "total_adapters": len(self._adapters),
            "available_adapters": len(self.get_available_providers()),
            "primary_provider": self.settings.primary_provider,
            "fallback_enabled": self.settings.enable_fallback,
        }
