"""Shared LLM data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence


@dataclass(frozen=True)
class Message:
    role: str
    content: str


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_openai_schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: str


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float | None = None


@dataclass(frozen=True)
class ModelInfo:
    name: str
    description: str
    context_length: int
    supports_function_calling: bool
    cost_per_1k_input_tokens: float | None = None
    cost_per_1k_output_tokens: float | None = None
    recommended_for: tuple[str, ...] = ()

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float | None:
        if self.cost_per_1k_input_tokens is None or self.cost_per_1k_output_tokens is None:
            return None
        return (input_tokens / 1000.0) * self.cost_per_1k_input_tokens + (
            output_tokens / 1000.0
        ) * self.cost_per_1k_output_tokens


@dataclass(frozen=True)
class GenerationRequest:
    """One generation call. ``prompt`` is text or an ordered message list."""

    prompt: str | Sequence[Message]
    model: str | None = None
    system: str = ""
    temperature: float = 0.7
    max_tokens: int = 2000
    timeout_seconds: float = 90.0
    tools: tuple[ToolDefinition, ...] = ()
    provider: str | None = None
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationResponse:
    content: str
    finish_reason: str
    provider: str = ""
    model: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    tool_calls: List[ToolCall] = field(default_factory=list)
    latency_ms: int = 0
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def error(cls, message: str) -> "GenerationResponse":
        """Placeholder substituted for a failed item of a batch."""
        return cls(content="", finish_reason="error", raw={"error": message})


@dataclass
class ProviderStatus:
    name: str
    available: bool
    consecutive_failures: int = 0
    total_requests: int = 0
    total_failures: int = 0
    average_response_time_ms: float = 0.0


@dataclass(frozen=True)
class GatewaySettings:
    primary_provider: str = "dashscope"
    fallback_providers: tuple[str, ...] = ()
    enable_fallback: bool = True
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    batch_concurrency: int = 5


class ProviderError(RuntimeError):
    """Provider failed to return a valid generation."""


class ProviderUnavailableError(ProviderError):
    """Provider is not configured (for example a missing API key)."""


class ProviderTimeoutError(ProviderError):
    """Provider did not answer within the request timeout."""


class AllProvidersExhaustedError(ProviderError):
    """Every provider in the ordered list failed after its retries."""

    def __init__(self, last_error: BaseException | None, attempted: Sequence[str] = ()) -> None:
        self.last_error = last_error
        self.attempted = list(attempted)
        detail = str(last_error) if last_error is not None else "no provider could be tried"
        super().__init__(f"All providers unavailable. Last error: {detail}")
