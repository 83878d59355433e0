import asyncio

import pytest

from stock_analysis_agent.llm.gateway import LLMGateway
from stock_analysis_agent.llm.types import (
    GatewaySettings,
    GenerationRequest,
    GenerationResponse,
    ProviderError,
)


class EchoProvider:
    name = "echo"

    def __init__(self):
        self.in_flight = 0
        self.max_in_flight = 0

    def is_available(self):
        return True

    def supported_models(self):
        return []

    def default_model(self):
        return "echo-1"

    async def generate(self, request):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            if request.prompt == "bad":
                raise ProviderError("cannot answer")
            return GenerationResponse(content=request.prompt, finish_reason="stop", provider=self.name)
        finally:
            self.in_flight -= 1


def _gateway(provider):
    async def no_sleep(delay):
        return None

    settings = GatewaySettings(primary_provider="echo", max_retries=1)
    return LLMGateway(settings, adapters=[provider], sleep=no_sleep)


def test_batch_isolates_failed_item_and_keeps_order():
    provider = EchoProvider()
    gateway = _gateway(provider)
    prompts = ["a", "b", "bad", "d", "e"]

    responses = asyncio.run(
        gateway.generate_batch([GenerationRequest(prompt=p) for p in prompts], concurrency=2)
    )

    assert len(responses) == 5
    assert responses[2].finish_reason == "error"
    assert responses[2].content == ""
    assert [r.content for i, r in enumerate(responses) if i != 2] == ["a", "b", "d", "e"]
    assert all(r.finish_reason == "stop" for i, r in enumerate(responses) if i != 2)


def test_batch_respects_chunk_size():
    provider = EchoProvider()
    gateway = _gateway(provider)

    asyncio.run(
        gateway.generate_batch([GenerationRequest(prompt=str(i)) for i in range(7)], concurrency=3)
    )

    assert provider.max_in_flight <= 3


def test_batch_rejects_non_positive_concurrency():
    gateway = _gateway(EchoProvider())

    with pytest.raises(ValueError):
        asyncio.run(gateway.generate_batch([GenerationRequest(prompt="a")], concurrency=-1))


def test_batch_rejects_zero_concurrency():
    gateway = _gateway(EchoProvider())

    with pytest.raises(ValueError):
        asyncio.run(gateway.generate_batch([GenerationRequest(prompt="a")], concurrency=0))
