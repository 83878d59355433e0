import asyncio
from copy import deepcopy

import pytest
import yaml

from stock_analysis_agent.agents.analysts import ComprehensiveAnalyst, TradingStrategist
from stock_analysis_agent.agents.base import MissingInputError
from stock_analysis_agent.config import DEFAULT_SETTINGS, ConfigError, agent_settings
from stock_analysis_agent.llm.types import AllProvidersExhaustedError, GenerationResponse, ProviderError
from stock_analysis_agent.pipeline import PipelineOrchestrator
from stock_analysis_agent.types import Recommendation

REPLIES = {
    "comprehensive": "综合评分：80。公司业绩增长稳定，行业地位领先且估值合理。建议买入",
    "trading_strategy": "策略评分：75。建议分批买入，仓位控制在三成以内并设置止损位。",
}


class ScriptedGateway:
    def __init__(self, failing_subjects=(), failing_stage=None):
        self.failing_subjects = set(failing_subjects)
        self.failing_stage = failing_stage
        self.requests = []

    async def generate(self, request):
        self.requests.append(request)
        await asyncio.sleep(0)
        analysis_type = request.meta["analysis_type"]
        if request.meta["subject_id"] in self.failing_subjects or analysis_type == self.failing_stage:
            raise AllProvidersExhaustedError(ProviderError("provider down"))
        return GenerationResponse(content=REPLIES[analysis_type], finish_reason="stop", provider="fake")


class RecordingStrategist(TradingStrategist):
    seen = []

    async def run(self, context):
        RecordingStrategist.seen.append(context)
        return await super().run(context)


def _config():
    return deepcopy(DEFAULT_SETTINGS)


def test_pipeline_threads_results_and_fuses():
    gateway = ScriptedGateway()
    config = _config()
    RecordingStrategist.seen = []
    agents = {"comprehensive_analyst": ComprehensiveAnalyst, "trading_strategist": RecordingStrategist}
    orchestrator = PipelineOrchestrator(
        gateway,
        config,
        agent_factory=lambda key: agents[key](gateway, agent_settings(config, key)),
    )

    result = asyncio.run(orchestrator.run_pipeline("600519", display_name="贵州茅台", session_id="session_abc"))

    stage_two_context = RecordingStrategist.seen[0]
    assert stage_two_context.previous_results == [result.results[0]]
    assert stage_two_context.previous_results[0].score == 80
    assert stage_two_context.metadata["analysis_type"] == "trading_strategy"
    assert stage_two_context.metadata["stage"] == "2"

    assert result.session_id == "session_abc"
    assert all(r.supporting_data["session_id"] == "session_abc" for r in result.results)
    assert all(req.meta["session_id"] == "session_abc" for req in gateway.requests)
    assert result.final_decision.supporting_data["session_id"] == "session_abc"

    assert [r.score for r in result.results] == [80, 75]
    assert result.final_decision.score == 78
    assert result.final_decision.recommendation == Recommendation.BUY


def test_stage_failure_aborts_subject():
    orchestrator = PipelineOrchestrator(ScriptedGateway(failing_stage="trading_strategy"), _config())

    with pytest.raises(AllProvidersExhaustedError):
        asyncio.run(orchestrator.run_pipeline("600519"))


def test_missing_input_propagates():
    config = _config()
    config["pipeline"]["stages"] = [{"agent": "fundamental_analyst", "weight": 1.0, "analysis_type": "fundamental"}]
    orchestrator = PipelineOrchestrator(ScriptedGateway(), config)

    with pytest.raises(MissingInputError):
        asyncio.run(orchestrator.run_pipeline("600519"))


def test_batch_isolates_failing_subject():
    orchestrator = PipelineOrchestrator(ScriptedGateway(failing_subjects={"000002"}), _config())

    batch = asyncio.run(orchestrator.run_batch(["600519", "000002", "000001"], concurrency=2))

    assert batch.summary.total == 3
    assert batch.summary.successful == 2
    assert batch.summary.failed == 1
    assert "000002" not in batch.succeeded
    assert set(batch.succeeded) == {"600519", "000001"}
    assert batch.failures[0].subject_id == "000002"
    assert batch.failures[0].error_type == "AllProvidersExhaustedError"
    assert batch.succeeded["600519"].session_id != batch.succeeded["000001"].session_id


def test_batch_deduplicates_subjects():
    orchestrator = PipelineOrchestrator(ScriptedGateway(), _config())

    batch = asyncio.run(orchestrator.run_batch(["600519", "600519", "000001"]))

    assert batch.summary.total == 2


def test_data_provider_supplies_datasets():
    config = _config()
    config["pipeline"]["stages"] = [{"agent": "comprehensive_analyst", "weight": 1.0, "analysis_type": "comprehensive"}]
    gateway = ScriptedGateway()
    requested = []

    async def provider(subject_id):
        requested.append(subject_id)
        return {"financial_data": {"roe": 0.31}}

    orchestrator = PipelineOrchestrator(gateway, config, data_provider=provider)
    result = asyncio.run(orchestrator.run_pipeline("600519"))

    assert requested == ["600519"]
    assert "0.31" in gateway.requests[0].prompt
    assert result.final_decision.score == 80


def test_generated_session_ids_use_prefix_and_differ():
    config = _config()
    config["pipeline"]["session_prefix"] = "analysis_session_"
    orchestrator = PipelineOrchestrator(ScriptedGateway(), config)

    first = orchestrator.generate_session_id()
    second = orchestrator.generate_session_id()

    assert first.startswith("analysis_session_")
    assert first != second


def test_batch_rejects_unquoted_stock_codes_in_datasets():
    datasets = yaml.safe_load("600519:\n  financial_data: {roe: 0.3}\n000001:\n  financial_data: {roe: 0.1}\n")
    gateway = ScriptedGateway()
    orchestrator = PipelineOrchestrator(gateway, _config())

    with pytest.raises(ConfigError):
        asyncio.run(orchestrator.run_batch(["600519", "000001"], datasets_by_subject=datasets))
    assert gateway.requests == []


def test_batch_uses_quoted_stock_code_datasets():
    datasets = yaml.safe_load("'000001':\n  financial_data: {roe: 0.17}\n")
    gateway = ScriptedGateway()
    orchestrator = PipelineOrchestrator(gateway, _config())

    batch = asyncio.run(orchestrator.run_batch(["000001"], datasets_by_subject=datasets))

    assert batch.summary.successful == 1
    assert "0.17" in gateway.requests[0].prompt


def test_batch_rejects_zero_concurrency():
    orchestrator = PipelineOrchestrator(ScriptedGateway(), _config())

    with pytest.raises(ValueError):
        asyncio.run(orchestrator.run_batch(["600519"], concurrency=0))
