"""Staged multi-agent pipelines for one subject or a batch of subjects."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping

from .agents.analysts import AGENT_REGISTRY, create_agent
from .agents.base import AgentRunner
from .config import ConfigError, fusion_settings, pipeline_stages
from .llm.gateway import LLMGateway
from .storage import ExecutionRecorder
from .synthesis.fusion import fuse_results
from .types import (
    META_ANALYSIS_TYPE,
    META_SESSION_ID,
    META_STAGE,
    META_SUBJECT_ID,
    META_TRIGGER,
    AgentResult,
    BatchResult,
    BatchSummary,
    PipelineContext,
    PipelineResult,
    SubjectFailure,
    TimeRange,
)
from .utils import elapsed_ms, new_session_id

logger = logging.getLogger(__name__)

DataProvider = Callable[[str], Awaitable[Dict[str, Any]]]
AgentFactory = Callable[[str], AgentRunner]


class PipelineOrchestrator:
    """Runs the configured stages in order and fuses their results.

    Stage N sees every earlier stage's AgentResult in ``previous_results``.
    A failing stage aborts that subject's run; in ``run_batch`` the failure is
    recorded per subject and the other subjects continue. The orchestrator
    keeps no state between runs, so re-running a subject starts from stage 1.
    """

    def __init__(
        self,
        gateway: LLMGateway,
        config: Dict[str, Any],
        recorder: ExecutionRecorder | None = None,
        data_provider: DataProvider | None = None,
        agent_factory: AgentFactory | None = None,
    ) -> None:
        self.gateway = gateway
        self.config = config
        self.stages = pipeline_stages(config, None if agent_factory else AGENT_REGISTRY)
        self.fusion = fusion_settings(config)
        pipeline_cfg = config.get("pipeline", {})
        self.session_prefix = str(pipeline_cfg.get("session_prefix", "session_"))
        self.batch_concurrency = int(pipeline_cfg.get("batch_concurrency", 3))
        self.data_provider = data_provider
        self._agent_factory = agent_factory or (
            lambda key: create_agent(key, gateway, config, recorder=recorder)
        )

    def generate_session_id(self) -> str:
        return new_session_id(self.session_prefix)

    async def run_pipeline(
        self,
        subject_id: str,
        display_name: str | None = None,
        session_id: str | None = None,
        datasets: Mapping[str, Any] | None = None,
        time_range: TimeRange | None = None,
        trigger: str | None = None,
    ) -> PipelineResult:
        session_id = session_id or self.generate_session_id()
        start = time.perf_counter()
        if datasets is None and self.data_provider is not None:
            datasets = await self.data_provider(subject_id)

        metadata = {META_SESSION_ID: session_id, META_SUBJECT_ID: subject_id}
        if trigger:
            metadata[META_TRIGGER] = trigger
        base = PipelineContext(
            subject_id=subject_id,
            display_name=display_name,
            time_range=time_range,
            datasets=dict(datasets or {}),
            metadata=metadata,
        )

        results: List[AgentResult] = []
        for index, stage in enumerate(self.stages, start=1):
            runner = self._agent_factory(stage.agent)
            context = base.derive(
                previous_results=list(results),
                metadata={**base.metadata, META_ANALYSIS_TYPE: stage.analysis_type, META_STAGE: str(index)},
            )
            logger.info(
                "Stage %s/%s (%s) for %s, session %s",
                index,
                len(self.stages),
                stage.agent,
                subject_id,
                session_id,
            )
            results.append(await runner.run(context))

        decision = fuse_results(
            results,
            [stage.weight for stage in self.stages],
            self.fusion,
            supporting_data={
                "session_id": session_id,
                "subject_id": subject_id,
                "display_name": display_name,
                "stages": [stage.analysis_type for stage in self.stages],
            },
        )
        total_ms = elapsed_ms(start)
        logger.info(
            "Pipeline for %s finished in %sms: %s (score %s, confidence %.2f)",
            subject_id,
            total_ms,
            decision.recommendation.value,
            decision.score,
            decision.confidence,
        )
        return PipelineResult(
            session_id=session_id,
            subject_id=subject_id,
            results=tuple(results),
            final_decision=decision,
            total_processing_ms=total_ms,
        )

    async def run_batch(
        self,
        subject_ids: Iterable[str],
        concurrency: int | None = None,
        datasets_by_subject: Mapping[str, Mapping[str, Any]] | None = None,
        trigger: str | None = None,
    ) -> BatchResult:
        """Runs one pipeline per distinct subject with at most ``concurrency`` in flight."""
        subjects = list(dict.fromkeys(subject_ids))
        limit = self.batch_concurrency if concurrency is None else concurrency
        if limit < 1:
            raise ValueError("concurrency must be at least 1")
        datasets_by_subject = datasets_by_subject or {}
        # YAML reads unquoted codes such as 000001 as ints, losing the leading zeros.
        bad_keys = [key for key in datasets_by_subject if not isinstance(key, str)]
        if bad_keys:
            raise ConfigError(f"Dataset keys must be quoted stock codes, got {bad_keys!r}")
        semaphore = asyncio.Semaphore(limit)

        async def run_one(subject_id: str) -> PipelineResult:
            async with semaphore:
                return await self.run_pipeline(
                    subject_id,
                    datasets=datasets_by_subject.get(subject_id),
                    trigger=trigger,
                )

        outcomes = await asyncio.gather(*(run_one(s) for s in subjects), return_exceptions=True)

        succeeded: Dict[str, PipelineResult] = {}
        failures: List[SubjectFailure] = []
        for subject_id, outcome in zip(subjects, outcomes):
            if isinstance(outcome, Exception):
                logger.error("Pipeline for %s failed: %s", subject_id, outcome)
                failures.append(
                    SubjectFailure(subject_id=subject_id, error=str(outcome), error_type=type(outcome).__name__)
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                succeeded[subject_id] = outcome

        summary = BatchSummary(total=len(subjects), successful=len(succeeded), failed=len(failures))
        logger.info(
            "Batch finished: %s total, %s successful, %s failed",
            summary.total,
            summary.successful,
            summary.failed,
        )
        return BatchResult(succeeded=succeeded, failures=failures, summary=summary)
