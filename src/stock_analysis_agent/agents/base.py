"""AgentRunner: one analysis unit from context to structured result."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict

from ..config import AgentSettings
from ..llm.gateway import LLMGateway
from ..llm.types import GenerationRequest, ProviderError, ProviderTimeoutError
from ..prompts import render_prompt
from ..storage import ExecutionRecorder
from ..synthesis.extraction import Extraction, extract_signals
from ..synthesis.profiles import COMPREHENSIVE, PREVIOUS_RESULTS, ExtractionProfile
from ..types import (
    META_ANALYSIS_TYPE,
    META_SESSION_ID,
    META_SUBJECT_ID,
    AgentResult,
    AgentStatus,
    ExecutionRecord,
    PipelineContext,
    TimeRange,
)
from ..utils import elapsed_ms, new_session_id, utc_now_iso

logger = logging.getLogger(__name__)


class MissingInputError(ValueError):
    """A dataset the agent cannot work without is absent from the context."""


class AgentRunner:
    """Base runner: ``prepare`` -> ``execute`` -> ``finalize``.

    Subclasses declare ``key``, ``name``, ``template``, ``profile``,
    ``required_inputs`` and ``default_window_days``; ``supplement`` may add
    agent-specific fields on top of the generic extraction.

    ``status`` moves IDLE -> ANALYZING -> COMPLETED, or to ERROR before any
    exception leaves ``run``.
    """

    key = "agent"
    name = "Agent"
    analysis_type = "general"
    template = "{subject}\n\n{datasets}"
    profile: ExtractionProfile = COMPREHENSIVE
    required_inputs: tuple[str, ...] = ()
    requires_previous_results = False
    default_window_days: int | None = None
    # Base delay of the agent-level retry around the gateway call.
    retry_base_delay_seconds = 1.0

    def __init__(
        self,
        gateway: LLMGateway,
        settings: AgentSettings,
        recorder: ExecutionRecorder | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings
        self.recorder = recorder
        self.status = AgentStatus.IDLE
        self._sleep = sleep or asyncio.sleep

    @property
    def agent_type(self) -> str:
        return self.key

    def prepare(self, context: PipelineContext) -> PipelineContext:
        for dataset in self.required_inputs:
            if not context.has_dataset(dataset):
                raise MissingInputError(f"required dataset {dataset} not provided")
        if self.requires_previous_results and not context.previous_results:
            raise MissingInputError(f"required dataset {PREVIOUS_RESULTS} not provided")
        prepared = context.derive()
        if prepared.time_range is None and self.default_window_days:
            prepared.time_range = TimeRange.last_days(self.default_window_days)
        prepared.metadata.setdefault(META_SUBJECT_ID, context.subject_id)
        prepared.metadata.setdefault(META_ANALYSIS_TYPE, self.analysis_type)
        return prepared

    def build_prompt(self, context: PipelineContext) -> str:
        return render_prompt(self.template, context)

    def build_request(self, prompt: str, context: PipelineContext) -> GenerationRequest:
        return GenerationRequest(
            prompt=prompt,
            system=self.settings.system_prompt,
            model=self.settings.model,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
            timeout_seconds=self.settings.timeout_seconds,
            meta={
                "agent": self.key,
                "session_id": context.metadata.get(META_SESSION_ID, ""),
                "subject_id": context.subject_id,
                "analysis_type": context.metadata.get(META_ANALYSIS_TYPE, self.analysis_type),
            },
        )

    async def execute(self, context: PipelineContext, prompt: str | None = None) -> str:
        request = self.build_request(prompt or self.build_prompt(context), context)
        attempts = max(1, self.settings.retry_count)
        for attempt in range(1, attempts):
            try:
                response = await self.gateway.generate(request)
                return response.content
            except ProviderError as exc:
                delay = self.retry_base_delay_seconds * (2 ** (attempt - 1))
                if isinstance(getattr(exc, "last_error", exc), ProviderTimeoutError):
                    delay *= 2
                logger.warning(
                    "%s attempt %s/%s for %s failed, retrying in %.1fs: %s",
                    self.name,
                    attempt,
                    attempts,
                    context.subject_id,
                    delay,
                    exc,
                )
                await self._sleep(delay)
        response = await self.gateway.generate(request)
        return response.content

    def supplement(
        self,
        text: str,
        context: PipelineContext,
        extraction: Extraction,
    ) -> tuple[Extraction, Dict[str, Any]]:
        return extraction, {}

    def finalize(self, text: str, context: PipelineContext, processing_ms: int = 0) -> AgentResult:
        inputs: Dict[str, Any] = dict(context.datasets)
        inputs[PREVIOUS_RESULTS] = context.previous_results
        extraction, extra = self.supplement(text, context, extract_signals(text, self.profile, inputs))

        supporting: Dict[str, Any] = {
            "session_id": context.metadata.get(META_SESSION_ID, ""),
            "subject_id": context.subject_id,
            "analysis_type": context.metadata.get(META_ANALYSIS_TYPE, self.analysis_type),
            "model": self.settings.model,
        }
        supporting.update(extra)
        return AgentResult(
            agent_name=self.name,
            agent_type=self.agent_type,
            analysis=text,
            score=extraction.score,
            recommendation=extraction.recommendation,
            confidence=extraction.confidence,
            key_insights=extraction.key_insights,
            risks=extraction.risks,
            supporting_data=supporting,
            sentiment=extraction.sentiment,
            processing_time_ms=processing_ms,
        )

    async def run(self, context: PipelineContext) -> AgentResult:
        self.status = AgentStatus.ANALYZING
        started_at = utc_now_iso()
        start = time.perf_counter()
        session_id = context.metadata.get(META_SESSION_ID) or new_session_id()
        prompt = ""
        text: str | None = None
        logger.info("%s analyzing %s (session %s)", self.name, context.subject_id, session_id)

        try:
            prepared = self.prepare(context)
            prepared.metadata[META_SESSION_ID] = session_id
            prompt = self.build_prompt(prepared)
            text = await self.execute(prepared, prompt)
            result = self.finalize(text, prepared, elapsed_ms(start))
        except BaseException as exc:
            self.status = AgentStatus.ERROR
            logger.error("%s failed for %s: %s", self.name, context.subject_id, exc)
            self._record(
                session_id, context, prompt, text, None, started_at, error=f"{type(exc).__name__}: {exc}"
            )
            raise

        self.status = AgentStatus.COMPLETED
        logger.info(
            "%s finished %s in %sms (score=%s, recommendation=%s)",
            self.name,
            context.subject_id,
            result.processing_time_ms,
            result.score,
            result.recommendation.value if result.recommendation else None,
        )
        self._record(session_id, context, prompt, text, result, started_at)
        return result

    def _record(
        self,
        session_id: str,
        context: PipelineContext,
        prompt: str,
        text: str | None,
        result: AgentResult | None,
        started_at: str,
        error: str | None = None,
    ) -> None:
        if self.recorder is None:
            return
        record = ExecutionRecord(
            session_id=session_id,
            subject_id=context.subject_id,
            agent_name=self.name,
            agent_type=self.agent_type,
            analysis_type=context.metadata.get(META_ANALYSIS_TYPE, self.analysis_type),
            model=self.settings.model,
            input_prompt=prompt,
            raw_response=text,
            result=result,
            status=self.status,
            start_time=started_at,
            end_time=utc_now_iso(),
            error=error,
        )
        try:
            self.recorder.record_execution(record)
        except Exception as exc:
            logger.warning("Could not save execution record for %s: %s", self.name, exc)
