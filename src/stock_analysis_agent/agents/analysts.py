"""Concrete analysis agents and the registry used to build them."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Type

from .. import prompts
from ..config import agent_settings
from ..llm.gateway import LLMGateway
from ..storage import ExecutionRecorder
from ..synthesis import profiles
from ..synthesis.extraction import Extraction
from ..synthesis.impacts import (
    extract_impacts,
    extract_policy_risk_score,
    extract_policy_score,
    favorable_sectors,
    hot_concepts,
    unfavorable_sectors,
)
from ..types import DATASET_FINANCIAL, DATASET_NEWS, PipelineContext
from .base import AgentRunner


class ComprehensiveAnalyst(AgentRunner):
    key = "comprehensive_analyst"
    name = "综合分析师"
    analysis_type = "comprehensive"
    template = prompts.COMPREHENSIVE_TEMPLATE
    profile = profiles.COMPREHENSIVE
    default_window_days = 60


class TradingStrategist(AgentRunner):
    key = "trading_strategist"
    name = "交易策略师"
    analysis_type = "trading_strategy"
    template = prompts.TRADING_STRATEGY_TEMPLATE
    profile = profiles.TRADING_STRATEGY
    requires_previous_results = True
    default_window_days = 30


class FundamentalAnalyst(AgentRunner):
    key = "fundamental_analyst"
    name = "基本面分析师"
    analysis_type = "fundamental"
    template = prompts.FUNDAMENTAL_TEMPLATE
    profile = profiles.FUNDAMENTAL
    required_inputs = (DATASET_FINANCIAL,)


class ValuationAnalyst(AgentRunner):
    key = "valuation_analyst"
    name = "估值分析师"
    analysis_type = "valuation"
    template = prompts.VALUATION_TEMPLATE
    profile = profiles.VALUATION


class QuantitativeTrader(AgentRunner):
    key = "quantitative_trader"
    name = "量化交易员"
    analysis_type = "quantitative"
    template = prompts.QUANTITATIVE_TEMPLATE
    profile = profiles.QUANTITATIVE
    default_window_days = 60


class MacroEconomist(AgentRunner):
    key = "macro_economist"
    name = "宏观经济分析师"
    analysis_type = "macro"
    template = prompts.MACRO_TEMPLATE
    profile = profiles.MACRO


class PolicyAnalyst(AgentRunner):
    """Adds impact records, sector/concept levels and policy scores.

    The fused score of this agent is its policy support score.
    """

    key = "policy_analyst"
    name = "政策分析师"
    analysis_type = "policy"
    template = prompts.POLICY_TEMPLATE
    profile = profiles.POLICY
    required_inputs = (DATASET_NEWS,)
    default_window_days = 7

    def supplement(
        self,
        text: str,
        context: PipelineContext,
        extraction: Extraction,
    ) -> tuple[Extraction, Dict[str, Any]]:
        support = extract_policy_score(text)
        extra = {
            "impacts": extract_impacts(text),
            "favorable_sectors": favorable_sectors(text),
            "unfavorable_sectors": unfavorable_sectors(text),
            "hot_concepts": hot_concepts(text),
            "policy_support_score": support,
            "policy_risk_score": extract_policy_risk_score(text),
            "overall_sentiment": extraction.sentiment.value,
        }
        return replace(extraction, score=support), extra


AGENT_REGISTRY: Dict[str, Type[AgentRunner]] = {
    cls.key: cls
    for cls in (
        ComprehensiveAnalyst,
        TradingStrategist,
        FundamentalAnalyst,
        ValuationAnalyst,
        QuantitativeTrader,
        MacroEconomist,
        PolicyAnalyst,
    )
}


def create_agent(
    key: str,
    gateway: LLMGateway,
    config: Dict[str, Any],
    recorder: ExecutionRecorder | None = None,
) -> AgentRunner:
    try:
        agent_cls = AGENT_REGISTRY[key]
    except KeyError:
        raise ValueError(f"Unknown agent: {key}") from None
    return agent_cls(gateway, agent_settings(config, key), recorder=recorder)
