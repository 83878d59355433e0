"""Cross-agent fusion of stage results into one decision."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Sequence

from ..config import FusionSettings
from ..types import AgentResult, ComponentBreakdown, FusedDecision, Recommendation
from ..utils import clamp


def normalize_weights(weights: Sequence[float]) -> list[float]:
    total = sum(weights)
    if total <= 0:
        raise ValueError("stage weights must sum to a positive value")
    if abs(total - 1.0) <= 1e-9:
        return list(weights)
    return [weight / total for weight in weights]


def fuse_results(
    results: Sequence[AgentResult],
    weights: Sequence[float],
    settings: FusionSettings | None = None,
    supporting_data: Mapping[str, Any] | None = None,
) -> FusedDecision:
    """Weighted score, last-stage recommendation, mean confidence minus a disagreement penalty.

    ``results`` and ``weights`` are in stage order. A stage without a score
    counts as ``settings.default_score``.
    """
    settings = settings or FusionSettings()
    if not results:
        raise ValueError("cannot fuse an empty result list")
    if len(results) != len(weights):
        raise ValueError("one weight per result is required")

    normalized = normalize_weights(weights)
    weighted = sum(
        (result.score if result.score is not None else settings.default_score) * weight
        for result, weight in zip(results, normalized)
    )
    score = int(clamp(round(weighted), 0, 100))

    recommendation = results[-1].recommendation or results[0].recommendation or Recommendation.HOLD

    confidence = clamp(sum(result.confidence for result in results) / len(results), 0.0, 1.0)
    distinct = {result.recommendation for result in results if result.recommendation is not None}
    if len(distinct) > 1:
        confidence = clamp(confidence - settings.disagreement_penalty, 0.0, 1.0)

    insights = [insight for result in results for insight in result.key_insights]
    risks = [risk for result in results for risk in result.risks]

    breakdown: Dict[str, ComponentBreakdown] = {}
    for result, weight in zip(results, normalized):
        breakdown[result.agent_name] = ComponentBreakdown(
            agent_name=result.agent_name,
            score=result.score,
            recommendation=result.recommendation,
            confidence=result.confidence,
            weight=weight,
        )

    return FusedDecision(
        score=score,
        recommendation=recommendation,
        confidence=round(confidence, 4),
        key_insights=tuple(insights[: settings.max_insights]),
        risks=tuple(risks[: settings.max_risks]),
        breakdown=breakdown,
        supporting_data=dict(supporting_data or {}),
    )
