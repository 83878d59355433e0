from dataclasses import replace

import pytest

from stock_analysis_agent.config import FusionSettings
from stock_analysis_agent.synthesis.fusion import fuse_results
from stock_analysis_agent.types import AgentResult, Recommendation


def _result(name, score, recommendation, confidence, insights=(), risks=()):
    return AgentResult(
        agent_name=name,
        agent_type=name,
        analysis="",
        score=score,
        recommendation=recommendation,
        confidence=confidence,
        key_insights=tuple(insights),
        risks=tuple(risks),
    )


def test_agreeing_stages():
    decision = fuse_results(
        [
            _result("comprehensive", 80, Recommendation.BUY, 0.85),
            _result("strategy", 75, Recommendation.BUY, 0.8),
        ],
        [0.7, 0.3],
    )

    assert decision.score == 78
    assert decision.recommendation == Recommendation.BUY
    assert decision.confidence == pytest.approx(0.825)
    assert decision.breakdown["strategy"].score == 75
    assert decision.breakdown["comprehensive"].weight == pytest.approx(0.7)


def test_disagreement_penalty_and_last_stage_precedence():
    decision = fuse_results(
        [
            _result("comprehensive", 80, Recommendation.BUY, 0.85),
            _result("strategy", 75, Recommendation.SELL, 0.8),
        ],
        [0.7, 0.3],
    )

    assert decision.recommendation == Recommendation.SELL
    assert decision.confidence == pytest.approx(0.675)


def test_agreement_never_scores_below_disagreement():
    first = _result("comprehensive", 60, Recommendation.HOLD, 0.6)
    second = _result("strategy", 40, Recommendation.HOLD, 0.7)
    agreed = fuse_results([first, second], [0.5, 0.5])
    disagreed = fuse_results([first, replace(second, recommendation=Recommendation.BUY)], [0.5, 0.5])

    assert agreed.confidence >= disagreed.confidence


def test_penalty_floors_at_zero():
    decision = fuse_results(
        [
            _result("a", 50, Recommendation.BUY, 0.05),
            _result("b", 50, Recommendation.SELL, 0.1),
        ],
        [0.5, 0.5],
    )
    assert decision.confidence == 0.0


def test_missing_score_and_recommendation_fallbacks():
    decision = fuse_results(
        [
            _result("comprehensive", None, Recommendation.STRONG_BUY, 0.7),
            _result("strategy", 90, None, 0.7),
        ],
        [0.5, 0.5],
    )

    assert decision.score == 70
    assert decision.recommendation == Recommendation.STRONG_BUY


def test_weights_are_normalized():
    results = [
        _result("comprehensive", 80, Recommendation.BUY, 0.85),
        _result("strategy", 75, Recommendation.BUY, 0.8),
    ]
    assert fuse_results(results, [7, 3]).score == fuse_results(results, [0.7, 0.3]).score


def test_insights_and_risks_truncate_in_stage_order():
    decision = fuse_results(
        [
            _result("a", 50, None, 0.5, insights=[f"a{i}" for i in range(6)], risks=["ra1", "ra2", "ra3"]),
            _result("b", 50, None, 0.5, insights=[f"b{i}" for i in range(6)], risks=["rb1", "rb2", "rb3"]),
        ],
        [0.5, 0.5],
        FusionSettings(max_insights=8, max_risks=5),
    )

    assert decision.key_insights == ("a0", "a1", "a2", "a3", "a4", "a5", "b0", "b1")
    assert decision.risks == ("ra1", "ra2", "ra3", "rb1", "rb2")
    assert decision.recommendation == Recommendation.HOLD


def test_configured_penalty():
    decision = fuse_results(
        [
            _result("a", 50, Recommendation.BUY, 0.8),
            _result("b", 50, Recommendation.SELL, 0.8),
        ],
        [0.5, 0.5],
        FusionSettings(disagreement_penalty=0.3),
    )
    assert decision.confidence == pytest.approx(0.5)


def test_invalid_inputs():
    with pytest.raises(ValueError):
        fuse_results([], [])
    with pytest.raises(ValueError):
        fuse_results([_result("a", 50, None, 0.5)], [0.5, 0.5])
    with pytest.raises(ValueError):
        fuse_results([_result("a", 50, None, 0.5)], [0.0])
