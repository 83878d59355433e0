import pytest

from stock_analysis_agent.synthesis.extraction import (
    extract_confidence,
    extract_recommendation,
    extract_risks,
    extract_score,
    extract_sentiment,
    extract_signals,
    extract_insights,
)
from stock_analysis_agent.synthesis.profiles import (
    COMPREHENSIVE,
    FUNDAMENTAL,
    MACRO,
    POLICY,
    PROFILES,
    QUANTITATIVE,
)
from stock_analysis_agent.types import Recommendation, Sentiment


def test_bare_points_score():
    assert extract_score("综合得分82分", COMPREHENSIVE) == 82
    assert extract_score("综合得分82分", FUNDAMENTAL) == 82


def test_labeled_score_wins_over_bare_points():
    text = "技术面表现一般，约65分。**综合评分**：78"
    assert extract_score(text, COMPREHENSIVE) == 78


def test_out_of_hundred_pattern():
    assert extract_score("整体打分 72/100", FUNDAMENTAL) == 72


def test_score_is_clamped():
    assert extract_score("综合评分：150", COMPREHENSIVE) == 100


def test_minutes_are_not_points():
    # "30分钟" is a duration; the keyword heuristic applies instead.
    assert extract_score("会议持续30分钟", COMPREHENSIVE) == 50


def test_heuristic_score_adds_and_subtracts():
    assert extract_score("公司盈利优秀，现金流良好，估值低估", FUNDAMENTAL) == 85
    assert extract_score("亏损扩大，经营恶化，明显高估且存在泡沫，收入下滑，债务高企", FUNDAMENTAL) == 0


def test_recommendation_ladder():
    assert extract_recommendation("可以考虑买入", COMPREHENSIVE) == Recommendation.BUY
    assert extract_recommendation("我们强烈买入", COMPREHENSIVE) == Recommendation.STRONG_BUY
    assert extract_recommendation("建议逢高卖出", COMPREHENSIVE) == Recommendation.SELL
    assert extract_recommendation("暂无明确结论", COMPREHENSIVE) == Recommendation.HOLD
    assert extract_recommendation("当前存在价值洼地", FUNDAMENTAL) == Recommendation.STRONG_BUY
    assert extract_recommendation("股价严重高估", FUNDAMENTAL) == Recommendation.STRONG_SELL


def test_confidence_rigor_keywords():
    assert extract_confidence("ROE 和 PE 均处于合理区间", FUNDAMENTAL) == pytest.approx(0.56)


def test_confidence_ceiling_and_inputs():
    inputs = {
        "historical_data": [1, 2, 3],
        "financial_data": {"roe": 0.2},
        "previous_results": ["stage-1"],
    }
    text = "基于具体数值的统计检验与回测"
    assert extract_confidence(text, QUANTITATIVE, inputs, score=50) == pytest.approx(0.95)


def test_confidence_extreme_score_penalty():
    assert extract_confidence("", QUANTITATIVE, {}, score=90) == pytest.approx(0.4)
    assert extract_confidence("", QUANTITATIVE, {}, score=50) == pytest.approx(0.5)


def test_confidence_scale_and_floor():
    assert extract_confidence("", MACRO) == pytest.approx(0.54)


def test_confidence_size_and_length_bonuses():
    inputs = {"news_summaries": ["n"] * 12}
    assert extract_confidence("政" * 1200, POLICY, inputs) == pytest.approx(0.8)


def test_explicit_confidence():
    assert extract_confidence("置信度：80%", COMPREHENSIVE) == pytest.approx(0.8)
    assert extract_confidence("置信度: 0.95", FUNDAMENTAL) == pytest.approx(0.85)


def test_insights_need_keyword_and_length():
    text = "估值偏低。公司近三年营收增长稳定，毛利率持续改善并领先同行。天气很好，适合出门散步和运动锻炼身体。"
    assert extract_insights(text, FUNDAMENTAL) == ["公司近三年营收增长稳定，毛利率持续改善并领先同行"]


def test_risks_fall_back_to_defaults():
    assert extract_risks("公司经营稳健。", FUNDAMENTAL) == list(FUNDAMENTAL.default_risks)


def test_risks_are_extracted_and_capped():
    sentence = "公司面临较大的债务压力和行业竞争风险"
    risks = extract_risks("。".join([sentence] * 8), FUNDAMENTAL)
    assert risks == [sentence] * FUNDAMENTAL.max_risks


def test_sentiment_threshold():
    assert extract_sentiment("利好利好利好利好支持", POLICY) == Sentiment.BULLISH
    assert extract_sentiment("利好", POLICY) == Sentiment.NEUTRAL
    assert extract_sentiment("市场看好", COMPREHENSIVE) == Sentiment.BULLISH
    assert extract_sentiment("风险与压力并存", COMPREHENSIVE) == Sentiment.BEARISH


def test_extraction_is_idempotent():
    text = "综合评分：76。公司业绩增长稳定，行业地位突出且估值合理。建议买入。注意市场波动带来的下行风险。"
    assert extract_signals(text, COMPREHENSIVE) == extract_signals(text, COMPREHENSIVE)


@pytest.mark.parametrize(
    "text",
    ["", "???", "综合评分：-5", "得分 999 分", "强烈买入" * 50, "亏损" * 30, "优秀低估增长稳定" * 10],
)
def test_scores_and_confidence_stay_in_range(text):
    for profile in PROFILES.values():
        signals = extract_signals(text, profile, {"news_summaries": ["x"] * 30})
        assert 0 <= signals.score <= 100
        assert 0.0 <= signals.confidence <= 1.0
