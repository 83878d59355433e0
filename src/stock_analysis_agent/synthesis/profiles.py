"""Keyword tables driving per-agent-class text extraction.

Each agent class owns one ``ExtractionProfile``. All ladders and heuristics
are ordered data evaluated top-down by ``synthesis.extraction``, so changing
an agent's parsing behaviour means editing a table here rather than code.
Keyword matching is case-insensitive.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..types import DATASET_FINANCIAL, DATASET_HISTORICAL, DATASET_NEWS, Recommendation

PREVIOUS_RESULTS = "previous_results"


@dataclass(frozen=True)
class KeywordRule:
    """Adds ``delta`` when any (or, with ``require_all``, every) keyword appears."""

    keywords: tuple[str, ...]
    delta: float
    require_all: bool = False

    def matches(self, haystack: str) -> bool:
        hits = (keyword.lower() in haystack for keyword in self.keywords)
        return all(hits) if self.require_all else any(hits)


@dataclass(frozen=True)
class RecommendationRule:
    keywords: tuple[str, ...]
    recommendation: Recommendation


@dataclass(frozen=True)
class ExtractionProfile:
    name: str
    score_labels: tuple[str, ...]
    score_rules: tuple[KeywordRule, ...]
    recommendation_ladder: tuple[RecommendationRule, ...]
    confidence_base: float = 0.5
    confidence_ceiling: float = 0.9
    confidence_floor: float = 0.0
    confidence_scale: float = 1.0
    # (input name, bonus) pairs, granted when the input is present and non-empty.
    input_bonuses: tuple[tuple[str, float], ...] = ()
    # (input name, ((min size, bonus), ...)); first satisfied threshold wins.
    input_size_bonuses: tuple[tuple[str, tuple[tuple[int, float], ...]], ...] = ()
    # ((min text length, bonus), ...); first satisfied threshold wins.
    length_bonuses: tuple[tuple[int, float], ...] = ()
    rigor_rules: tuple[KeywordRule, ...] = ()
    extreme_score_penalty: float = 0.0
    insight_keywords: tuple[str, ...] = ()
    insight_min_length: int = 15
    max_insights: int = 6
    risk_keywords: tuple[str, ...] = ()
    risk_min_length: int = 10
    max_risks: int = 5
    default_risks: tuple[str, ...] = ()
    bullish_keywords: tuple[str, ...] = ()
    bearish_keywords: tuple[str, ...] = ()
    sentiment_threshold: int = 0


BULLISH_WORDS = ("利好", "积极", "支持", "推动", "促进", "有利", "看好", "bullish")
BEARISH_WORDS = ("利空", "负面", "风险", "压力", "不利", "担忧", "bearish")

DEFAULT_LADDER = (
    RecommendationRule(("强烈买入", "强烈推荐", "强买"), Recommendation.STRONG_BUY),
    RecommendationRule(("强烈卖出", "强卖"), Recommendation.STRONG_SELL),
    RecommendationRule(("买入", "建议购买", "增持"), Recommendation.BUY),
    RecommendationRule(("卖出", "建议出售", "减持"), Recommendation.SELL),
    RecommendationRule(("持有", "观望"), Recommendation.HOLD),
)

DEFAULT_SCORE_RULES = (
    KeywordRule(("看好", "乐观"), 10),
    KeywordRule(("低估",), 10),
    KeywordRule(("强劲", "优秀"), 8),
    KeywordRule(("增长",), 5),
    KeywordRule(("亏损",), -15),
    KeywordRule(("恶化",), -10),
    KeywordRule(("高估",), -10),
    KeywordRule(("下滑", "下跌"), -8),
)


def _each(keywords: tuple[str, ...], delta: float) -> tuple[KeywordRule, ...]:
    return tuple(KeywordRule((keyword,), delta) for keyword in keywords)


COMPREHENSIVE = ExtractionProfile(
    name="comprehensive",
    score_labels=("综合评分", "综合得分", "总分", "评分", "得分"),
    score_rules=DEFAULT_SCORE_RULES,
    recommendation_ladder=DEFAULT_LADDER,
    confidence_base=0.5,
    confidence_ceiling=0.9,
    input_bonuses=((DATASET_HISTORICAL, 0.1), (DATASET_FINANCIAL, 0.1), (DATASET_NEWS, 0.05)),
    rigor_rules=(
        KeywordRule(("技术指标", "RSI", "MACD", "均线"), 0.05),
        KeywordRule(("PE", "PB", "ROE", "市盈率"), 0.05),
        KeywordRule(("风险",), 0.05),
    ),
    insight_keywords=("趋势", "支撑", "阻力", "估值", "业绩", "增长", "资金", "技术指标", "基本面", "行业"),
    max_insights=6,
    risk_keywords=("风险", "不确定", "波动", "下行", "压力"),
    default_risks=("市场整体波动可能影响个股表现", "分析基于公开数据，可能存在信息滞后"),
    bullish_keywords=BULLISH_WORDS,
    bearish_keywords=BEARISH_WORDS,
)

TRADING_STRATEGY = ExtractionProfile(
    name="trading_strategy",
    score_labels=("策略评分", "综合评分", "评分", "得分"),
    score_rules=DEFAULT_SCORE_RULES,
    recommendation_ladder=DEFAULT_LADDER,
    confidence_base=0.5,
    confidence_ceiling=0.9,
    input_bonuses=((PREVIOUS_RESULTS, 0.15), (DATASET_HISTORICAL, 0.1)),
    rigor_rules=(
        KeywordRule(("止损",), 0.05),
        KeywordRule(("目标价", "止盈"), 0.05),
        KeywordRule(("仓位",), 0.05),
    ),
    insight_keywords=("仓位", "止损", "止盈", "目标价", "入场", "建仓", "减仓", "策略"),
    max_insights=6,
    risk_keywords=("风险", "止损", "回撤", "波动", "不确定"),
    default_risks=("市场波动可能导致止损触发", "策略基于当前信息，需随市场变化调整"),
    bullish_keywords=BULLISH_WORDS,
    bearish_keywords=BEARISH_WORDS,
)

FUNDAMENTAL = ExtractionProfile(
    name="fundamental",
    score_labels=("基本面评分", "综合评分", "财务评分", "价值评分"),
    score_rules=(
        KeywordRule(("优秀", "强劲"), 15),
        KeywordRule(("低估", "价值洼地"), 12),
        KeywordRule(("增长", "稳定"), 10, require_all=True),
        KeywordRule(("现金流", "良好"), 8, require_all=True),
        KeywordRule(("债务", "健康"), 5, require_all=True),
        KeywordRule(("亏损", "恶化"), -20),
        KeywordRule(("高估", "泡沫"), -15),
        KeywordRule(("债务", "高"), -10, require_all=True),
        KeywordRule(("下滑", "衰退"), -8),
    ),
    recommendation_ladder=(
        RecommendationRule(("强烈买入", "价值洼地"), Recommendation.STRONG_BUY),
        RecommendationRule(("强烈卖出", "严重高估"), Recommendation.STRONG_SELL),
        RecommendationRule(("建议买入", "低估"), Recommendation.BUY),
        RecommendationRule(("建议卖出", "高估"), Recommendation.SELL),
    ),
    confidence_base=0.5,
    confidence_ceiling=0.85,
    rigor_rules=_each(("ROE", "ROA", "PE", "PB", "现金流", "增长", "估值"), 0.03),
    insight_keywords=(
        "盈利能力", "偿债能力", "营运能力", "现金流", "ROE", "ROA", "PE", "PB",
        "估值", "增长", "财务", "价值", "安全边际",
    ),
    max_insights=7,
    risk_keywords=("风险", "不确定", "债务", "亏损", "下滑", "压力", "挑战"),
    default_risks=(
        "财务数据存在滞后性",
        "估值模型基于历史数据和假设",
        "行业和宏观环境变化可能影响基本面",
    ),
    bullish_keywords=BULLISH_WORDS,
    bearish_keywords=BEARISH_WORDS,
)

VALUATION = ExtractionProfile(
    name="valuation",
    score_labels=("估值评分", "价值评分", "综合评分"),
    score_rules=(
        KeywordRule(("低估",), 25),
        KeywordRule(("安全边际", "投资价值"), 15),
        KeywordRule(("估值偏低",), 10),
        KeywordRule(("增长潜力",), 10),
        KeywordRule(("高估",), -25),
        KeywordRule(("估值偏高",), -15),
        KeywordRule(("泡沫", "风险较大"), -10),
        KeywordRule(("估值合理",), 5),
    ),
    recommendation_ladder=(
        RecommendationRule(("强烈低估", "显著低估", "强烈推荐买入"), Recommendation.STRONG_BUY),
        RecommendationRule(("严重高估", "泡沫明显", "强烈卖出"), Recommendation.STRONG_SELL),
        RecommendationRule(("建议买入", "低估", "买入"), Recommendation.BUY),
        RecommendationRule(("建议卖出", "高估", "卖出"), Recommendation.SELL),
    ),
    confidence_base=0.6,
    confidence_ceiling=0.9,
    rigor_rules=_each(("估值", "PE", "PB", "DCF", "行业对比", "目标价"), 0.05),
    insight_keywords=("估值", "PE", "PB", "DCF", "目标价", "安全边际", "内在价值", "行业对比", "溢价", "折价"),
    max_insights=6,
    risk_keywords=("风险", "不确定", "高估", "泡沫", "假设", "波动"),
    default_risks=(
        "估值模型依赖关键假设",
        "市场情绪可能导致价格长期偏离内在价值",
        "可比公司选择影响相对估值结论",
    ),
    bullish_keywords=BULLISH_WORDS,
    bearish_keywords=BEARISH_WORDS,
)

QUANTITATIVE = ExtractionProfile(
    name="quantitative",
    score_labels=("量化评分", "模型评分", "综合评分"),
    score_rules=(
        KeywordRule(("金叉",), 10),
        KeywordRule(("超卖",), 8),
        KeywordRule(("放量上涨",), 8),
        KeywordRule(("死叉",), -10),
        KeywordRule(("超买",), -8),
        KeywordRule(("破位",), -8),
    ),
    recommendation_ladder=DEFAULT_LADDER,
    confidence_base=0.5,
    confidence_ceiling=0.95,
    confidence_floor=0.1,
    input_bonuses=((DATASET_HISTORICAL, 0.15), (DATASET_FINANCIAL, 0.15), (PREVIOUS_RESULTS, 0.1)),
    rigor_rules=(
        KeywordRule(("具体数值", "计算"), 0.1),
        KeywordRule(("统计", "量化"), 0.1),
        KeywordRule(("回测", "历史"), 0.05),
    ),
    extreme_score_penalty=0.1,
    insight_keywords=(
        "技术指标", "RSI", "MACD", "布林带", "估值", "PE", "PB", "盈利增长",
        "统计", "量化", "模型", "回测", "风险", "收益", "概率",
    ),
    max_insights=6,
    risk_keywords=("风险", "局限", "假设", "不确定", "波动", "回撤", "失效"),
    default_risks=(
        "模型基于历史数据，未来表现可能不同",
        "市场极端情况下模型可能失效",
        "量化指标存在滞后性",
    ),
    bullish_keywords=BULLISH_WORDS,
    bearish_keywords=BEARISH_WORDS,
)

MACRO = ExtractionProfile(
    name="macro",
    score_labels=("宏观环境评分", "宏观评分", "综合评分"),
    score_rules=(
        KeywordRule(("宽松",), 10),
        KeywordRule(("复苏",), 8),
        KeywordRule(("稳增长",), 5),
        KeywordRule(("收紧",), -10),
        KeywordRule(("衰退",), -10),
        KeywordRule(("通胀压力",), -8),
    ),
    recommendation_ladder=DEFAULT_LADDER,
    confidence_base=0.6,
    confidence_ceiling=0.85,
    confidence_floor=0.3,
    confidence_scale=0.9,
    input_bonuses=((DATASET_NEWS, 0.15), (DATASET_FINANCIAL, 0.1), (PREVIOUS_RESULTS, 0.1)),
    rigor_rules=(
        KeywordRule(("政策", "央行"), 0.1),
        KeywordRule(("经济数据", "宏观指标"), 0.1),
        KeywordRule(("前瞻", "预期"), 0.05),
        KeywordRule(("风险", "不确定"), 0.05),
    ),
    insight_keywords=(
        "政策", "央行", "利率", "流动性", "通胀", "经济周期", "GDP", "就业", "消费",
        "投资", "汇率", "贸易", "监管", "改革", "趋势", "预期", "风险偏好", "资产配置",
    ),
    max_insights=7,
    risk_keywords=("风险", "不确定", "波动", "冲击", "压力", "挑战", "变数", "调整", "转换", "影响"),
    default_risks=(
        "政策不确定性可能带来市场波动",
        "宏观经济指标变化存在滞后性",
        "国际环境变化可能影响国内政策",
    ),
    bullish_keywords=BULLISH_WORDS,
    bearish_keywords=BEARISH_WORDS,
)

POLICY = ExtractionProfile(
    name="policy",
    score_labels=("政策支持度", "政策评分"),
    score_rules=(),
    recommendation_ladder=DEFAULT_LADDER,
    confidence_base=0.5,
    confidence_ceiling=1.0,
    input_size_bonuses=((DATASET_NEWS, ((20, 0.3), (10, 0.2), (5, 0.1))),),
    length_bonuses=((2000, 0.2), (1000, 0.1)),
    insight_keywords=("政策", "利好", "支持", "规划", "监管", "行业", "板块", "概念"),
    max_insights=6,
    risk_keywords=("风险", "限制", "收紧", "不确定", "监管"),
    default_risks=("政策落地节奏存在不确定性", "政策解读可能与实际执行存在偏差"),
    bullish_keywords=BULLISH_WORDS,
    bearish_keywords=BEARISH_WORDS,
    sentiment_threshold=3,
)

PROFILES = {
    profile.name: profile
    for profile in (COMPREHENSIVE, TRADING_STRATEGY, FUNDAMENTAL, VALUATION, QUANTITATIVE, MACRO, POLICY)
}
