"""Line-based impact, sector and concept extraction for policy-style analyses."""

from __future__ import annotations

import re
from typing import Dict, List, Mapping, Sequence

from ..types import ImpactCategory, ImpactRecord, ImpactType, LevelSignal, Timeframe
from ..utils import clamp

POLARITY_KEYWORDS = (
    (ImpactType.POSITIVE, ("利好", "支持", "促进", "推进", "加强", "提升", "鼓励", "优惠", "激励", "补贴")),
    (ImpactType.NEGATIVE, ("限制", "禁止", "取消", "收紧", "管制", "减少", "压缩", "防范", "整治", "规范")),
    (ImpactType.NEUTRAL, ("调整", "优化", "完善", "改革", "改进", "推动", "建立", "统一", "协调")),
)

CATEGORY_KEYWORDS = (
    ("货币", ImpactCategory.MONETARY),
    ("财政", ImpactCategory.FISCAL),
    ("监管", ImpactCategory.REGULATORY),
    ("产业", ImpactCategory.INDUSTRIAL),
    ("贸易", ImpactCategory.TRADE),
    ("环保", ImpactCategory.ENVIRONMENTAL),
)

TIMEFRAME_KEYWORDS = (
    (("立即", "马上", "快速"), Timeframe.IMMEDIATE),
    (("短期", "近期"), Timeframe.SHORT_TERM),
    (("长期", "未来"), Timeframe.LONG_TERM),
)

SEVERITY_KEYWORDS = ("大力", "全面", "重点", "突出", "加快", "加大")
BASE_SEVERITY = 5
MAX_IMPACTS_PER_TYPE = 5

SECTOR_KEYWORDS: Dict[str, tuple[str, ...]] = {
    "银行": ("银行", "商业银行", "城商行", "农商行"),
    "保险": ("保险", "人寿保险", "财产保险"),
    "证券": ("证券", "券商", "投资银行"),
    "新能源": ("太阳能", "风能", "新能源", "清洁能源"),
    "医药": ("医药", "制药", "生物医药", "中医药"),
    "科技": ("科技", "人工智能", "大数据", "云计算"),
    "制造": ("制造", "制造业", "工业", "机械"),
    "消费": ("消费", "零售", "商贸"),
    "地产": ("房地产", "地产", "建筑"),
    "农业": ("农业", "农产品", "种植业"),
}

CONCEPT_KEYWORDS: Dict[str, tuple[str, ...]] = {
    "人工智能": ("AI", "人工智能", "机器学习"),
    "新能源汽车": ("电动汽车", "新能源车", "新能源汽车"),
    "碳中和": ("碳中和", "碳达峰", "减排"),
    "数字经济": ("数字化", "数字经济", "数字转型"),
    "半导体": ("芯片", "半导体", "集成电路"),
    "生物医药": ("生物医药", "基因治疗", "细胞治疗"),
    "新基建": ("新基建", "5G", "数据中心"),
    "军工": ("军工", "国防科技", "军民融合"),
}

FAVORABLE_TRIGGERS = ("支持", "鼓励", "促进", "推进", "加强", "优惠", "补贴", "利好")
FAVORABLE_SECTORS: Dict[str, tuple[str, ...]] = {
    "新能源": ("太阳能", "风能", "水能", "清洁能源", "可再生能源", "新能源汽车"),
    "金融": ("银行", "保险", "证券", "基金", "信托", "金融服务"),
    "科技": ("人工智能", "大数据", "云计算", "半导体", "光伏", "芯片"),
    "医药": ("生物医药", "中医药", "医疗器械", "医疗服务"),
    "基建": ("交通基建", "水利工程", "新基建", "城市建设"),
    "消费": ("零售", "教育", "旅游", "文化娱乐", "体育"),
    "制造业": ("高端制造", "智能制造", "制造业升级"),
    "农业": ("现代农业", "智慧农业", "乡村振兴"),
}

UNFAVORABLE_TRIGGERS = ("限制", "禁止", "取消", "收紧", "管制", "减少", "规范", "整治", "打击")
UNFAVORABLE_SECTORS: Dict[str, tuple[str, ...]] = {
    "传统能源": ("煤炭", "石油", "天然气", "传统能源"),
    "高耗能行业": ("钢铁", "有色金属", "化工", "建材"),
    "教育培训": ("在线教育", "K12教育", "学科培训"),
    "房地产": ("房地产开发", "物业管理"),
    "互联网平台": ("平台经济", "网络游戏", "社交平台"),
    "金融风险": ("小贷公司", "P2P", "理财产品"),
}

HOT_CONCEPT_TRIGGERS = ("规划", "方案", "政策", "措施", "通知", "指导意见", "实施细则")
HOT_CONCEPTS: Dict[str, tuple[str, ...]] = {
    "人工智能": ("AI", "人工智能", "机器学习", "深度学习", "智能算法"),
    "新能源汽车": ("电动汽车", "新能源车", "智能汽车", "新能源汽车"),
    "碳中和": ("碳中和", "碳达峰", "减排", "碳交易"),
    "数字经济": ("数字化", "数字经济", "数字转型", "智数服务"),
    "半导体": ("芯片", "半导体", "集成电路", "芯片设计"),
    "生物医药": ("生物医药", "基因治疗", "细胞治疗", "创新药"),
    "新基建": ("新基建", "5G", "数据中心", "人工智能基础设施"),
    "乡村振兴": ("乡村振兴", "农业现代化", "农村改革"),
    "养老产业": ("养老", "人口老龄化", "养老服务"),
    "军工": ("军工", "国防科技", "军民融合"),
    "共同富裕": ("共同富裕", "收入分配", "社会保障"),
}

SUPPORT_BOOST_WORDS = ("利好", "支持", "促进", "推进", "鼓励", "优惠", "提升")
SUPPORT_DRAG_WORDS = ("限制", "禁止", "收紧", "减少", "规范", "打击")

MAX_LEVEL = 10
MAX_REASONS = 3


def _lines(text: str) -> List[str]:
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def _contains(line: str, keyword: str) -> bool:
    return keyword.lower() in line.lower()


def _matched_names(line: str, table: Mapping[str, Sequence[str]]) -> List[str]:
    return [name for name, keywords in table.items() if any(_contains(line, kw) for kw in keywords)]


def _polarities(line: str) -> List[ImpactType]:
    return [
        impact_type
        for impact_type, keywords in POLARITY_KEYWORDS
        if any(keyword in line for keyword in keywords)
    ]


def _category(line: str) -> ImpactCategory:
    for keyword, category in CATEGORY_KEYWORDS:
        if keyword in line:
            return category
    return ImpactCategory.OTHER


def _timeframe(line: str) -> Timeframe:
    for keywords, timeframe in TIMEFRAME_KEYWORDS:
        if any(keyword in line for keyword in keywords):
            return timeframe
    return Timeframe.MEDIUM_TERM


def _severity(line: str) -> int:
    boosts = sum(1 for keyword in SEVERITY_KEYWORDS if keyword in line)
    return min(MAX_LEVEL, BASE_SEVERITY + 2 * boosts)


def extract_impacts(text: str) -> List[ImpactRecord]:
    """One ImpactRecord per polarity found on a line that names a sector or concept.

    A line with both favorable and restrictive wording yields a record of
    each type. At most ``MAX_IMPACTS_PER_TYPE`` records are kept per type.
    """
    impacts: List[ImpactRecord] = []
    per_type: Dict[ImpactType, int] = {}
    for line in _lines(text):
        impact_types = _polarities(line)
        if not impact_types:
            continue
        sectors = _matched_names(line, SECTOR_KEYWORDS)
        concepts = _matched_names(line, CONCEPT_KEYWORDS)
        if not sectors and not concepts:
            continue
        for impact_type in impact_types:
            if per_type.get(impact_type, 0) >= MAX_IMPACTS_PER_TYPE:
                continue
            per_type[impact_type] = per_type.get(impact_type, 0) + 1
            impacts.append(
                ImpactRecord(
                    type=impact_type,
                    category=_category(line),
                    description=line[:200],
                    severity=_severity(line),
                    affected_sectors=tuple(sectors),
                    affected_concepts=tuple(concepts),
                    timeframe=_timeframe(line),
                )
            )
    return impacts


def aggregate_levels(
    text: str,
    triggers: Sequence[str],
    groups: Mapping[str, Sequence[str]],
    intensity_keywords: Sequence[str],
    top_n: int,
    base_level: int = 5,
    intensity_bonus: int = 2,
) -> List[LevelSignal]:
    """Accumulates a level per group across every line containing a trigger.

    A group starts at ``base_level`` on its first hit, gains one point per
    matched keyword and ``intensity_bonus`` when the line carries an intensity
    keyword, capped at 10. Highest levels first, ties in table order.
    """
    levels: Dict[str, int] = {}
    reasons: Dict[str, List[str]] = {}
    for line in _lines(text):
        if not any(trigger in line for trigger in triggers):
            continue
        intense = any(keyword in line for keyword in intensity_keywords)
        for name, keywords in groups.items():
            matched = [kw for kw in keywords if _contains(line, kw)]
            if not matched:
                continue
            level = levels.get(name, base_level) + len(matched)
            if intense:
                level += intensity_bonus
            levels[name] = min(MAX_LEVEL, level)
            bucket = reasons.setdefault(name, [])
            reason = line[:120]
            if reason not in bucket and len(bucket) < MAX_REASONS:
                bucket.append(reason)

    order = {name: index for index, name in enumerate(groups)}
    ranked = sorted(levels, key=lambda name: (-levels[name], order[name]))
    return [LevelSignal(name=name, level=levels[name], reasons=tuple(reasons[name])) for name in ranked[:top_n]]


def favorable_sectors(text: str) -> List[LevelSignal]:
    return aggregate_levels(text, FAVORABLE_TRIGGERS, FAVORABLE_SECTORS, ("大力", "全面", "重点"), top_n=8)


def unfavorable_sectors(text: str) -> List[LevelSignal]:
    return aggregate_levels(text, UNFAVORABLE_TRIGGERS, UNFAVORABLE_SECTORS, ("严厉", "全面", "重点"), top_n=6)


def hot_concepts(text: str) -> List[LevelSignal]:
    return aggregate_levels(text, HOT_CONCEPT_TRIGGERS, HOT_CONCEPTS, ("重点", "关键", "核心"), top_n=10)


def extract_policy_score(
    text: str,
    label: str = "政策支持度",
    boost_words: Sequence[str] = SUPPORT_BOOST_WORDS,
    drag_words: Sequence[str] = SUPPORT_DRAG_WORDS,
    use_mean: bool = True,
) -> int:
    """Score in [0, 100] for a labeled policy dimension.

    Tries ``<label>: NN%``, then (with ``use_mean``) the mean of every
    ``NN%``/``NN分`` in 0-100, then a keyword count heuristic around 50.
    """
    text = text or ""
    direct = re.search(re.escape(label) + r"[\s*]*[:：][\s*]*(\d{1,3})\s*[%分]?", text)
    if direct:
        return int(clamp(int(direct.group(1)), 0, 100))

    if use_mean:
        values = [int(v) for v in re.findall(r"(\d{1,3})\s*[%分](?!钟)", text) if 0 <= int(v) <= 100]
        if values:
            return int(round(sum(values) / len(values)))

    score = 50 + 8 * sum(text.count(word) for word in boost_words) - 6 * sum(
        text.count(word) for word in drag_words
    )
    return int(clamp(score, 0, 100))


def extract_policy_risk_score(text: str) -> int:
    return extract_policy_score(
        text,
        label="政策风险",
        boost_words=SUPPORT_DRAG_WORDS,
        drag_words=SUPPORT_BOOST_WORDS,
        use_mean=False,
    )
