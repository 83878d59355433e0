"""Shared data model for agents, pipelines and decision synthesis."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Mapping

from .utils import utc_now_iso


class Recommendation(str, Enum):
    STRONG_BUY = "strong_buy"
    BUY = "buy"
    HOLD = "hold"
    SELL = "sell"
    STRONG_SELL = "strong_sell"


class AgentStatus(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    ERROR = "error"


class Sentiment(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class ImpactType(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class ImpactCategory(str, Enum):
    MONETARY = "monetary"
    FISCAL = "fiscal"
    REGULATORY = "regulatory"
    INDUSTRIAL = "industrial"
    TRADE = "trade"
    ENVIRONMENTAL = "environmental"
    OTHER = "other"


class Timeframe(str, Enum):
    IMMEDIATE = "immediate"
    SHORT_TERM = "short_term"
    MEDIUM_TERM = "medium_term"
    LONG_TERM = "long_term"


# Recognized PipelineContext.metadata keys. Values are always strings.
META_SESSION_ID = "session_id"
META_SUBJECT_ID = "subject_id"
META_ANALYSIS_TYPE = "analysis_type"
META_STAGE = "stage"
META_TRIGGER = "trigger"
METADATA_KEYS = frozenset(
    {META_SESSION_ID, META_SUBJECT_ID, META_ANALYSIS_TYPE, META_STAGE, META_TRIGGER}
)

# Well-known dataset names carried in PipelineContext.datasets.
DATASET_HISTORICAL = "historical_data"
DATASET_FINANCIAL = "financial_data"
DATASET_NEWS = "news_summaries"


@dataclass(frozen=True)
class TimeRange:
    start: str
    end: str

    @classmethod
    def last_days(cls, days: int, today: date | None = None) -> "TimeRange":
        end = today or date.today()
        return cls(start=(end - timedelta(days=days)).isoformat(), end=end.isoformat())


@dataclass(frozen=True)
class AgentResult:
    agent_name: str
    agent_type: str
    analysis: str
    score: int | None
    recommendation: Recommendation | None
    confidence: float
    key_insights: tuple[str, ...] = ()
    risks: tuple[str, ...] = ()
    supporting_data: Mapping[str, Any] = field(default_factory=dict)
    sentiment: Sentiment | None = None
    timestamp: str = field(default_factory=utc_now_iso)
    processing_time_ms: int = 0

    def __post_init__(self) -> None:
        if self.score is not None and not 0 <= self.score <= 100:
            raise ValueError(f"score out of range: {self.score}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence out of range: {self.confidence}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PipelineContext:
    """Input handed to one agent invocation.

    ``metadata`` only accepts the keys in ``METADATA_KEYS``; ``datasets`` is
    keyed by dataset name (see the ``DATASET_*`` constants) and holds whatever
    upstream data collaborators supplied. ``previous_results`` grows as stages
    complete and is owned by a single pipeline run.
    """

    subject_id: str
    display_name: str | None = None
    time_range: TimeRange | None = None
    datasets: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, str] = field(default_factory=dict)
    previous_results: List[AgentResult] = field(default_factory=list)

    def __post_init__(self) -> None:
        unknown = set(self.metadata) - METADATA_KEYS
        if unknown:
            raise ValueError(f"Unknown metadata keys: {', '.join(sorted(unknown))}")

    def has_dataset(self, name: str) -> bool:
        return self.datasets.get(name) not in (None, "", [], {})

    def derive(self, **changes: Any) -> "PipelineContext":
        """Copy with independent containers, so the original is never mutated."""
        changes.setdefault("datasets", dict(self.datasets))
        changes.setdefault("metadata", dict(self.metadata))
        changes.setdefault("previous_results", list(self.previous_results))
        return replace(self, **changes)


@dataclass(frozen=True)
class ImpactRecord:
    type: ImpactType
    category: ImpactCategory
    description: str
    severity: int
    affected_sectors: tuple[str, ...] = ()
    affected_concepts: tuple[str, ...] = ()
    timeframe: Timeframe = Timeframe.MEDIUM_TERM


@dataclass(frozen=True)
class LevelSignal:
    """Aggregated heat/support/risk level for one sector or concept."""

    name: str
    level: int
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class ComponentBreakdown:
    agent_name: str
    score: int | None
    recommendation: Recommendation | None
    confidence: float
    weight: float


@dataclass(frozen=True)
class FusedDecision:
    score: int
    recommendation: Recommendation
    confidence: float
    key_insights: tuple[str, ...]
    risks: tuple[str, ...]
    breakdown: Dict[str, ComponentBreakdown]
    supporting_data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PipelineResult:
    session_id: str
    subject_id: str
    results: tuple[AgentResult, ...]
    final_decision: FusedDecision
    total_processing_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SubjectFailure:
    subject_id: str
    error: str
    error_type: str


@dataclass(frozen=True)
class BatchSummary:
    total: int
    successful: int
    failed: int


@dataclass
class BatchResult:
    succeeded: Dict[str, PipelineResult]
    failures: List[SubjectFailure]
    summary: BatchSummary


@dataclass
class ExecutionRecord:
    """Per-invocation record handed to the persistence sink."""

    session_id: str
    subject_id: str
    agent_name: str
    agent_type: str
    analysis_type: str
    model: str
    input_prompt: str
    raw_response: str | None
    result: AgentResult | None
    status: AgentStatus
    start_time: str
    end_time: str
    error: str | None = None
