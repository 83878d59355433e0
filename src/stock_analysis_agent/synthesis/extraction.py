"""Deterministic extraction of structured signals from model prose.

None of these functions raise on unexpected text: every one of them falls back
to a fixed default (score 50, HOLD, the profile's base confidence, the
profile's default risks).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Mapping

from ..types import Recommendation, Sentiment
from ..utils import clamp
from .profiles import ExtractionProfile

DEFAULT_SCORE = 50

_SENTENCE_SPLIT = re.compile(r"[。！？]")
_NUMBER = r"(\d+(?:\.\d+)?)"
_BARE_POINTS = re.compile(_NUMBER + r"\s*分(?!钟)")
_OUT_OF_100 = re.compile(_NUMBER + r"\s*/\s*100")
_EXPLICIT_CONFIDENCE = (
    (re.compile(r"(?:置信度|可信度)[\s*]*[:：][\s*]*(\d+(?:\.\d+)?)\s*%"), 100.0),
    (re.compile(r"(?:置信度|可信度)[\s*]*[:：][\s*]*(\d*\.\d+|[01])(?![\d%])"), 1.0),
)


@dataclass(frozen=True)
class Extraction:
    score: int
    recommendation: Recommendation
    confidence: float
    sentiment: Sentiment
    key_insights: tuple[str, ...]
    risks: tuple[str, ...]


def _labeled_pattern(label: str) -> re.Pattern:
    return re.compile(re.escape(label) + r"[\s*]*[:：]?[\s*]*" + _NUMBER)


def _to_score(raw: str) -> int:
    return int(clamp(round(float(raw)), 0, 100))


def extract_score(text: str, profile: ExtractionProfile) -> int:
    """Labeled score, then the first ``NN分`` or ``NN/100``, then keyword heuristic."""
    text = text or ""
    for label in profile.score_labels:
        match = _labeled_pattern(label).search(text)
        if match:
            return _to_score(match.group(1))

    for pattern in (_BARE_POINTS, _OUT_OF_100):
        match = pattern.search(text)
        if match:
            return _to_score(match.group(1))

    return heuristic_score(text, profile)


def heuristic_score(text: str, profile: ExtractionProfile) -> int:
    haystack = (text or "").lower()
    score = float(DEFAULT_SCORE)
    for rule in profile.score_rules:
        if rule.matches(haystack):
            score += rule.delta
    return int(clamp(round(score), 0, 100))


def extract_recommendation(text: str, profile: ExtractionProfile) -> Recommendation:
    haystack = (text or "").lower()
    for rule in profile.recommendation_ladder:
        if any(keyword.lower() in haystack for keyword in rule.keywords):
            return rule.recommendation
    return Recommendation.HOLD


def _input_present(value: Any) -> bool:
    return value not in (None, "", [], {}, ())


def _size_of(value: Any) -> int:
    try:
        return len(value)
    except TypeError:
        return 1 if _input_present(value) else 0


def extract_confidence(
    text: str,
    profile: ExtractionProfile,
    inputs: Mapping[str, Any] | None = None,
    score: int | None = None,
) -> float:
    """Confidence in [floor, ceiling] of the profile.

    An explicit ``置信度: 0.8`` / ``置信度：80%`` in the text wins; otherwise the
    profile base plus bonuses for present inputs and rigor keywords.
    """
    text = text or ""
    inputs = inputs or {}

    for pattern, divisor in _EXPLICIT_CONFIDENCE:
        match = pattern.search(text)
        if match:
            value = float(match.group(1)) / divisor
            return round(clamp(value, 0.0, profile.confidence_ceiling), 4)

    haystack = text.lower()
    confidence = profile.confidence_base
    for name, bonus in profile.input_bonuses:
        if _input_present(inputs.get(name)):
            confidence += bonus
    for name, thresholds in profile.input_size_bonuses:
        size = _size_of(inputs.get(name))
        for minimum, bonus in thresholds:
            if size >= minimum:
                confidence += bonus
                break
    for minimum, bonus in profile.length_bonuses:
        if len(text) > minimum:
            confidence += bonus
            break
    for rule in profile.rigor_rules:
        if rule.matches(haystack):
            confidence += rule.delta
    if profile.extreme_score_penalty and score is not None and (score > 80 or score < 20):
        confidence -= profile.extreme_score_penalty

    confidence *= profile.confidence_scale
    confidence = clamp(confidence, profile.confidence_floor, profile.confidence_ceiling)
    return round(clamp(confidence, 0.0, 1.0), 4)


def split_sentences(text: str) -> List[str]:
    return [part.strip() for part in _SENTENCE_SPLIT.split(text or "") if part.strip()]


def extract_sentences(
    text: str,
    keywords: tuple[str, ...],
    min_length: int,
    limit: int,
) -> List[str]:
    """Sentences longer than ``min_length`` containing any keyword, in text order."""
    lowered = [keyword.lower() for keyword in keywords]
    selected: List[str] = []
    for sentence in split_sentences(text):
        if len(selected) >= limit:
            break
        if len(sentence) <= min_length:
            continue
        haystack = sentence.lower()
        if any(keyword in haystack for keyword in lowered):
            selected.append(sentence)
    return selected


def extract_insights(text: str, profile: ExtractionProfile) -> List[str]:
    return extract_sentences(
        text, profile.insight_keywords, profile.insight_min_length, profile.max_insights
    )


def extract_risks(text: str, profile: ExtractionProfile) -> List[str]:
    risks = extract_sentences(text, profile.risk_keywords, profile.risk_min_length, profile.max_risks)
    if not risks:
        risks = list(profile.default_risks[: profile.max_risks])
    return risks


def extract_sentiment(text: str, profile: ExtractionProfile) -> Sentiment:
    haystack = (text or "").lower()
    bullish = sum(haystack.count(keyword.lower()) for keyword in profile.bullish_keywords)
    bearish = sum(haystack.count(keyword.lower()) for keyword in profile.bearish_keywords)
    if bullish > bearish and bullish > profile.sentiment_threshold:
        return Sentiment.BULLISH
    if bearish > bullish and bearish > profile.sentiment_threshold:
        return Sentiment.BEARISH
    return Sentiment.NEUTRAL


def extract_signals(
    text: str,
    profile: ExtractionProfile,
    inputs: Mapping[str, Any] | None = None,
) -> Extraction:
    score = extract_score(text, profile)
    return Extraction(
        score=score,
        recommendation=extract_recommendation(text, profile),
        confidence=extract_confidence(text, profile, inputs, score=score),
        sentiment=extract_sentiment(text, profile),
        key_insights=tuple(extract_insights(text, profile)),
        risks=tuple(extract_risks(text, profile)),
    )
