"""Prompt builders."""

from __future__ import annotations

from typing import Any, Iterable

from .types import AgentResult, PipelineContext
from .utils import json_dumps


class _SafeDict(dict):
    def __missing__(self, key):
        return "{" + key + "}"


COMPREHENSIVE_TEMPLATE = (
    "请对股票 {subject} 进行全面分析（分析区间：{time_range}）。\n"
    "覆盖技术面、基本面、资金面和市场情绪，给出0-100分的综合评分、"
    "明确的投资建议（强烈买入/买入/持有/卖出/强烈卖出）、关键洞察和主要风险。\n\n"
    "{datasets}"
)

TRADING_STRATEGY_TEMPLATE = (
    "基于以下前序分析结论，为股票 {subject} 制定交易策略（分析区间：{time_range}）。\n"
    "给出策略评分、操作建议、仓位、入场区间、止损与目标价。\n\n"
    "前序分析：\n{previous_results}\n\n{datasets}"
)

FUNDAMENTAL_TEMPLATE = (
    "请基于财务数据对股票 {subject} 做基本面分析，涵盖盈利能力、偿债能力、营运能力、"
    "现金流与估值，给出基本面评分（0-100）和投资建议。\n\n{datasets}"
)

VALUATION_TEMPLATE = (
    "请对股票 {subject} 做估值分析（PE、PB、DCF、行业对比），判断高估或低估，"
    "给出估值评分（0-100）、目标价和投资建议。\n\n{datasets}"
)

QUANTITATIVE_TEMPLATE = (
    "请用量化方法分析股票 {subject}（分析区间：{time_range}），结合技术指标、统计特征和回测结论，"
    "给出量化评分（0-100）、具体数值依据和交易建议。\n\n{previous_results}\n\n{datasets}"
)

MACRO_TEMPLATE = (
    "请从宏观经济角度分析当前环境对股票 {subject} 的影响，涵盖货币政策、财政政策、"
    "经济周期和流动性，给出宏观环境评分（0-100）和配置建议。\n\n{previous_results}\n\n{datasets}"
)

POLICY_TEMPLATE = (
    "请分析以下政策新闻对市场及股票 {subject} 的影响。逐行列出受益与受损的行业和概念，"
    "给出政策支持度（0-100%）、政策风险（0-100%）和整体情绪判断。\n\n{datasets}"
)


def format_time_range(context: PipelineContext) -> str:
    if context.time_range is None:
        return "未指定"
    return f"{context.time_range.start} 至 {context.time_range.end}"


def format_previous_results(results: Iterable[AgentResult]) -> str:
    lines = []
    for result in results:
        recommendation = result.recommendation.value if result.recommendation else "n/a"
        lines.append(
            f"- {result.agent_name}: 评分 {result.score if result.score is not None else 'n/a'}，"
            f"建议 {recommendation}，置信度 {result.confidence:.2f}"
        )
        lines.extend(f"  * {insight}" for insight in result.key_insights[:3])
    return "\n".join(lines) if lines else "（无）"


def format_datasets(datasets: dict[str, Any]) -> str:
    if not datasets:
        return "（未提供外部数据）"
    return "\n\n".join(f"## {name}\n{json_dumps(value) if not isinstance(value, str) else value}"
                       for name, value in sorted(datasets.items()))


def render_prompt(template: str, context: PipelineContext) -> str:
    subject = context.subject_id
    if context.display_name:
        subject = f"{context.display_name}（{context.subject_id}）"
    vars_map = _SafeDict(
        subject=subject,
        time_range=format_time_range(context),
        previous_results=format_previous_results(context.previous_results),
        datasets=format_datasets(context.datasets),
    )
    return template.format_map(vars_map)
