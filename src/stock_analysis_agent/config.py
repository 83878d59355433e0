"""Configuration loading and defaults."""

from __future__ import annotations

import os
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml

from .llm.types import GatewaySettings

DEFAULT_SETTINGS: Dict[str, Any] = {
    "database": {
        "path": "data/stock_analysis_agent.db",
    },
    "llm": {
        "primary_provider": "dashscope",
        "fallback_providers": [],
        "enable_fallback": True,
        "max_retries": 3,
        "retry_delay_seconds": 1.0,
        "batch_concurrency": 5,
    },
    "agents": {
        "defaults": {
            "model": "qwen-plus",
            "temperature": 0.7,
            "max_tokens": 2000,
            "timeout_seconds": 90,
            "retry_count": 1,
            "system_prompt": "",
        },
        "comprehensive_analyst": {"max_tokens": 3000},
        "trading_strategist": {"temperature": 0.6},
        "fundamental_analyst": {
            "model": "qwen-max",
            "temperature": 0.6,
            "max_tokens": 3000,
            "timeout_seconds": 60,
        },
        "valuation_analyst": {"temperature": 0.5, "max_tokens": 2500},
        "quantitative_trader": {"temperature": 0.4, "max_tokens": 2500},
        "macro_economist": {"max_tokens": 2500, "timeout_seconds": 45},
        "policy_analyst": {
            "model": "qwen-max",
            "temperature": 0.3,
            "max_tokens": 4000,
            "timeout_seconds": 120,
        },
    },
    "pipeline": {
        "stages": [
            {"agent": "comprehensive_analyst", "weight": 0.7, "analysis_type": "comprehensive"},
            {"agent": "trading_strategist", "weight": 0.3, "analysis_type": "trading_strategy"},
        ],
        "batch_concurrency": 3,
        "session_prefix": "session_",
    },
    "fusion": {
        "disagreement_penalty": 0.15,
        "max_insights": 8,
        "max_risks": 5,
        "default_score": 50,
    },
}

# Environment variable -> (llm key, parser)
_ENV_OVERRIDES = {
    "LLM_PRIMARY_PROVIDER": ("primary_provider", str),
    "LLM_FALLBACK_PROVIDERS": (
        "fallback_providers",
        lambda raw: [p.strip() for p in raw.split(",") if p.strip()],
    ),
    "LLM_ENABLE_FALLBACK": ("enable_fallback", lambda raw: raw.strip().lower() != "false"),
    "LLM_MAX_RETRIES": ("max_retries", int),
    "LLM_RETRY_DELAY": ("retry_delay_seconds", lambda raw: int(raw) / 1000.0),
}


class ConfigError(ValueError):
    """Settings contain a value the application cannot run with."""


@dataclass(frozen=True)
class AgentSettings:
    model: str
    temperature: float
    max_tokens: int
    timeout_seconds: float
    retry_count: int
    system_prompt: str = ""


@dataclass(frozen=True)
class FusionSettings:
    disagreement_penalty: float = 0.15
    max_insights: int = 8
    max_risks: int = 5
    default_score: int = 50


@dataclass(frozen=True)
class StageSpec:
    agent: str
    weight: float
    analysis_type: str


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_env_overrides(config: Dict[str, Any], environ: Mapping[str, str] | None = None) -> Dict[str, Any]:
    env = os.environ if environ is None else environ
    merged = deepcopy(config)
    llm_cfg = merged.setdefault("llm", {})
    for var, (key, parse) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        try:
            llm_cfg[key] = parse(raw)
        except ValueError as exc:
            raise ConfigError(f"Invalid value for {var}: {raw!r}") from exc
    return merged


def load_settings(
    settings_path: str = "config/settings.yaml",
    environ: Mapping[str, str] | None = None,
) -> Dict[str, Any]:
    """Loads settings.yaml, merges it onto defaults, then applies LLM_* env vars."""
    merged = deepcopy(DEFAULT_SETTINGS)
    config_path = Path(settings_path)
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as f:
            user_cfg = yaml.safe_load(f) or {}
        merged = _deep_merge(merged, user_cfg)
    return apply_env_overrides(merged, environ)


def gateway_settings(config: Dict[str, Any]) -> GatewaySettings:
    llm_cfg = config.get("llm", {})
    fallbacks = llm_cfg.get("fallback_providers") or []
    if isinstance(fallbacks, str):
        fallbacks = [p.strip() for p in fallbacks.split(",") if p.strip()]
    settings = GatewaySettings(
        primary_provider=str(llm_cfg.get("primary_provider", "dashscope")),
        fallback_providers=tuple(str(p) for p in fallbacks),
        enable_fallback=bool(llm_cfg.get("enable_fallback", True)),
        max_retries=int(llm_cfg.get("max_retries", 3)),
        retry_delay_seconds=float(llm_cfg.get("retry_delay_seconds", 1.0)),
        batch_concurrency=int(llm_cfg.get("batch_concurrency", 5)),
    )
    if settings.max_retries < 1:
        raise ConfigError("llm.max_retries must be at least 1")
    if settings.retry_delay_seconds < 0:
        raise ConfigError("llm.retry_delay_seconds must not be negative")
    if settings.batch_concurrency < 1:
        raise ConfigError("llm.batch_concurrency must be at least 1")
    return settings


def agent_settings(config: Dict[str, Any], agent_key: str) -> AgentSettings:
    agents_cfg = config.get("agents", {})
    merged = _deep_merge(
        DEFAULT_SETTINGS["agents"]["defaults"],
        _deep_merge(agents_cfg.get("defaults", {}), agents_cfg.get(agent_key, {})),
    )
    settings = AgentSettings(
        model=str(merged["model"]),
        temperature=float(merged["temperature"]),
        max_tokens=int(merged["max_tokens"]),
        timeout_seconds=float(merged["timeout_seconds"]),
        retry_count=int(merged["retry_count"]),
        system_prompt=str(merged.get("system_prompt") or ""),
    )
    if settings.retry_count < 1:
        raise ConfigError(f"agents.{agent_key}.retry_count must be at least 1")
    if settings.timeout_seconds <= 0:
        raise ConfigError(f"agents.{agent_key}.timeout_seconds must be positive")
    return settings


def fusion_settings(config: Dict[str, Any]) -> FusionSettings:
    fusion_cfg = config.get("fusion", {})
    settings = FusionSettings(
        disagreement_penalty=float(fusion_cfg.get("disagreement_penalty", 0.15)),
        max_insights=int(fusion_cfg.get("max_insights", 8)),
        max_risks=int(fusion_cfg.get("max_risks", 5)),
        default_score=int(fusion_cfg.get("default_score", 50)),
    )
    if not 0.0 <= settings.disagreement_penalty <= 1.0:
        raise ConfigError("fusion.disagreement_penalty must be within [0, 1]")
    return settings


def pipeline_stages(config: Dict[str, Any], known_agents: Mapping[str, Any] | None = None) -> List[StageSpec]:
    raw_stages = config.get("pipeline", {}).get("stages") or []
    if not raw_stages:
        raise ConfigError("pipeline.stages must list at least one stage")
    stages = []
    for raw in raw_stages:
        agent = str(raw.get("agent", ""))
        if known_agents is not None and agent not in known_agents:
            raise ConfigError(f"Unknown agent in pipeline.stages: {agent!r}")
        weight = float(raw.get("weight", 0.0))
        if weight < 0:
            raise ConfigError(f"Stage weight must not be negative: {agent}")
        stages.append(
            StageSpec(agent=agent, weight=weight, analysis_type=str(raw.get("analysis_type") or agent))
        )
    return stages
