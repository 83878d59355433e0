"""Utility helpers."""

from __future__ import annotations

import json
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Dict


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def now_ms() -> int:
    return int(time.time() * 1000)


def elapsed_ms(start: float) -> int:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return int((time.perf_counter() - start) * 1000)


def json_dumps(data: Dict[str, Any] | list[Any] | None, indent: int | None = None) -> str:
    return json.dumps(data or {}, ensure_ascii=False, sort_keys=True, default=str, indent=indent)


def json_loads(text: str | None) -> Dict[str, Any]:
    if not text:
        return {}
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return {}
    if isinstance(payload, dict):
        return payload
    return {}


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def new_session_id(prefix: str = "session_") -> str:
    """``prefix`` + epoch milliseconds + random suffix, unique across concurrent runs."""
    return f"{prefix}{now_ms()}_{secrets.token_hex(4)}"
