"""SQLite schema, migrations, and the execution-record sink."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Protocol

from .types import ExecutionRecord
from .utils import json_dumps, json_loads, utc_now_iso

logger = logging.getLogger(__name__)

MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS llm_calls (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            stage TEXT NOT NULL,
            provider TEXT NOT NULL,
            model TEXT NOT NULL,
            tokens_in INTEGER NOT NULL DEFAULT 0,
            tokens_out INTEGER NOT NULL DEFAULT 0,
            cost REAL NOT NULL DEFAULT 0,
            latency_ms INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            meta_json TEXT NOT NULL DEFAULT '{}'
        );

        CREATE TABLE IF NOT EXISTS agent_executions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_id TEXT NOT NULL,
            subject_id TEXT NOT NULL,
            agent_name TEXT NOT NULL,
            agent_type TEXT NOT NULL,
            analysis_type TEXT NOT NULL,
            model TEXT NOT NULL,
            input_prompt TEXT NOT NULL,
            raw_response TEXT,
            result_json TEXT NOT NULL DEFAULT '{}',
            status TEXT NOT NULL,
            error TEXT,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_llm_calls_stage_created ON llm_calls(stage, created_at);
        CREATE INDEX IF NOT EXISTS idx_agent_executions_session ON agent_executions(session_id);
        CREATE INDEX IF NOT EXISTS idx_agent_executions_subject ON agent_executions(subject_id, start_time);
        """,
    ),
]


class ExecutionRecorder(Protocol):
    def record_execution(self, record: ExecutionRecord) -> None:
        ...


def get_connection(db_path: str) -> sqlite3.Connection:
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def apply_migrations(db_path: str) -> None:
    with get_connection(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL
            )
            """
        )
        applied = {
            row["version"]
            for row in conn.execute("SELECT version FROM schema_migrations").fetchall()
        }
        for version, sql in MIGRATIONS:
            if version in applied:
                continue
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?)",
                (version, utc_now_iso()),
            )
        conn.commit()


def log_llm_call(
    conn: sqlite3.Connection,
    stage: str,
    provider: str,
    model: str,
    tokens_in: int,
    tokens_out: int,
    cost: float,
    latency_ms: int,
    meta: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    cur = conn.execute(
        """
        INSERT INTO llm_calls(stage, provider, model, tokens_in, tokens_out, cost, latency_ms, created_at, meta_json)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            stage,
            provider,
            model,
            tokens_in,
            tokens_out,
            cost,
            latency_ms,
            utc_now_iso(),
            json_dumps(meta),
        ),
    )
    conn.commit()
    row = conn.execute("SELECT * FROM llm_calls WHERE id = ?", (cur.lastrowid,)).fetchone()
    return dict(row)


def create_execution_record(conn: sqlite3.Connection, record: ExecutionRecord) -> Dict[str, Any]:
    result = record.result.to_dict() if record.result is not None else {}
    cur = conn.execute(
        """
        INSERT INTO agent_executions(
            session_id, subject_id, agent_name, agent_type, analysis_type, model,
            input_prompt, raw_response, result_json, status, error, start_time, end_time
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            record.session_id,
            record.subject_id,
            record.agent_name,
            record.agent_type,
            record.analysis_type,
            record.model,
            record.input_prompt,
            record.raw_response,
            json_dumps(result),
            record.status.value,
            record.error,
            record.start_time,
            record.end_time,
        ),
    )
    conn.commit()
    row = conn.execute("SELECT * FROM agent_executions WHERE id = ?", (cur.lastrowid,)).fetchone()
    return _execution_row(row)


def _execution_row(row: sqlite3.Row) -> Dict[str, Any]:
    data = dict(row)
    data["result"] = json_loads(data.pop("result_json"))
    return data


def list_execution_records(conn: sqlite3.Connection, session_id: str) -> List[Dict[str, Any]]:
    rows = conn.execute(
        "SELECT * FROM agent_executions WHERE session_id = ? ORDER BY id ASC",
        (session_id,),
    ).fetchall()
    return [_execution_row(row) for row in rows]


def get_cost_summary(conn: sqlite3.Connection) -> Dict[str, Any]:
    row = conn.execute(
        """
        SELECT
          COUNT(*) AS calls,
          COALESCE(SUM(tokens_in), 0) AS tokens_in,
          COALESCE(SUM(tokens_out), 0) AS tokens_out,
          COALESCE(SUM(cost), 0) AS cost
        FROM llm_calls
        """
    ).fetchone()
    return dict(row)


class SQLiteRecorder:
    """ExecutionRecorder writing to the agent_executions table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def record_execution(self, record: ExecutionRecord) -> None:
        create_execution_record(self.conn, record)
