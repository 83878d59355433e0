import asyncio

from stock_analysis_agent.llm.gateway import LLMGateway
from stock_analysis_agent.llm.types import GatewaySettings, GenerationRequest, GenerationResponse, TokenUsage
from stock_analysis_agent.storage import (
    SQLiteRecorder,
    apply_migrations,
    get_connection,
    get_cost_summary,
    list_execution_records,
    log_llm_call,
)
from stock_analysis_agent.types import AgentResult, AgentStatus, ExecutionRecord, Recommendation

REQUIRED_TABLES = {"schema_migrations", "llm_calls", "agent_executions"}


def test_db_migrations_are_idempotent(tmp_path):
    db_path = str(tmp_path / "app.db")
    apply_migrations(db_path)
    apply_migrations(db_path)

    with get_connection(db_path) as conn:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        tables = {row["name"] for row in rows}
        versions = conn.execute("SELECT COUNT(*) AS n FROM schema_migrations").fetchone()

    assert REQUIRED_TABLES.issubset(tables)
    assert versions["n"] == 1


def test_recorder_persists_execution_records(tmp_path):
    db_path = str(tmp_path / "app.db")
    apply_migrations(db_path)
    result = AgentResult(
        agent_name="综合分析师",
        agent_type="comprehensive_analyst",
        analysis="综合评分：80",
        score=80,
        recommendation=Recommendation.BUY,
        confidence=0.7,
    )

    with get_connection(db_path) as conn:
        recorder = SQLiteRecorder(conn)
        for status, outcome in ((AgentStatus.COMPLETED, result), (AgentStatus.ERROR, None)):
            recorder.record_execution(
                ExecutionRecord(
                    session_id="session_1",
                    subject_id="600519",
                    agent_name="综合分析师",
                    agent_type="comprehensive_analyst",
                    analysis_type="comprehensive",
                    model="qwen-plus",
                    input_prompt="prompt",
                    raw_response="综合评分：80" if outcome else None,
                    result=outcome,
                    status=status,
                    start_time="2024-01-01T00:00:00+00:00",
                    end_time="2024-01-01T00:00:01+00:00",
                    error=None if outcome else "boom",
                )
            )
        records = list_execution_records(conn, "session_1")

    assert [r["status"] for r in records] == ["completed", "error"]
    assert records[0]["result"]["score"] == 80
    assert records[0]["result"]["recommendation"] == "buy"
    assert records[1]["result"] == {}
    assert records[1]["error"] == "boom"


def test_cost_summary(tmp_path):
    db_path = str(tmp_path / "app.db")
    apply_migrations(db_path)

    with get_connection(db_path) as conn:
        log_llm_call(conn, "comprehensive", "dashscope", "qwen-plus", 1000, 500, 0.016, 1200)
        log_llm_call(conn, "trading_strategy", "dashscope", "qwen-plus", 800, 200, 0.0096, 900)
        summary = get_cost_summary(conn)

    assert summary["calls"] == 2
    assert summary["tokens_in"] == 1800
    assert summary["tokens_out"] == 700


class OkProvider:
    name = "ok"

    def is_available(self):
        return True

    def supported_models(self):
        return []

    def default_model(self):
        return "ok-1"

    async def generate(self, request):
        return GenerationResponse(
            content="fine",
            finish_reason="stop",
            provider="ok",
            model="ok-1",
            usage=TokenUsage(input_tokens=10, output_tokens=5, total_tokens=15, cost=0.001),
            latency_ms=20,
        )


def test_gateway_logs_successful_calls(tmp_path):
    db_path = str(tmp_path / "app.db")
    apply_migrations(db_path)

    with get_connection(db_path) as conn:
        gateway = LLMGateway(GatewaySettings(primary_provider="ok"), adapters=[OkProvider()], conn=conn)
        asyncio.run(gateway.generate(GenerationRequest(prompt="p", meta={"analysis_type": "comprehensive"})))
        row = conn.execute("SELECT * FROM llm_calls").fetchone()

    assert row["stage"] == "comprehensive"
    assert row["provider"] == "ok"
    assert row["tokens_in"] == 10
