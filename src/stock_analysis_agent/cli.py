"""Command line entrypoint: run pipelines and inspect providers."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict

import yaml
from dotenv import load_dotenv

from .config import gateway_settings, load_settings
from .llm.gateway import LLMGateway
from .pipeline import PipelineOrchestrator
from .storage import (
    SQLiteRecorder,
    apply_migrations,
    get_connection,
    get_cost_summary,
    list_execution_records,
)
from .utils import json_dumps


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Multi-agent LLM stock analysis")
    parser.add_argument("--settings", default="config/settings.yaml", help="Path to settings.yaml")
    parser.add_argument("--log-level", default="INFO", help="Logging level")

    subparsers = parser.add_subparsers(dest="command")

    analyze = subparsers.add_parser("analyze", help="Run the pipeline for one stock")
    analyze.add_argument("subject", help="Stock code, e.g. 600519")
    analyze.add_argument("--name", help="Display name of the stock")
    analyze.add_argument("--session-id", help="Reuse a session id instead of generating one")
    analyze.add_argument("--datasets", help="YAML/JSON file with datasets keyed by name")

    batch = subparsers.add_parser("batch", help="Run the pipeline for many stocks")
    batch.add_argument("subjects", nargs="+", help="Stock codes")
    batch.add_argument("--concurrency", type=int, help="Pipelines in flight at once")
    batch.add_argument("--datasets", help="YAML/JSON file mapping quoted stock code -> datasets")

    subparsers.add_parser("providers", help="Show provider availability and models")
    subparsers.add_parser("costs", help="Show recorded LLM token usage and cost")

    records = subparsers.add_parser("records", help="List agent execution records of a session")
    records.add_argument("session_id")

    subparsers.add_parser("init-db", help="Apply SQLite migrations only")
    return parser


def _load_yaml(path: str | None) -> Dict[str, Any] | None:
    if not path:
        return None
    with Path(path).open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def main() -> None:
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    command = args.command
    if command is None:
        parser.print_help()
        return

    config = load_settings(args.settings)
    db_path = config["database"]["path"]
    apply_migrations(db_path)

    if command == "init-db":
        print(f"Database initialized at {db_path}")
        return

    with get_connection(db_path) as conn:
        if command == "costs":
            print(json_dumps(get_cost_summary(conn), indent=2))
            return
        if command == "records":
            print(json_dumps(list_execution_records(conn, args.session_id), indent=2))
            return

        gateway = LLMGateway(gateway_settings(config), conn=conn)
        if command == "providers":
            print(
                json_dumps(
                    {
                        "service": gateway.get_service_stats(),
                        "status": {k: asdict(v) for k, v in gateway.get_provider_status().items()},
                        "models": {
                            k: [asdict(m) for m in models]
                            for k, models in gateway.get_all_supported_models().items()
                        },
                    },
                    indent=2,
                )
            )
            return

        orchestrator = PipelineOrchestrator(gateway, config, recorder=SQLiteRecorder(conn))
        if command == "analyze":
            result = asyncio.run(
                orchestrator.run_pipeline(
                    args.subject,
                    display_name=args.name,
                    session_id=args.session_id,
                    datasets=_load_yaml(args.datasets),
                    trigger="cli",
                )
            )
            print(json_dumps(result.to_dict(), indent=2))
            return

        if command == "batch":
            batch_result = asyncio.run(
                orchestrator.run_batch(
                    args.subjects,
                    concurrency=args.concurrency,
                    datasets_by_subject=_load_yaml(args.datasets),
                    trigger="cli",
                )
            )
            print(
                f"Batch: {batch_result.summary.total} total, "
                f"{batch_result.summary.successful} successful, {batch_result.summary.failed} failed"
            )
            for subject_id, outcome in batch_result.succeeded.items():
                decision = outcome.final_decision
                print(
                    f"- {subject_id}: {decision.recommendation.value} score={decision.score} "
                    f"confidence={decision.confidence:.2f} session={outcome.session_id}"
                )
            for failure in batch_result.failures:
                print(f"- {failure.subject_id}: failed ({failure.error_type}) {failure.error}")


if __name__ == "__main__":
    main()
