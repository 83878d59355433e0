"""Entrypoint: run stock analysis pipelines from a source checkout."""

from __future__ import annotations

from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from stock_analysis_agent.cli import main


if __name__ == "__main__":
    main()
