"""Command-line entrypoint for running a Mira analysis on a local CSV."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
import sys

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from MIRA_ANALYST.evaluation.runner import evaluate_analysis_output
from MIRA_ANALYST.pipeline.models import AnalysisRequest
from MIRA_ANALYST.pipeline.orchestrator import MiraPipeline
from MIRA_ANALYST.runtime.errors import FatalError

_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Analyse a CSV with a sandboxed, chart-producing agent")
    parser.add_argument("csv", type=Path, help="Path to the CSV dataset")
    parser.add_argument(
        "--message",
        default="Analyze this data and provide comprehensive insights",
        help="Natural-language analysis request",
    )
    parser.add_argument(
        "--history",
        type=Path,
        help='Optional JSON file with prior turns: [{"role": "user", "content": "..."}]',
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=Path("mira_results"),
        help="Directory for report.json and chart images",
    )
    parser.add_argument(
        "--log-path",
        type=Path,
        help="Optional JSONL file to capture run events",
    )
    parser.add_argument("--timeout", type=float, help="Overall run ceiling in seconds")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def load_history(path: Path | None) -> list[dict]:
    if not path:
        return []
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise SystemExit(f"History file {path} must contain a JSON list of turns")
    return payload


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    try:
        dataset = args.csv.read_bytes()
    except OSError as e:
        raise SystemExit(f"Failed to read dataset '{args.csv}': {e}")

    request = AnalysisRequest.build(dataset, args.message, load_history(args.history))

    try:
        pipeline = MiraPipeline(log_path=args.log_path)
        output = asyncio.run(pipeline.run(request, timeout=args.timeout))
    except FatalError as e:
        raise SystemExit(f"Analysis failed: {e}")

    args.out.mkdir(parents=True, exist_ok=True)
    chart_files = []
    for idx, artifact in enumerate(output.artifacts, start=1):
        chart_path = args.out / f"chart_{idx:02d}.{_EXTENSIONS.get(artifact.mime_type, 'png')}"
        chart_path.write_bytes(artifact.data)
        chart_files.append(chart_path.name)

    result = output.to_dict()
    result["chart_files"] = chart_files
    result["scores"] = evaluate_analysis_output(output, min_charts=pipeline.settings.min_charts)

    report_path = args.out / "report.json"
    report_path.write_text(json.dumps(result, indent=2), encoding="utf-8")
    print(f"Run complete. {len(chart_files)} chart(s) and report saved to {args.out}")


if __name__ == "__main__":
    main()
