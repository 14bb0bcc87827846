#!/usr/bin/env python3
"""Run the full analysis pipeline over a JSON signal dump.

Usage:
    python scripts/run_analysis.py data/signals.json --city Paris
    python scripts/run_analysis.py data/signals.json --hotel-id 42 --risk low
    python scripts/run_analysis.py data/signals.json --city Rome \
        --instructions "only buy with discount over 20%" --output out.json

The dump holds `bookings`, `searches`, `competitor_prices` and `occupancy`
lists plus an optional `now` timestamp used as the analysis reference time.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.agents.supervisor import AGENT_NAMES, AnalysisResult, run_analysis  # noqa: E402
from src.agents.tools.signal_store import InMemorySignalStore  # noqa: E402
from src.config.logging_config import setup_logging  # noqa: E402


def summarize(result: AnalysisResult) -> str:
    """Human-readable digest of an analysis result."""
    lines = [f"Request {result.request_id}: {result.message or 'done'}"]
    lines.append(f"  Bookings analyzed: {result.data_points}  Searches: {result.search_points}")

    for name, report in result.reports.items():
        status = "ok" if report.success else "failed"
        lines.append(f"  {name:<22} {status:<7} confidence={report.confidence:.2f}  {report.message}")

    decision = result.decision
    if decision is None or not decision.success:
        return "\n".join(lines)

    if decision.consensus is not None:
        lines.append(
            f"\n  Consensus: {decision.consensus.primary_signal.upper()} "
            f"({decision.consensus.strength})"
        )
    lines.append(f"  Confidence: {decision.confidence:.2f}")
    if decision.risk is not None:
        lines.append(f"  Risk: {decision.risk.level} (score {decision.risk.score})")
    if decision.summary is not None:
        lines.append(f"  {decision.summary.headline}")

    if decision.action_plan:
        lines.append("\n  Action plan:")
        for step in decision.action_plan:
            lines.append(f"    {step.priority:>2}. {step.action}: {step.description}")

    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Analyze hotel booking signals and print a pricing decision.",
    )
    parser.add_argument("dump", help="Path to the JSON signal dump")
    parser.add_argument("--hotel-id", type=int, default=None, help="Restrict to one hotel")
    parser.add_argument("--city", default=None, help="Restrict to one city")
    parser.add_argument(
        "--agents",
        nargs="+",
        choices=AGENT_NAMES,
        default=None,
        help="Subset of agents to run (default: all)",
    )
    parser.add_argument("--instructions", default=None, help="Free-text opportunity filters")
    parser.add_argument(
        "--risk",
        choices=["low", "medium", "high"],
        default="medium",
        help="Risk tolerance (default: medium)",
    )
    parser.add_argument(
        "--output", "-o",
        default=None,
        help="Also write the full result as JSON to this path",
    )
    args = parser.parse_args(argv)

    setup_logging(stream=sys.stderr)

    dump = Path(args.dump)
    if not dump.exists():
        print(f"Signal dump not found: {dump}", file=sys.stderr)
        return 2

    store = InMemorySignalStore.from_json_file(dump)
    result = run_analysis(
        store,
        hotel_id=args.hotel_id,
        city=args.city,
        agents=args.agents,
        instructions=args.instructions,
        risk_tolerance=args.risk,
        as_of=store.now,
    )

    print(summarize(result))

    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(result.model_dump_json(indent=2), encoding="utf-8")
        print(f"\nFull result: {out}")

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
