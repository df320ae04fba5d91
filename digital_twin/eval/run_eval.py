# digital_twin/eval/run_eval.py
"""
Run the YAML evaluation suite through the full pipeline.

Usage:
  python -m digital_twin.eval.run_eval [--dataset cases.yaml] [--category calendar_short]
"""
from __future__ import annotations
import argparse
import csv
import logging
import os
import sys
import time
import warnings
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .evaluators import EvalCase, EvalResult, evaluate_response, summarize

# ---- Minimal, controlled logging before imports that emit warnings ----
logging.basicConfig(level=os.getenv("APP_LOG_LEVEL", "WARNING"))
log = logging.getLogger("digital_twin.eval")

warnings.filterwarnings("ignore", category=DeprecationWarning, module=r"langchain.*")

load_dotenv()

# ------------------------------- Config --------------------------------
EVAL_DIR = Path(__file__).resolve().parent
REPO = EVAL_DIR.parents[1]
DATASET_YAML = Path(os.getenv("EVAL_DATASET", EVAL_DIR / "cases.yaml"))
OUT_DIR = Path(os.getenv("EVAL_OUT_DIR", REPO / "eval_outputs"))


# ----------------------------- Utilities -------------------------------
def load_cases(path: Path) -> List[EvalCase]:
    """
    YAML format:
    - name: "Graduation Timeline"
      query: "When do I graduate?"
      expected_topics: ["May", "2026"]
      should_not_contain: ["2025"]
      minimum_confidence: 0.75
      category: factual
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or []
    return [EvalCase.from_row(row) for row in data if isinstance(row, dict) and row.get("query")]


def run_cases(controller, cases: List[EvalCase]) -> List[EvalResult]:
    results: List[EvalResult] = []
    for case in cases:
        print(f"\nTest: {case.name} [{case.category}]")
        print(f'Query: "{case.query}"')
        try:
            response = controller.respond(case.query, history=[])
        except Exception as e:
            log.error("Case %s crashed: %s", case.name, e)
            print(f"ERROR: {e}")
            results.append(EvalResult(case=case.name, category=case.category, passed=False, error=str(e)))
            continue

        result = evaluate_response(case, response)
        print("PASSED" if result.passed else "FAILED")
        if not result.passed:
            print(f"   Expected: {', '.join(case.expected_topics)} | Found: {', '.join(result.topics_found) or 'none'}")
            if result.forbidden_found:
                print(f"   Forbidden found: {', '.join(result.forbidden_found)}")
            if result.confidence < case.minimum_confidence:
                print(f"   Confidence: {result.confidence * 100:.1f}% (need {case.minimum_confidence * 100:.1f}%)")
        print(f"Confidence: {result.confidence * 100:.1f}% | Sources: {result.sources}")
        results.append(result)
    return results


def print_summary(summary: Dict[str, Any]) -> None:
    print("\n" + "=" * 70)
    print(f"Overall: {summary['passed']}/{summary['total']} passed ({summary['success_rate'] * 100:.1f}%)")
    print("\nBy Category:")
    for cat, stats in summary["categories"].items():
        filled = round(stats["passed"] / stats["total"] * 10)
        bar = "█" * filled + "░" * (10 - filled)
        print(f"  {cat:<22} {bar} {stats['passed']}/{stats['total']}")
    print("\nQuality:")
    print(f"  Avg Confidence:     {summary['avg_confidence'] * 100:.1f}%")
    print(f"  Avg Topic Coverage: {summary['avg_topic_coverage'] * 100:.1f}%")
    print(f"  Avg Sources:        {summary['avg_sources']:.1f}")
    print(f"  Hallucination Rate: {summary['hallucination_rate'] * 100:.1f}%")
    print("=" * 70)


def write_csv(results: List[EvalResult], out_dir: Path) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"eval_{int(time.time())}.csv"
    rows = [asdict(r) for r in results]
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=list(rows[0].keys()) if rows else ["case"])
        writer.writeheader()
        writer.writerows(rows)
    return path


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Evaluate the digital twin against golden cases.")
    parser.add_argument("--dataset", default=str(DATASET_YAML), help="YAML file of eval cases")
    parser.add_argument("--category", default=None, help="Only run cases in this category")
    args = parser.parse_args(argv)

    from digital_twin.agent.lg_controller import TwinController

    cases = load_cases(Path(args.dataset))
    if args.category:
        cases = [c for c in cases if c.category == args.category]
    if not cases:
        print(f"No cases found in {args.dataset}")
        return 1

    results = run_cases(TwinController(), cases)
    summary = summarize(results)
    print_summary(summary)
    print(f"\nWrote {write_csv(results, OUT_DIR)}")
    return 0 if summary["failed"] == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
