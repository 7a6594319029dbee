"""Command-line entrypoint: score one metric set, self-check the formula, recompute a tenant."""

from __future__ import annotations

import argparse
from dataclasses import asdict
import json
import sys
from uuid import uuid4

from .formula import InputMetrics, compute_impact_score

# (label, metrics, expected impact score or None, expected risk level, expected confidence)
REFERENCE_CASES: list[tuple[str, InputMetrics, float | None, str, int]] = [
    ("perfect scores", InputMetrics(100, 100, 100, 100), 100.0, "very_low", 90),
    ("zero scores", InputMetrics(0, 0, 0, 0), 0.0, "high", 90),
    ("mixed scores", InputMetrics(80, 70, 85, 75), 77.5, "low", 90),
    ("one missing metric", InputMetrics(80, 70, 85, None), None, "medium", 80),
    ("all missing", InputMetrics(None, None, None, None), 0.0, "high", 50),
    ("boundary at 40", InputMetrics(40, 40, 40, 40), 40.0, "medium", 90),
    ("boundary at 85", InputMetrics(85, 85, 85, 85), 85.0, "very_low", 90),
]


def _optional_score(value: str) -> float | None:
    if value.lower() in {"", "none", "null", "-"}:
        return None
    return float(value)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Awareness impact scoring tools")
    subparsers = parser.add_subparsers(dest="command", required=True)

    score = subparsers.add_parser("score", help="Compute the impact score for one metric set")
    for name in ("engagement", "completion", "feedback-quality", "compliance-linkage"):
        score.add_argument(f"--{name}", type=_optional_score, default=None, help="0-100, or 'none' when missing")

    subparsers.add_parser("selfcheck", help="Run the reference formula cases")

    recompute = subparsers.add_parser("recompute", help="Recompute all org units of a tenant for one period")
    recompute.add_argument("--tenant-id", required=True)
    recompute.add_argument("--year", type=int, required=True)
    recompute.add_argument("--month", type=int, choices=range(1, 13), required=True)

    return parser.parse_args(argv)


def run_selfcheck() -> bool:
    all_passed = True
    for label, metrics, expected_score, expected_risk, expected_confidence in REFERENCE_CASES:
        result = compute_impact_score(metrics)
        passed = (
            (expected_score is None or result.impact_score == expected_score)
            and result.risk_level == expected_risk
            and result.confidence_level == expected_confidence
        )
        all_passed = all_passed and passed
        print(
            f"{'PASS' if passed else 'FAIL'} {label}: impact={result.impact_score} "
            f"risk={result.risk_level} confidence={result.confidence_level}"
        )
    return all_passed


def _recompute(tenant_id: str, year: int, month: int) -> dict:
    from .config import get_settings
    from .db import init_db, session_scope
    from .engine import ImpactScoreEngine
    from .observability import configure_logging, get_metrics
    from .repositories import ImpactRepository

    settings = get_settings()
    configure_logging(settings.log_level)
    init_db()
    with session_scope() as session:
        engine = ImpactScoreEngine(repository=ImpactRepository(session), settings=settings, metrics=get_metrics())
        stats, _ = engine.recompute_tenant(tenant_id, year, month, trace_id=uuid4().hex)
    return stats.as_dict()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    if args.command == "score":
        metrics = InputMetrics(
            engagement_score=args.engagement,
            completion_score=args.completion,
            feedback_quality_score=args.feedback_quality,
            compliance_linkage_score=args.compliance_linkage,
        )
        print(json.dumps(asdict(compute_impact_score(metrics)), indent=2))
        return 0

    if args.command == "selfcheck":
        return 0 if run_selfcheck() else 1

    print(json.dumps(_recompute(args.tenant_id, args.year, args.month), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
