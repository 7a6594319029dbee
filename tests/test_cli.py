"""Tests for the awareness-impact command-line entrypoint."""

import json

from awareness_impact.cli import main, parse_args


def test_score_command_prints_result(capsys) -> None:
    exit_code = main(
        [
            "score",
            "--engagement",
            "80",
            "--completion",
            "70",
            "--feedback-quality",
            "85",
            "--compliance-linkage",
            "none",
        ]
    )
    assert exit_code == 0
    result = json.loads(capsys.readouterr().out)
    assert result == {"impact_score": 58.75, "risk_level": "medium", "confidence_level": 80}


def test_selfcheck_passes_every_reference_case(capsys) -> None:
    assert main(["selfcheck"]) == 0
    output = capsys.readouterr().out
    assert "FAIL" not in output
    assert output.count("PASS") == 7


def test_recompute_command_reports_stats(capsys) -> None:
    assert main(["recompute", "--tenant-id", "tenant_cli", "--year", "2026", "--month", "9"]) == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats == {"total": 0, "processed": 0, "successful": 0, "skipped": 0, "failed": 0}


def test_parse_args_treats_missing_flags_as_none() -> None:
    args = parse_args(["score", "--engagement", "55"])
    assert args.engagement == 55.0
    assert args.compliance_linkage is None
