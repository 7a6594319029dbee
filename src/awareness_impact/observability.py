"""Structured logging and in-memory metrics for awareness impact service."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
import json
import logging
from threading import Lock
from typing import Any
from uuid import uuid4


def configure_logging(level: str) -> None:
    """Configure service logging format once."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
    )


def request_trace_id(headers: Mapping[str, str]) -> str:
    """Use the caller's `x-trace-id` when present, otherwise mint one."""

    return headers.get("x-trace-id", "").strip() or uuid4().hex


def log_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Emit one structured JSON log line."""

    payload = {
        "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        "event": event,
        **fields,
    }
    logger.info(json.dumps(payload, default=str, separators=(",", ":")))


class ImpactMetrics:
    """Thread-safe in-memory metrics for scoring, validation and calibration."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.score_requests_total = 0
            self.scores_computed_total = 0
            self.scores_skipped_total = 0
            self.scores_failed_total = 0
            self.tenant_recomputes_total = 0
            self.validations_collected_total = 0
            self.validations_evaluated_total = 0
            self.calibration_runs_total = 0
            self.weight_suggestions_applied_total = 0
            self.latency_ms_sum = 0.0
            self.latency_ms_count = 0
            self.last_impact_score = 0.0

    def record_request(self) -> None:
        with self._lock:
            self.score_requests_total += 1

    def record_computed(self, latency_ms: float, impact_score: float) -> None:
        with self._lock:
            self.scores_computed_total += 1
            self.latency_ms_sum += max(latency_ms, 0.0)
            self.latency_ms_count += 1
            self.last_impact_score = max(0.0, min(100.0, impact_score))

    def record_skipped(self) -> None:
        with self._lock:
            self.scores_skipped_total += 1

    def record_failed(self) -> None:
        with self._lock:
            self.scores_failed_total += 1

    def record_tenant_recompute(self) -> None:
        with self._lock:
            self.tenant_recomputes_total += 1

    def record_validations_collected(self, count: int) -> None:
        with self._lock:
            self.validations_collected_total += max(count, 0)

    def record_validations_evaluated(self, count: int) -> None:
        with self._lock:
            self.validations_evaluated_total += max(count, 0)

    def record_calibration_run(self) -> None:
        with self._lock:
            self.calibration_runs_total += 1

    def record_suggestion_applied(self) -> None:
        with self._lock:
            self.weight_suggestions_applied_total += 1

    def render_prometheus(self) -> str:
        with self._lock:
            series = [
                ("score_requests_total", "counter", "Total impact score requests received.", self.score_requests_total),
                ("scores_computed_total", "counter", "Total impact scores computed.", self.scores_computed_total),
                ("scores_skipped_total", "counter", "Org units skipped for missing KPI data.", self.scores_skipped_total),
                ("scores_failed_total", "counter", "Impact score computations that failed.", self.scores_failed_total),
                ("tenant_recomputes_total", "counter", "Tenant-wide recompute jobs run.", self.tenant_recomputes_total),
                (
                    "validations_collected_total",
                    "counter",
                    "Validation records written by collect jobs.",
                    self.validations_collected_total,
                ),
                (
                    "validations_evaluated_total",
                    "counter",
                    "Validation records classified by evaluate jobs.",
                    self.validations_evaluated_total,
                ),
                ("calibration_runs_total", "counter", "Calibration analyses completed.", self.calibration_runs_total),
                (
                    "weight_suggestions_applied_total",
                    "counter",
                    "Weight suggestions applied as active weights.",
                    self.weight_suggestions_applied_total,
                ),
                ("latency_ms_sum", "counter", "Sum of score computation latency in milliseconds.", f"{self.latency_ms_sum:.3f}"),
                ("latency_ms_count", "counter", "Number of latency observations.", self.latency_ms_count),
                ("last_impact_score", "gauge", "Last computed impact score.", f"{self.last_impact_score:.2f}"),
            ]

        lines: list[str] = []
        for name, kind, help_text, value in series:
            metric = f"awareness_impact_{name}"
            lines.append(f"# HELP {metric} {help_text}")
            lines.append(f"# TYPE {metric} {kind}")
            lines.append(f"{metric} {value}")
        return "\n".join(lines) + "\n"


_metrics = ImpactMetrics()


def get_metrics() -> ImpactMetrics:
    """Return singleton metrics collector."""

    return _metrics
