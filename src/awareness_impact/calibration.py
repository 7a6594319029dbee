"""Calibration analysis: bucket validations, score accuracy, propose new weights."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
import logging
from typing import Any, Protocol

from .config import Settings
from .events import build_weights_applied_event
from .formula import DEFAULT_WEIGHTS, ImpactWeights, clamp
from .models import CalibrationCell, CalibrationRun, ImpactValidation, ImpactWeightVersion, WeightSuggestion
from .observability import ImpactMetrics, log_event
from .repositories import ConflictError, ImpactRepository, weights_from_version

logger = logging.getLogger("awareness_impact")

LOW_RISK_BUCKETS = frozenset({"very_low_risk", "low_risk"})
HIGH_RISK_BUCKETS = frozenset({"high_risk", "medium_risk"})
POOR_BEHAVIOR_BUCKETS = frozenset({"poor_behavior", "very_poor_behavior"})
GOOD_BEHAVIOR_BUCKETS = frozenset({"good_behavior", "very_good_behavior"})

REVIEWABLE_STATUSES = frozenset({"draft", "approved"})


def classify_predicted_bucket(impact_score: float) -> str:
    if impact_score >= 85:
        return "very_low_risk"
    if impact_score >= 70:
        return "low_risk"
    if impact_score >= 40:
        return "medium_risk"
    return "high_risk"


def classify_actual_bucket(behavior_score: float) -> str:
    if behavior_score >= 85:
        return "very_good_behavior"
    if behavior_score >= 70:
        return "good_behavior"
    if behavior_score >= 50:
        return "average_behavior"
    if behavior_score >= 30:
        return "poor_behavior"
    return "very_poor_behavior"


def determine_gap_direction(delta: float) -> str:
    """Classify predicted-minus-actual bias; within 5 points counts as balanced."""

    if abs(delta) <= 5:
        return "balanced"
    return "overestimate" if delta > 0 else "underestimate"


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


@dataclass(frozen=True)
class CellSummary:
    """Aggregated validations sharing a (predicted, actual) bucket pair."""

    predicted_bucket: str
    actual_bucket: str
    count_samples: int
    avg_predicted_score: float
    avg_actual_score: float
    avg_gap: float
    gap_direction: str
    is_outlier_bucket: bool
    predicted_score_min: float
    predicted_score_max: float
    actual_score_min: float
    actual_score_max: float


@dataclass(frozen=True)
class RunSummary:
    """Run-level accuracy metrics over all paired validations."""

    sample_size: int
    avg_validation_gap: float
    max_validation_gap: float
    min_validation_gap: float
    correlation_score: float
    overall_status: str


class BucketCell(Protocol):
    predicted_bucket: str
    actual_bucket: str
    count_samples: int
    is_outlier_bucket: bool


def build_cells(
    pairs: Iterable[tuple[float, float]],
    *,
    min_samples: int = 3,
    outlier_gap: float = 25.0,
) -> list[CellSummary]:
    """Group (predicted, actual) score pairs by bucket pair and aggregate each group."""

    groups: dict[tuple[str, str], list[tuple[float, float]]] = {}
    for predicted, actual in pairs:
        key = (classify_predicted_bucket(predicted), classify_actual_bucket(actual))
        groups.setdefault(key, []).append((predicted, actual))

    cells: list[CellSummary] = []
    for (predicted_bucket, actual_bucket), members in groups.items():
        predicted_scores = [predicted for predicted, _ in members]
        actual_scores = [actual for _, actual in members]
        avg_predicted = _mean(predicted_scores)
        avg_actual = _mean(actual_scores)
        avg_gap = _mean([abs(predicted - actual) for predicted, actual in members])
        cells.append(
            CellSummary(
                predicted_bucket=predicted_bucket,
                actual_bucket=actual_bucket,
                count_samples=len(members),
                avg_predicted_score=avg_predicted,
                avg_actual_score=avg_actual,
                avg_gap=avg_gap,
                gap_direction=determine_gap_direction(avg_predicted - avg_actual),
                is_outlier_bucket=len(members) < min_samples or avg_gap > outlier_gap,
                predicted_score_min=min(predicted_scores),
                predicted_score_max=max(predicted_scores),
                actual_score_min=min(actual_scores),
                actual_score_max=max(actual_scores),
            )
        )
    return cells


def summarize_run(pairs: Sequence[tuple[float, float]]) -> RunSummary | None:
    if not pairs:
        return None

    gaps = [abs(predicted - actual) for predicted, actual in pairs]
    avg_gap = _mean(gaps)
    correlation = max(0.0, 100.0 - avg_gap)

    if avg_gap <= 10 and correlation >= 75:
        status = "good"
    elif avg_gap <= 20:
        status = "needs_tuning"
    else:
        status = "bad"

    return RunSummary(
        sample_size=len(pairs),
        avg_validation_gap=avg_gap,
        max_validation_gap=max(gaps),
        min_validation_gap=min(gaps),
        correlation_score=correlation,
        overall_status=status,
    )


def _normalized(values: list[float]) -> list[float]:
    total = sum(values)
    return [value / total for value in values]


def suggest_weights(
    current: ImpactWeights,
    cells: Iterable[BucketCell],
    *,
    bias_threshold: float = 0.2,
    weight_min: float = 0.1,
    weight_max: float = 0.5,
) -> tuple[ImpactWeights, str]:
    """Nudge weights against systematic bias; returns (weights, rationale)."""

    overestimated = 0
    underestimated = 0
    total = 0
    for cell in cells:
        if cell.is_outlier_bucket:
            continue
        total += cell.count_samples
        if cell.predicted_bucket in LOW_RISK_BUCKETS and cell.actual_bucket in POOR_BEHAVIOR_BUCKETS:
            overestimated += cell.count_samples
        if cell.predicted_bucket in HIGH_RISK_BUCKETS and cell.actual_bucket in GOOD_BEHAVIOR_BUCKETS:
            underestimated += cell.count_samples

    over_ratio = overestimated / total if total > 0 else 0.0
    under_ratio = underestimated / total if total > 0 else 0.0

    engagement, completion, feedback, compliance = current.values()
    notes: list[str] = []

    if over_ratio > bias_threshold:
        compliance += 0.05
        engagement -= 0.03
        completion -= 0.02
        notes.append(
            "Overestimation detected in low-risk segments with poor behavior. Increasing compliance linkage weight."
        )

    if under_ratio > bias_threshold:
        compliance -= 0.03
        feedback += 0.02
        engagement += 0.01
        notes.append(
            "Underestimation detected in high-risk segments with good behavior. Decreasing compliance weight."
        )

    if not notes:
        notes.append("No significant bias detected. Weights are well-calibrated.")

    values = _normalized([engagement, completion, feedback, compliance])
    values = _normalized([clamp(value, weight_min, weight_max) for value in values])

    suggested = ImpactWeights(
        engagement_weight=values[0],
        completion_weight=values[1],
        feedback_quality_weight=values[2],
        compliance_linkage_weight=values[3],
    )
    return suggested, " ".join(notes)


def _period_index(year: int, month: int) -> int:
    return year * 12 + (month - 1)


def _within_window(validation: ImpactValidation, start: date | None, end: date | None) -> bool:
    index = _period_index(validation.period_year, validation.period_month)
    if start is not None and index < _period_index(start.year, start.month):
        return False
    if end is not None and index > _period_index(end.year, end.month):
        return False
    return True


@dataclass(frozen=True)
class CalibrationOutcome:
    """Everything produced by one full calibration analysis."""

    run: CalibrationRun
    cells: list[CalibrationCell]
    suggestion: WeightSuggestion


class CalibrationService:
    """Persists calibration runs, cells and weight suggestions; applies approved suggestions."""

    def __init__(
        self,
        *,
        repository: ImpactRepository,
        settings: Settings,
        metrics: ImpactMetrics,
    ) -> None:
        self._repository = repository
        self._settings = settings
        self._metrics = metrics

    def start_run(
        self,
        tenant_id: str,
        *,
        model_version: int,
        period_start: date | None = None,
        period_end: date | None = None,
        run_label: str | None = None,
        description: str | None = None,
        created_by: str | None = None,
    ) -> CalibrationRun:
        run = self._repository.create_calibration_run(
            tenant_id=tenant_id,
            model_version=model_version,
            period_start=period_start,
            period_end=period_end,
            run_label=run_label,
            description=description,
            created_by=created_by,
        )
        log_event(logger, "calibration_run_created", tenant_id=tenant_id, run_id=run.id, model_version=model_version)
        return run

    def build_calibration_from_validations(self, tenant_id: str, run_id: str) -> list[CalibrationCell]:
        run = self._repository.get_calibration_run(tenant_id, run_id)
        pairs = [
            (validation.computed_impact_score, validation.actual_behavior_score)
            for validation in self._repository.list_validations(tenant_id)
            if validation.actual_behavior_score is not None and _within_window(validation, run.period_start, run.period_end)
        ]
        if not pairs:
            log_event(logger, "calibration_no_complete_validations", tenant_id=tenant_id, run_id=run_id)
            return []

        summaries = build_cells(
            pairs,
            min_samples=self._settings.calibration_min_samples,
            outlier_gap=self._settings.calibration_outlier_gap,
        )
        cells = self._repository.create_calibration_cells(
            {"tenant_id": tenant_id, "calibration_run_id": run_id, **asdict(summary)} for summary in summaries
        )

        summary = summarize_run(pairs)
        if summary is not None:
            self._repository.update_calibration_run_metrics(run, **asdict(summary))

        log_event(
            logger,
            "calibration_cells_built",
            tenant_id=tenant_id,
            run_id=run_id,
            sample_size=len(pairs),
            cells=len(cells),
            overall_status=run.overall_status,
        )
        return cells

    def _current_weights(self, tenant_id: str) -> tuple[ImpactWeights, int]:
        active: ImpactWeightVersion | None = self._repository.get_active_weights(tenant_id)
        if active is None:
            return DEFAULT_WEIGHTS, 0
        return weights_from_version(active), active.version

    def generate_weight_suggestion(self, tenant_id: str, run_id: str) -> WeightSuggestion:
        self._repository.get_calibration_run(tenant_id, run_id)
        cells = self._repository.list_calibration_cells(tenant_id, run_id)
        current, version = self._current_weights(tenant_id)

        suggested, rationale = suggest_weights(
            current,
            cells,
            bias_threshold=self._settings.suggestion_bias_threshold,
            weight_min=self._settings.suggested_weight_min,
            weight_max=self._settings.suggested_weight_max,
        )
        suggestion = self._repository.create_weight_suggestion(
            tenant_id=tenant_id,
            calibration_run_id=run_id,
            source_weight_version=version,
            suggested_weight_version=version + 1,
            suggested_engagement_weight=suggested.engagement_weight,
            suggested_completion_weight=suggested.completion_weight,
            suggested_feedback_quality_weight=suggested.feedback_quality_weight,
            suggested_compliance_linkage_weight=suggested.compliance_linkage_weight,
            rationale=rationale or "Weights adjusted based on calibration analysis.",
            status="draft",
        )
        log_event(
            logger,
            "weight_suggestion_created",
            tenant_id=tenant_id,
            run_id=run_id,
            suggestion_id=suggestion.id,
            source_version=version,
            suggested_version=version + 1,
        )
        return suggestion

    def run_calibration_analysis(
        self,
        tenant_id: str,
        *,
        model_version: int,
        period_start: date | None = None,
        period_end: date | None = None,
        run_label: str | None = None,
        description: str | None = None,
        created_by: str | None = None,
    ) -> CalibrationOutcome:
        run = self.start_run(
            tenant_id,
            model_version=model_version,
            period_start=period_start,
            period_end=period_end,
            run_label=run_label,
            description=description,
            created_by=created_by,
        )
        cells = self.build_calibration_from_validations(tenant_id, run.id)
        suggestion = self.generate_weight_suggestion(tenant_id, run.id)
        self._metrics.record_calibration_run()
        return CalibrationOutcome(run=run, cells=cells, suggestion=suggestion)

    def approve_and_apply(
        self,
        tenant_id: str,
        suggestion_id: str,
        approved_by: str,
        *,
        trace_id: str,
    ) -> tuple[WeightSuggestion, ImpactWeightVersion, dict[str, Any]]:
        """Approve a suggestion, then activate its weights as a new version."""

        suggestion = self._repository.get_weight_suggestion(tenant_id, suggestion_id)
        if suggestion.status not in REVIEWABLE_STATUSES:
            raise ConflictError(f"Weight suggestion is already {suggestion.status}")

        if suggestion.status == "draft":
            self._repository.set_suggestion_status(suggestion, status="approved", reviewed_by=approved_by)

        weights = ImpactWeights(
            engagement_weight=suggestion.suggested_engagement_weight,
            completion_weight=suggestion.suggested_completion_weight,
            feedback_quality_weight=suggestion.suggested_feedback_quality_weight,
            compliance_linkage_weight=suggestion.suggested_compliance_linkage_weight,
        )
        record = self._repository.create_weight_version(
            suggestion.tenant_id,
            weights,
            label=f"Calibrated Weights v{suggestion.suggested_weight_version}",
            notes=f"Applied from calibration suggestion {suggestion_id}",
            commit=False,
        )
        self._repository.set_suggestion_status(
            suggestion, status="applied", applied_weight_version=record.version, commit=False
        )
        self._repository.commit()
        self._metrics.record_suggestion_applied()

        event = build_weights_applied_event(
            tenant_id=suggestion.tenant_id,
            applied_at=datetime.now(tz=timezone.utc),
            weight_version=record.version,
            weights=asdict(weights),
            suggestion_id=suggestion_id,
            applied_by=approved_by,
            trace_id=trace_id,
            produced_by=self._settings.event_produced_by,
        )
        log_event(
            logger,
            "weight_suggestion_applied",
            tenant_id=suggestion.tenant_id,
            suggestion_id=suggestion_id,
            weight_version=record.version,
            trace_id=trace_id,
        )
        return suggestion, record, event

    def reject(self, tenant_id: str, suggestion_id: str, rejected_by: str) -> WeightSuggestion:
        suggestion = self._repository.get_weight_suggestion(tenant_id, suggestion_id)
        if suggestion.status not in REVIEWABLE_STATUSES:
            raise ConflictError(f"Weight suggestion is already {suggestion.status}")
        suggestion = self._repository.set_suggestion_status(suggestion, status="rejected", reviewed_by=rejected_by)
        log_event(logger, "weight_suggestion_rejected", tenant_id=suggestion.tenant_id, suggestion_id=suggestion_id)
        return suggestion
