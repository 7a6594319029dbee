"""Validation framework: compare computed impact scores with observed behaviour."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import logging
from typing import Any, Literal

from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .observability import ImpactMetrics, log_event
from .repositories import ConflictError, ImpactRepository, NotFoundError

logger = logging.getLogger("awareness_impact")

ValidationStatus = Literal["pending", "validated", "anomaly", "calibrated"]

VALIDATION_DATA_SOURCE = "impact_validation_engine"


@dataclass
class JobResult:
    """Summary of one collect or evaluate job."""

    success: bool = True
    processed_count: int = 0
    inserted_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def generate_period_range(period_year: int, period_month: int, lookback_months: int) -> list[tuple[int, int]]:
    """Return `lookback_months` (year, month) pairs, newest first."""

    periods: list[tuple[int, int]] = []
    year, month = period_year, period_month
    for _ in range(lookback_months):
        periods.append((year, month))
        month -= 1
        if month < 1:
            month = 12
            year -= 1
    return periods


def classify_validation_gap(
    gap: float,
    *,
    validated_max_gap: float = 10.0,
    anomaly_max_gap: float = 25.0,
) -> ValidationStatus:
    if gap <= validated_max_gap:
        return "validated"
    if gap < anomaly_max_gap:
        return "anomaly"
    return "calibrated"


def confidence_gap_for(gap: float, *, threshold: float = 15.0) -> float:
    return gap * 0.5 if gap > threshold else 0.0


class ValidationEngine:
    """Runs collect and evaluate validation jobs for one tenant."""

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

    def collect(
        self,
        tenant_id: str,
        period_year: int,
        period_month: int,
        lookback_months: int | None = None,
    ) -> JobResult:
        """Write one pending validation per scored org unit across the lookback window."""

        result = JobResult()
        lookback = lookback_months or self._settings.validation_lookback_months

        for year, month in generate_period_range(period_year, period_month, lookback):
            scores = self._repository.list_impact_scores(tenant_id, year, month)
            if not scores:
                result.skipped_count += 1
                continue

            for score in scores:
                result.processed_count += 1
                observation = self._repository.get_behavior_observation(tenant_id, score.org_unit_id, year, month)
                actual = observation.behavior_score if observation is not None else None
                gap = abs(score.impact_score - actual) if actual is not None else None

                try:
                    _, created = self._repository.upsert_validation(
                        tenant_id=tenant_id,
                        org_unit_id=score.org_unit_id,
                        period_year=year,
                        period_month=month,
                        fields={
                            "computed_impact_score": score.impact_score,
                            "actual_behavior_score": actual,
                            "compliance_alignment_score": (
                                observation.compliance_alignment_score if observation is not None else None
                            ),
                            "risk_incident_count": observation.incident_count if observation is not None else 0,
                            "validation_gap": gap,
                            "validation_status": "pending",
                            "confidence_gap": None,
                            "data_source": VALIDATION_DATA_SOURCE,
                        },
                    )
                except (ConflictError, SQLAlchemyError) as exc:
                    self._repository.rollback()
                    result.errors.append(f"Upsert failed for {score.org_unit_id} ({year}-{month:02d}): {exc}")
                    continue

                if created:
                    result.inserted_count += 1
                else:
                    result.updated_count += 1

        self._metrics.record_validations_collected(result.inserted_count + result.updated_count)
        log_event(logger, "impact_validation_collected", tenant_id=tenant_id, lookback_months=lookback, **result.as_dict())
        return result

    def evaluate(self, tenant_id: str, period_year: int, period_month: int) -> JobResult:
        """Classify pending validations of one period by their gap."""

        result = JobResult()
        pending = self._repository.list_validations(
            tenant_id, status="pending", period_year=period_year, period_month=period_month
        )

        for validation in pending:
            result.processed_count += 1
            gap = validation.validation_gap
            if gap is None:
                result.skipped_count += 1
                continue

            status = classify_validation_gap(
                gap,
                validated_max_gap=self._settings.validated_max_gap,
                anomaly_max_gap=self._settings.anomaly_max_gap,
            )
            try:
                self._repository.update_validation_status(
                    validation.id,
                    status=status,
                    confidence_gap=confidence_gap_for(gap, threshold=self._settings.confidence_gap_threshold),
                )
            except (ConflictError, NotFoundError, SQLAlchemyError) as exc:
                self._repository.rollback()
                result.errors.append(f"Update failed for {validation.id}: {exc}")
                continue
            result.updated_count += 1

        self._metrics.record_validations_evaluated(result.updated_count)
        log_event(
            logger,
            "impact_validation_evaluated",
            tenant_id=tenant_id,
            period=f"{period_year}-{period_month:02d}",
            **result.as_dict(),
        )
        return result
