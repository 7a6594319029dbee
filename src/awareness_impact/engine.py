"""Impact score computation jobs for org units and whole tenants."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
import logging
from time import perf_counter
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .events import build_impact_computed_event, build_impact_recomputed_event
from .formula import DEFAULT_WEIGHTS, ComputedImpactResult, compute_impact_score
from .observability import ImpactMetrics, log_event
from .repositories import ConflictError, ImpactRepository, weights_from_version

logger = logging.getLogger("awareness_impact")


def _as_utc(value: datetime | None) -> datetime:
    # SQLite hands back naive datetimes.
    if value is None:
        return datetime.now(tz=timezone.utc)
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class OrgUnitOutcome:
    """Outcome of computing one org unit's score for a period."""

    org_unit_id: str
    success: bool
    reason: str | None = None
    result: ComputedImpactResult | None = None
    weight_version: int | None = None
    event: dict[str, Any] | None = None
    error: str | None = None


@dataclass
class RecomputeStats:
    """Counters for a tenant-wide recompute job."""

    total: int = 0
    processed: int = 0
    successful: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class ImpactScoreEngine:
    """Reads KPI inputs and active weights, computes and upserts impact scores."""

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

    def compute_for_org_unit(
        self,
        tenant_id: str,
        org_unit_id: str,
        period_year: int,
        period_month: int,
        *,
        trace_id: str,
    ) -> OrgUnitOutcome:
        started = perf_counter()
        self._metrics.record_request()

        metrics = self._repository.get_input_metrics(tenant_id, org_unit_id, period_year, period_month)
        if metrics is None:
            self._metrics.record_skipped()
            log_event(
                logger,
                "impact_score_no_data",
                tenant_id=tenant_id,
                org_unit_id=org_unit_id,
                period=f"{period_year}-{period_month:02d}",
                trace_id=trace_id,
            )
            return OrgUnitOutcome(org_unit_id=org_unit_id, success=False, reason="no_data")

        active = self._repository.get_active_weights(tenant_id)
        if active is None:
            weights, weight_version = DEFAULT_WEIGHTS, None
        else:
            weights, weight_version = weights_from_version(active), active.version

        result = compute_impact_score(metrics, weights)
        record = self._repository.upsert_impact_score(
            tenant_id=tenant_id,
            org_unit_id=org_unit_id,
            period_year=period_year,
            period_month=period_month,
            metrics=metrics,
            result=result,
            weight_version=weight_version,
            data_source=self._settings.data_source,
        )

        event = build_impact_computed_event(
            tenant_id=tenant_id,
            org_unit_id=org_unit_id,
            period_year=period_year,
            period_month=period_month,
            computed_at=_as_utc(record.computed_at),
            impact_score=result.impact_score,
            risk_level=result.risk_level,
            confidence_level=result.confidence_level,
            weight_version=weight_version,
            data_source=self._settings.data_source,
            trace_id=trace_id,
            produced_by=self._settings.event_produced_by,
        )
        latency_ms = (perf_counter() - started) * 1000.0
        self._metrics.record_computed(latency_ms, result.impact_score)
        log_event(
            logger,
            "awareness_impact_computed_event",
            tenant_id=tenant_id,
            org_unit_id=org_unit_id,
            trace_id=trace_id,
            impact_score=result.impact_score,
            risk_level=result.risk_level,
            confidence_level=result.confidence_level,
            weight_version=weight_version,
            latency_ms=round(latency_ms, 3),
        )
        return OrgUnitOutcome(
            org_unit_id=org_unit_id,
            success=True,
            result=result,
            weight_version=weight_version,
            event=event,
        )

    def recompute_tenant(
        self,
        tenant_id: str,
        period_year: int,
        period_month: int,
        *,
        trace_id: str,
    ) -> tuple[RecomputeStats, dict[str, Any]]:
        """Recompute every org unit with KPI data in the period; per-unit failures are counted."""

        self._metrics.record_tenant_recompute()
        org_units = self._repository.list_org_units(tenant_id, period_year, period_month)
        stats = RecomputeStats(total=len(org_units))

        for org_unit_id in org_units:
            try:
                outcome = self.compute_for_org_unit(
                    tenant_id, org_unit_id, period_year, period_month, trace_id=trace_id
                )
            except (ConflictError, SQLAlchemyError) as exc:
                self._repository.rollback()
                self._metrics.record_failed()
                log_event(
                    logger,
                    "impact_score_compute_error",
                    tenant_id=tenant_id,
                    org_unit_id=org_unit_id,
                    trace_id=trace_id,
                    error=str(exc),
                )
                outcome = OrgUnitOutcome(org_unit_id=org_unit_id, success=False, reason="error", error=str(exc))

            stats.processed += 1
            if outcome.success:
                stats.successful += 1
            elif outcome.reason == "no_data":
                stats.skipped += 1
            else:
                stats.failed += 1

        event = build_impact_recomputed_event(
            tenant_id=tenant_id,
            period_year=period_year,
            period_month=period_month,
            completed_at=datetime.now(tz=timezone.utc),
            stats=stats.as_dict(),
            trace_id=trace_id,
            produced_by=self._settings.event_produced_by,
        )
        log_event(
            logger,
            "awareness_impact_recompute_completed",
            tenant_id=tenant_id,
            period=f"{period_year}-{period_month:02d}",
            trace_id=trace_id,
            **stats.as_dict(),
        )
        return stats, event
