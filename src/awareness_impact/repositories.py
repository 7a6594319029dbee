"""Persistence operations for the awareness impact context."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .formula import ComputedImpactResult, ImpactWeights, InputMetrics
from .models import (
    BehaviorObservation,
    CalibrationCell,
    CalibrationRun,
    CampaignKpiSnapshot,
    ImpactScore,
    ImpactValidation,
    ImpactWeightVersion,
    WeightSuggestion,
)


class ConflictError(Exception):
    """Raised when a unique constraint conflict or illegal transition occurs."""


class NotFoundError(Exception):
    """Raised when an entity cannot be found."""


def weights_from_version(record: ImpactWeightVersion) -> ImpactWeights:
    return ImpactWeights(
        engagement_weight=record.engagement_weight,
        completion_weight=record.completion_weight,
        feedback_quality_weight=record.feedback_quality_weight,
        compliance_linkage_weight=record.compliance_linkage_weight,
    )


class ImpactRepository:
    """Repository for KPI inputs, weights, scores, validations and calibration state."""

    def __init__(self, session: Session):
        self.session = session

    def _commit(self, message: str) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError(message) from exc

    @staticmethod
    def _period_key(model: Any, tenant_id: str, org_unit_id: str, period_year: int, period_month: int) -> Select:
        return select(model).where(
            model.tenant_id == tenant_id,
            model.org_unit_id == org_unit_id,
            model.period_year == period_year,
            model.period_month == period_month,
        )

    # KPI inputs

    def upsert_kpi_snapshot(
        self,
        *,
        tenant_id: str,
        org_unit_id: str,
        period_year: int,
        period_month: int,
        started_rate: float | None,
        completion_rate: float | None,
        avg_score: float | None,
        compliance_rate: float | None,
    ) -> CampaignKpiSnapshot:
        stmt = self._period_key(CampaignKpiSnapshot, tenant_id, org_unit_id, period_year, period_month)
        snapshot = self.session.scalar(stmt)
        if snapshot is None:
            snapshot = CampaignKpiSnapshot(
                tenant_id=tenant_id,
                org_unit_id=org_unit_id,
                period_year=period_year,
                period_month=period_month,
            )
            self.session.add(snapshot)

        snapshot.started_rate = started_rate
        snapshot.completion_rate = completion_rate
        snapshot.avg_score = avg_score
        snapshot.compliance_rate = compliance_rate
        self._commit("KPI snapshot violates constraints")
        self.session.refresh(snapshot)
        return snapshot

    def get_input_metrics(
        self, tenant_id: str, org_unit_id: str, period_year: int, period_month: int
    ) -> InputMetrics | None:
        stmt = self._period_key(CampaignKpiSnapshot, tenant_id, org_unit_id, period_year, period_month)
        snapshot = self.session.scalar(stmt)
        if snapshot is None:
            return None
        return InputMetrics(
            engagement_score=snapshot.started_rate,
            completion_score=snapshot.completion_rate,
            feedback_quality_score=snapshot.avg_score,
            compliance_linkage_score=snapshot.compliance_rate,
        )

    def list_org_units(self, tenant_id: str, period_year: int, period_month: int) -> list[str]:
        stmt = (
            select(CampaignKpiSnapshot.org_unit_id)
            .where(
                CampaignKpiSnapshot.tenant_id == tenant_id,
                CampaignKpiSnapshot.period_year == period_year,
                CampaignKpiSnapshot.period_month == period_month,
            )
            .distinct()
            .order_by(CampaignKpiSnapshot.org_unit_id)
        )
        return list(self.session.scalars(stmt))

    # Weights

    def get_active_weights(self, tenant_id: str) -> ImpactWeightVersion | None:
        stmt = (
            select(ImpactWeightVersion)
            .where(ImpactWeightVersion.tenant_id == tenant_id, ImpactWeightVersion.is_active.is_(True))
            .order_by(ImpactWeightVersion.version.desc())
            .limit(1)
        )
        return self.session.scalar(stmt)

    def list_weight_versions(self, tenant_id: str) -> list[ImpactWeightVersion]:
        stmt = (
            select(ImpactWeightVersion)
            .where(ImpactWeightVersion.tenant_id == tenant_id)
            .order_by(ImpactWeightVersion.version.desc())
        )
        return list(self.session.scalars(stmt))

    def create_weight_version(
        self,
        tenant_id: str,
        weights: ImpactWeights,
        *,
        label: str | None = None,
        notes: str | None = None,
        commit: bool = True,
    ) -> ImpactWeightVersion:
        """Insert the next weight version for a tenant and make it the only active one."""

        latest = self.session.scalar(
            select(func.max(ImpactWeightVersion.version)).where(ImpactWeightVersion.tenant_id == tenant_id)
        )
        next_version = int(latest or 0) + 1

        self.session.execute(
            update(ImpactWeightVersion)
            .where(ImpactWeightVersion.tenant_id == tenant_id, ImpactWeightVersion.is_active.is_(True))
            .values(is_active=False)
        )
        record = ImpactWeightVersion(
            tenant_id=tenant_id,
            version=next_version,
            is_active=True,
            engagement_weight=weights.engagement_weight,
            completion_weight=weights.completion_weight,
            feedback_quality_weight=weights.feedback_quality_weight,
            compliance_linkage_weight=weights.compliance_linkage_weight,
            label=label,
            notes=notes,
        )
        self.session.add(record)
        if commit:
            self._commit("Weight version already exists")
            self.session.refresh(record)
        else:
            self.session.flush()
        return record

    # Scores

    def upsert_impact_score(
        self,
        *,
        tenant_id: str,
        org_unit_id: str,
        period_year: int,
        period_month: int,
        metrics: InputMetrics,
        result: ComputedImpactResult,
        weight_version: int | None,
        data_source: str,
    ) -> ImpactScore:
        stmt = self._period_key(ImpactScore, tenant_id, org_unit_id, period_year, period_month)
        record = self.session.scalar(stmt)
        if record is None:
            record = ImpactScore(
                tenant_id=tenant_id,
                org_unit_id=org_unit_id,
                period_year=period_year,
                period_month=period_month,
            )
            self.session.add(record)

        # Missing inputs are stored as 0; confidence_level carries the missing count.
        record.engagement_score = metrics.engagement_score or 0.0
        record.completion_score = metrics.completion_score or 0.0
        record.feedback_quality_score = metrics.feedback_quality_score or 0.0
        record.compliance_linkage_score = metrics.compliance_linkage_score or 0.0
        record.impact_score = result.impact_score
        record.risk_level = result.risk_level
        record.confidence_level = result.confidence_level
        record.weight_version = weight_version
        record.data_source = data_source
        record.computed_at = datetime.now(tz=timezone.utc)
        self._commit("Impact score violates constraints")
        self.session.refresh(record)
        return record

    def get_impact_score(
        self, tenant_id: str, org_unit_id: str, period_year: int, period_month: int
    ) -> ImpactScore:
        record = self.session.scalar(self._period_key(ImpactScore, tenant_id, org_unit_id, period_year, period_month))
        if record is None:
            raise NotFoundError("Impact score not found")
        return record

    def list_impact_scores(
        self,
        tenant_id: str,
        period_year: int | None = None,
        period_month: int | None = None,
    ) -> list[ImpactScore]:
        stmt = select(ImpactScore).where(ImpactScore.tenant_id == tenant_id)
        if period_year is not None:
            stmt = stmt.where(ImpactScore.period_year == period_year)
        if period_month is not None:
            stmt = stmt.where(ImpactScore.period_month == period_month)
        stmt = stmt.order_by(
            ImpactScore.period_year.desc(), ImpactScore.period_month.desc(), ImpactScore.org_unit_id
        )
        return list(self.session.scalars(stmt))

    # Behaviour observations

    def upsert_behavior_observation(
        self,
        *,
        tenant_id: str,
        org_unit_id: str,
        period_year: int,
        period_month: int,
        behavior_score: float | None,
        incident_count: int,
        compliance_alignment_score: float | None,
        source: str | None,
    ) -> BehaviorObservation:
        stmt = self._period_key(BehaviorObservation, tenant_id, org_unit_id, period_year, period_month)
        record = self.session.scalar(stmt)
        if record is None:
            record = BehaviorObservation(
                tenant_id=tenant_id,
                org_unit_id=org_unit_id,
                period_year=period_year,
                period_month=period_month,
            )
            self.session.add(record)

        record.behavior_score = behavior_score
        record.incident_count = incident_count
        record.compliance_alignment_score = compliance_alignment_score
        record.source = source
        self._commit("Behavior observation violates constraints")
        self.session.refresh(record)
        return record

    def get_behavior_observation(
        self, tenant_id: str, org_unit_id: str, period_year: int, period_month: int
    ) -> BehaviorObservation | None:
        stmt = self._period_key(BehaviorObservation, tenant_id, org_unit_id, period_year, period_month)
        return self.session.scalar(stmt)

    # Validations

    def upsert_validation(
        self,
        *,
        tenant_id: str,
        org_unit_id: str,
        period_year: int,
        period_month: int,
        fields: dict[str, Any],
    ) -> tuple[ImpactValidation, bool]:
        """Insert or update one validation row; returns (record, created)."""

        stmt = self._period_key(ImpactValidation, tenant_id, org_unit_id, period_year, period_month)
        record = self.session.scalar(stmt)
        created = record is None
        if record is None:
            record = ImpactValidation(
                tenant_id=tenant_id,
                org_unit_id=org_unit_id,
                period_year=period_year,
                period_month=period_month,
            )
            self.session.add(record)

        for name, value in fields.items():
            setattr(record, name, value)
        self._commit("Validation record violates constraints")
        self.session.refresh(record)
        return record, created

    def list_validations(
        self,
        tenant_id: str,
        *,
        status: str | None = None,
        period_year: int | None = None,
        period_month: int | None = None,
    ) -> list[ImpactValidation]:
        stmt = select(ImpactValidation).where(ImpactValidation.tenant_id == tenant_id)
        if status:
            stmt = stmt.where(ImpactValidation.validation_status == status)
        if period_year is not None:
            stmt = stmt.where(ImpactValidation.period_year == period_year)
        if period_month is not None:
            stmt = stmt.where(ImpactValidation.period_month == period_month)
        stmt = stmt.order_by(
            ImpactValidation.period_year.desc(), ImpactValidation.period_month.desc(), ImpactValidation.org_unit_id
        )
        return list(self.session.scalars(stmt))

    def update_validation_status(self, validation_id: str, *, status: str, confidence_gap: float) -> ImpactValidation:
        record = self.session.get(ImpactValidation, validation_id)
        if record is None:
            raise NotFoundError("Validation not found")
        record.validation_status = status
        record.confidence_gap = confidence_gap
        record.updated_at = datetime.now(tz=timezone.utc)
        self._commit("Validation status violates constraints")
        self.session.refresh(record)
        return record

    # Calibration

    def create_calibration_run(self, **fields: Any) -> CalibrationRun:
        run = CalibrationRun(**fields)
        self.session.add(run)
        self._commit("Calibration run violates constraints")
        self.session.refresh(run)
        return run

    def get_calibration_run(self, tenant_id: str, run_id: str) -> CalibrationRun:
        run = self.session.get(CalibrationRun, run_id)
        if run is None or run.tenant_id != tenant_id:
            raise NotFoundError("Calibration run not found")
        return run

    def update_calibration_run_metrics(self, run: CalibrationRun, **metrics: Any) -> CalibrationRun:
        for name, value in metrics.items():
            setattr(run, name, value)
        self._commit("Calibration run metrics violate constraints")
        self.session.refresh(run)
        return run

    def create_calibration_cells(self, cells: Iterable[dict[str, Any]]) -> list[CalibrationCell]:
        records = [CalibrationCell(**cell) for cell in cells]
        self.session.add_all(records)
        self._commit("Calibration cells violate constraints")
        for record in records:
            self.session.refresh(record)
        return records

    def list_calibration_cells(self, tenant_id: str, run_id: str) -> list[CalibrationCell]:
        stmt = (
            select(CalibrationCell)
            .where(CalibrationCell.tenant_id == tenant_id, CalibrationCell.calibration_run_id == run_id)
            .order_by(CalibrationCell.predicted_bucket, CalibrationCell.actual_bucket)
        )
        return list(self.session.scalars(stmt))

    # Weight suggestions

    def create_weight_suggestion(self, **fields: Any) -> WeightSuggestion:
        suggestion = WeightSuggestion(**fields)
        self.session.add(suggestion)
        self._commit("Weight suggestion violates constraints")
        self.session.refresh(suggestion)
        return suggestion

    def get_weight_suggestion(self, tenant_id: str, suggestion_id: str) -> WeightSuggestion:
        suggestion = self.session.get(WeightSuggestion, suggestion_id)
        if suggestion is None or suggestion.tenant_id != tenant_id:
            raise NotFoundError("Weight suggestion not found")
        return suggestion

    def list_weight_suggestions(self, tenant_id: str, status: str | None = None) -> list[WeightSuggestion]:
        stmt = select(WeightSuggestion).where(WeightSuggestion.tenant_id == tenant_id)
        if status:
            stmt = stmt.where(WeightSuggestion.status == status)
        return list(self.session.scalars(stmt.order_by(WeightSuggestion.created_at.desc())))

    def set_suggestion_status(
        self,
        suggestion: WeightSuggestion,
        *,
        status: str,
        reviewed_by: str | None = None,
        applied_weight_version: int | None = None,
        commit: bool = True,
    ) -> WeightSuggestion:
        suggestion.status = status
        if reviewed_by is not None:
            suggestion.reviewed_by = reviewed_by
            suggestion.reviewed_at = datetime.now(tz=timezone.utc)
        if applied_weight_version is not None:
            suggestion.applied_weight_version = applied_weight_version
        if commit:
            self._commit("Weight suggestion status violates constraints")
            self.session.refresh(suggestion)
        else:
            self.session.flush()
        return suggestion

    def commit(self) -> None:
        self._commit("Transaction violates constraints")

    def rollback(self) -> None:
        self.session.rollback()
