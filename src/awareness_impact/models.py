"""SQLAlchemy models for the awareness impact bounded context."""

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _period_constraints(prefix: str) -> tuple[CheckConstraint, CheckConstraint]:
    return (
        CheckConstraint("period_month BETWEEN 1 AND 12", name=f"ck_{prefix}_period_month"),
        CheckConstraint("period_year BETWEEN 2000 AND 2100", name=f"ck_{prefix}_period_year"),
    )


class CampaignKpiSnapshot(Base):
    """Per-period campaign KPIs used as impact formula inputs."""

    __tablename__ = "awareness_campaign_kpis"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    org_unit_id: Mapped[str] = mapped_column(String(128), nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    started_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    completion_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    compliance_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "org_unit_id", "period_year", "period_month", name="uq_campaign_kpis_period"),
        *_period_constraints("campaign_kpis"),
    )


class ImpactWeightVersion(Base):
    """Versioned weight configuration; at most one active row per tenant."""

    __tablename__ = "awareness_impact_weights"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    engagement_weight: Mapped[float] = mapped_column(Float, nullable=False)
    completion_weight: Mapped[float] = mapped_column(Float, nullable=False)
    feedback_quality_weight: Mapped[float] = mapped_column(Float, nullable=False)
    compliance_linkage_weight: Mapped[float] = mapped_column(Float, nullable=False)
    label: Mapped[str | None] = mapped_column(String(120), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "version", name="uq_impact_weights_version"),
        CheckConstraint("version >= 1", name="ck_impact_weights_version"),
    )


class ImpactScore(Base):
    """Computed impact score for one org unit and period."""

    __tablename__ = "awareness_impact_scores"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    org_unit_id: Mapped[str] = mapped_column(String(128), nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    engagement_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    completion_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    feedback_quality_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    compliance_linkage_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    impact_score: Mapped[float] = mapped_column(Float, nullable=False)
    risk_level: Mapped[str] = mapped_column(String(16), nullable=False)
    confidence_level: Mapped[int] = mapped_column(Integer, nullable=False)
    weight_version: Mapped[int | None] = mapped_column(Integer, nullable=True)
    data_source: Mapped[str] = mapped_column(String(64), nullable=False)
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "org_unit_id", "period_year", "period_month", name="uq_impact_scores_period"),
        CheckConstraint("impact_score BETWEEN 0 AND 100", name="ck_impact_scores_impact_score"),
        CheckConstraint(
            "risk_level IN ('very_low', 'low', 'medium', 'high')",
            name="ck_impact_scores_risk_level",
        ),
        CheckConstraint("confidence_level BETWEEN 50 AND 99", name="ck_impact_scores_confidence_level"),
        *_period_constraints("impact_scores"),
    )


class BehaviorObservation(Base):
    """Observed behaviour and compliance outcomes for one org unit and period."""

    __tablename__ = "awareness_behavior_observations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    org_unit_id: Mapped[str] = mapped_column(String(128), nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    behavior_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    incident_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    compliance_alignment_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    source: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "org_unit_id", "period_year", "period_month", name="uq_behavior_observations_period"
        ),
        CheckConstraint("incident_count >= 0", name="ck_behavior_observations_incident_count"),
        *_period_constraints("behavior_observations"),
    )


class ImpactValidation(Base):
    """Comparison of a computed impact score against observed behaviour."""

    __tablename__ = "awareness_impact_validations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    org_unit_id: Mapped[str] = mapped_column(String(128), nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    computed_impact_score: Mapped[float] = mapped_column(Float, nullable=False)
    actual_behavior_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    compliance_alignment_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    risk_incident_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    validation_gap: Mapped[float | None] = mapped_column(Float, nullable=True)
    validation_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    confidence_gap: Mapped[float | None] = mapped_column(Float, nullable=True)
    data_source: Mapped[str] = mapped_column(String(64), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "org_unit_id", "period_year", "period_month", name="uq_impact_validations_period"
        ),
        CheckConstraint(
            "validation_status IN ('pending', 'validated', 'anomaly', 'calibrated')",
            name="ck_impact_validations_status",
        ),
        *_period_constraints("impact_validations"),
    )


class CalibrationRun(Base):
    """One calibration analysis over a validation window."""

    __tablename__ = "awareness_impact_calibration_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    model_version: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    period_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    run_label: Mapped[str | None] = mapped_column(String(120), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    sample_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    avg_validation_gap: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_validation_gap: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_validation_gap: Mapped[float | None] = mapped_column(Float, nullable=True)
    correlation_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    overall_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    cells: Mapped[list["CalibrationCell"]] = relationship(back_populates="run", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint(
            "overall_status IS NULL OR overall_status IN ('good', 'needs_tuning', 'bad')",
            name="ck_calibration_runs_overall_status",
        ),
    )


class CalibrationCell(Base):
    """Aggregate of validations sharing a (predicted, actual) bucket pair."""

    __tablename__ = "awareness_impact_calibration_cells"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    calibration_run_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("awareness_impact_calibration_runs.id", ondelete="CASCADE"), nullable=False
    )
    predicted_bucket: Mapped[str] = mapped_column(String(32), nullable=False)
    actual_bucket: Mapped[str] = mapped_column(String(32), nullable=False)
    count_samples: Mapped[int] = mapped_column(Integer, nullable=False)
    avg_predicted_score: Mapped[float] = mapped_column(Float, nullable=False)
    avg_actual_score: Mapped[float] = mapped_column(Float, nullable=False)
    avg_gap: Mapped[float] = mapped_column(Float, nullable=False)
    gap_direction: Mapped[str] = mapped_column(String(16), nullable=False)
    is_outlier_bucket: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    predicted_score_min: Mapped[float] = mapped_column(Float, nullable=False)
    predicted_score_max: Mapped[float] = mapped_column(Float, nullable=False)
    actual_score_min: Mapped[float] = mapped_column(Float, nullable=False)
    actual_score_max: Mapped[float] = mapped_column(Float, nullable=False)

    run: Mapped[CalibrationRun] = relationship(back_populates="cells")

    __table_args__ = (
        CheckConstraint(
            "gap_direction IN ('balanced', 'overestimate', 'underestimate')",
            name="ck_calibration_cells_gap_direction",
        ),
    )


class WeightSuggestion(Base):
    """Proposed weight version derived from a calibration run."""

    __tablename__ = "awareness_impact_weight_suggestions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    calibration_run_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("awareness_impact_calibration_runs.id", ondelete="CASCADE"), nullable=False
    )
    source_weight_version: Mapped[int] = mapped_column(Integer, nullable=False)
    suggested_weight_version: Mapped[int] = mapped_column(Integer, nullable=False)
    suggested_engagement_weight: Mapped[float] = mapped_column(Float, nullable=False)
    suggested_completion_weight: Mapped[float] = mapped_column(Float, nullable=False)
    suggested_feedback_quality_weight: Mapped[float] = mapped_column(Float, nullable=False)
    suggested_compliance_linkage_weight: Mapped[float] = mapped_column(Float, nullable=False)
    rationale: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    reviewed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    applied_weight_version: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'approved', 'applied', 'rejected')",
            name="ck_weight_suggestions_status",
        ),
    )
