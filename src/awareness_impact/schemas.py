"""Pydantic schemas for HTTP request and response models."""

from datetime import date, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


RiskLevel = Literal["very_low", "low", "medium", "high"]
ValidationStatus = Literal["pending", "validated", "anomaly", "calibrated"]
SuggestionStatus = Literal["draft", "approved", "applied", "rejected"]
OverallStatus = Literal["good", "needs_tuning", "bad"]
GapDirection = Literal["balanced", "overestimate", "underestimate"]

Score = Annotated[float, Field(ge=0, le=100)]


class PeriodMixin(BaseModel):
    period_year: int = Field(ge=2000, le=2100)
    period_month: int = Field(ge=1, le=12)


class InputMetricsPayload(BaseModel):
    """Four optional 0-100 input scores."""

    engagement_score: Score | None = None
    completion_score: Score | None = None
    feedback_quality_score: Score | None = None
    compliance_linkage_score: Score | None = None


class WeightsPayload(BaseModel):
    engagement_weight: float = Field(ge=0, le=1)
    completion_weight: float = Field(ge=0, le=1)
    feedback_quality_weight: float = Field(ge=0, le=1)
    compliance_linkage_weight: float = Field(ge=0, le=1)


class ComputeImpactRequest(BaseModel):
    metrics: InputMetricsPayload
    weights: WeightsPayload | None = None


class ComputeImpactResponse(BaseModel):
    impact_score: float = Field(ge=0, le=100)
    risk_level: RiskLevel
    risk_label: str
    confidence_level: int = Field(ge=50, le=99)


class ImpactJobRequest(PeriodMixin):
    """Score job request mirroring the `compute_single` / `recompute_tenant` actions."""

    action: Literal["compute_single", "recompute_tenant"]
    tenant_id: str = Field(min_length=1, max_length=64)
    org_unit_id: str | None = Field(default=None, min_length=1, max_length=128)


class OrgUnitJobResult(BaseModel):
    org_unit_id: str
    success: bool
    reason: str | None = None
    impact_score: float | None = None
    risk_level: RiskLevel | None = None
    confidence_level: int | None = None
    weight_version: int | None = None


class RecomputeStatsResponse(BaseModel):
    total: int = Field(ge=0)
    processed: int = Field(ge=0)
    successful: int = Field(ge=0)
    skipped: int = Field(ge=0)
    failed: int = Field(ge=0)


class ImpactJobResponse(BaseModel):
    success: bool
    action: Literal["compute_single", "recompute_tenant"]
    result: OrgUnitJobResult | RecomputeStatsResponse
    event: dict[str, Any] | None = None


class ImpactScoreItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    org_unit_id: str
    period_year: int
    period_month: int
    engagement_score: float
    completion_score: float
    feedback_quality_score: float
    compliance_linkage_score: float
    impact_score: float
    risk_level: RiskLevel
    confidence_level: int
    weight_version: int | None
    data_source: str
    computed_at: datetime


class ImpactScoreResponse(BaseModel):
    data: ImpactScoreItem


class ListImpactScoresResponse(BaseModel):
    data: list[ImpactScoreItem]


class KpiSnapshotRequest(PeriodMixin):
    tenant_id: str = Field(min_length=1, max_length=64)
    org_unit_id: str = Field(min_length=1, max_length=128)
    started_rate: Score | None = None
    completion_rate: Score | None = None
    avg_score: Score | None = None
    compliance_rate: Score | None = None


class KpiSnapshotItem(KpiSnapshotRequest):
    model_config = ConfigDict(from_attributes=True)


class KpiSnapshotResponse(BaseModel):
    data: KpiSnapshotItem


class CreateWeightsRequest(WeightsPayload):
    tenant_id: str = Field(min_length=1, max_length=64)
    label: str | None = Field(default=None, max_length=120)
    notes: str | None = Field(default=None, max_length=5000)


class WeightVersionItem(WeightsPayload):
    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    version: int | None
    is_active: bool
    label: str | None = None
    notes: str | None = None


class WeightVersionResponse(BaseModel):
    data: WeightVersionItem


class ListWeightVersionsResponse(BaseModel):
    data: list[WeightVersionItem]


class BehaviorObservationRequest(PeriodMixin):
    tenant_id: str = Field(min_length=1, max_length=64)
    org_unit_id: str = Field(min_length=1, max_length=128)
    behavior_score: Score | None = None
    incident_count: int = Field(default=0, ge=0)
    compliance_alignment_score: Score | None = None
    source: str | None = Field(default=None, max_length=64)


class BehaviorObservationItem(BehaviorObservationRequest):
    model_config = ConfigDict(from_attributes=True)


class BehaviorObservationResponse(BaseModel):
    data: BehaviorObservationItem


class ValidationJobRequest(PeriodMixin):
    action: Literal["collect", "evaluate"]
    tenant_id: str = Field(min_length=1, max_length=64)
    lookback_months: int | None = Field(default=None, ge=1, le=24)


class ValidationJobResponse(BaseModel):
    success: bool
    processed_count: int
    inserted_count: int
    updated_count: int
    skipped_count: int
    errors: list[str]


class ValidationItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    org_unit_id: str
    period_year: int
    period_month: int
    computed_impact_score: float
    actual_behavior_score: float | None
    compliance_alignment_score: float | None
    risk_incident_count: int
    validation_gap: float | None
    validation_status: ValidationStatus
    confidence_gap: float | None
    data_source: str


class ListValidationsResponse(BaseModel):
    data: list[ValidationItem]


class CalibrationRunRequest(BaseModel):
    tenant_id: str = Field(min_length=1, max_length=64)
    model_version: int = Field(default=1, ge=1)
    period_start: date | None = None
    period_end: date | None = None
    run_label: str | None = Field(default=None, max_length=120)
    description: str | None = Field(default=None, max_length=5000)
    created_by: str | None = Field(default=None, max_length=128)

    @model_validator(mode="after")
    def _check_window(self) -> "CalibrationRunRequest":
        if self.period_start and self.period_end and self.period_start > self.period_end:
            raise ValueError("period_start must not be after period_end")
        return self


class CalibrationRunItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    model_version: int
    period_start: date | None
    period_end: date | None
    run_label: str | None
    sample_size: int
    avg_validation_gap: float | None
    max_validation_gap: float | None
    min_validation_gap: float | None
    correlation_score: float | None
    overall_status: OverallStatus | None


class CalibrationCellItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    predicted_bucket: str
    actual_bucket: str
    count_samples: int
    avg_predicted_score: float
    avg_actual_score: float
    avg_gap: float
    gap_direction: GapDirection
    is_outlier_bucket: bool
    predicted_score_min: float
    predicted_score_max: float
    actual_score_min: float
    actual_score_max: float


class WeightSuggestionItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    calibration_run_id: str
    source_weight_version: int
    suggested_weight_version: int
    suggested_engagement_weight: float
    suggested_completion_weight: float
    suggested_feedback_quality_weight: float
    suggested_compliance_linkage_weight: float
    rationale: str
    status: SuggestionStatus
    reviewed_by: str | None
    applied_weight_version: int | None


class CalibrationRunResponse(BaseModel):
    run: CalibrationRunItem
    cells: list[CalibrationCellItem]
    suggestions: list[WeightSuggestionItem]


class CalibrationRunDetailResponse(BaseModel):
    data: CalibrationRunItem


class ListCalibrationCellsResponse(BaseModel):
    data: list[CalibrationCellItem]


class ListWeightSuggestionsResponse(BaseModel):
    data: list[WeightSuggestionItem]


class SuggestionReviewRequest(BaseModel):
    tenant_id: str = Field(min_length=1, max_length=64)
    reviewed_by: str = Field(min_length=1, max_length=128)


class ApplySuggestionResponse(BaseModel):
    suggestion: WeightSuggestionItem
    weights: WeightVersionItem
    event: dict[str, Any]


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorDetail


class HealthResponse(BaseModel):
    """Health endpoint response."""

    status: Literal["ok"] = "ok"
    service: str
    version: str
    timestamp: datetime
