"""Impact score routes: stateless calculator, score jobs, KPI inputs."""

from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..db import get_db_session
from ..engine import ImpactScoreEngine
from ..errors import bad_request, domain_error, invalid_weights, persistence_error
from ..formula import ImpactWeights, InputMetrics, compute_impact_score, risk_level_label, validate_weights
from ..observability import get_metrics, log_event, request_trace_id
from ..repositories import ConflictError, ImpactRepository, NotFoundError
from ..schemas import (
    ComputeImpactRequest,
    ComputeImpactResponse,
    ErrorResponse,
    HealthResponse,
    ImpactJobRequest,
    ImpactJobResponse,
    ImpactScoreItem,
    ImpactScoreResponse,
    KpiSnapshotItem,
    KpiSnapshotRequest,
    KpiSnapshotResponse,
    ListImpactScoresResponse,
    OrgUnitJobResult,
    RecomputeStatsResponse,
)

router = APIRouter(tags=["impact-scores"])
logger = logging.getLogger("awareness_impact")

_settings = get_settings()
_metrics = get_metrics()


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(
        service=_settings.service_name,
        version=_settings.service_version,
        timestamp=datetime.now(tz=timezone.utc),
    )


@router.get("/metrics", response_class=PlainTextResponse)
def metrics() -> str:
    if not _settings.metrics_enabled:
        raise HTTPException(status_code=404, detail="metrics endpoint disabled")
    return _metrics.render_prometheus()


@router.post("/impact/compute", response_model=ComputeImpactResponse, responses={422: {"model": ErrorResponse}})
def compute(payload: ComputeImpactRequest, request: Request):
    if _settings.metrics_enabled:
        _metrics.record_request()

    weights = ImpactWeights(**payload.weights.model_dump()) if payload.weights else ImpactWeights()
    if not validate_weights(weights, _settings.weight_sum_tolerance):
        return invalid_weights(weights.total, _settings.weight_sum_tolerance)

    result = compute_impact_score(InputMetrics(**payload.metrics.model_dump()), weights)
    log_event(
        logger,
        "impact_compute_request",
        trace_id=request_trace_id(request.headers),
        impact_score=result.impact_score,
        risk_level=result.risk_level,
        confidence_level=result.confidence_level,
    )
    return ComputeImpactResponse(
        impact_score=result.impact_score,
        risk_level=result.risk_level,
        risk_label=risk_level_label(result.risk_level),
        confidence_level=result.confidence_level,
    )


@router.post(
    "/impact-scores/jobs",
    response_model=ImpactJobResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def run_impact_job(payload: ImpactJobRequest, request: Request, session: Session = Depends(get_db_session)):
    trace_id = request_trace_id(request.headers)
    repository = ImpactRepository(session)
    engine = ImpactScoreEngine(repository=repository, settings=_settings, metrics=_metrics)

    log_event(
        logger,
        "impact_job_request",
        action=payload.action,
        tenant_id=payload.tenant_id,
        org_unit_id=payload.org_unit_id,
        period=f"{payload.period_year}-{payload.period_month:02d}",
        trace_id=trace_id,
    )

    if payload.action == "compute_single":
        if not payload.org_unit_id:
            return bad_request("org_unit_id is required for compute_single")
        try:
            outcome = engine.compute_for_org_unit(
                payload.tenant_id,
                payload.org_unit_id,
                payload.period_year,
                payload.period_month,
                trace_id=trace_id,
            )
        except ConflictError as exc:
            _metrics.record_failed()
            return domain_error(exc)
        except SQLAlchemyError as exc:
            repository.rollback()
            _metrics.record_failed()
            log_event(
                logger,
                "impact_score_compute_error",
                tenant_id=payload.tenant_id,
                org_unit_id=payload.org_unit_id,
                trace_id=trace_id,
                error=str(exc),
            )
            return persistence_error("Impact score could not be stored")

        result = outcome.result
        return ImpactJobResponse(
            success=outcome.success,
            action=payload.action,
            result=OrgUnitJobResult(
                org_unit_id=outcome.org_unit_id,
                success=outcome.success,
                reason=outcome.reason,
                impact_score=result.impact_score if result else None,
                risk_level=result.risk_level if result else None,
                confidence_level=result.confidence_level if result else None,
                weight_version=outcome.weight_version,
            ),
            event=outcome.event,
        )

    stats, event = engine.recompute_tenant(
        payload.tenant_id, payload.period_year, payload.period_month, trace_id=trace_id
    )
    return ImpactJobResponse(
        success=True,
        action=payload.action,
        result=RecomputeStatsResponse(**stats.as_dict()),
        event=event,
    )


@router.get("/impact-scores", response_model=ListImpactScoresResponse)
def list_impact_scores(
    tenant_id: str = Query(min_length=1, max_length=64),
    period_year: int | None = Query(default=None, ge=2000, le=2100),
    period_month: int | None = Query(default=None, ge=1, le=12),
    session: Session = Depends(get_db_session),
) -> ListImpactScoresResponse:
    records = ImpactRepository(session).list_impact_scores(tenant_id, period_year, period_month)
    return ListImpactScoresResponse(data=[ImpactScoreItem.model_validate(record) for record in records])


@router.post("/kpi-snapshots", response_model=KpiSnapshotResponse, responses={409: {"model": ErrorResponse}})
def upsert_kpi_snapshot(payload: KpiSnapshotRequest, session: Session = Depends(get_db_session)):
    try:
        snapshot = ImpactRepository(session).upsert_kpi_snapshot(**payload.model_dump())
    except ConflictError as exc:
        return domain_error(exc)
    return KpiSnapshotResponse(data=KpiSnapshotItem.model_validate(snapshot))


@router.get(
    "/impact-scores/{org_unit_id}",
    response_model=ImpactScoreResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_impact_score(
    org_unit_id: str,
    tenant_id: str = Query(min_length=1, max_length=64),
    period_year: int = Query(ge=2000, le=2100),
    period_month: int = Query(ge=1, le=12),
    session: Session = Depends(get_db_session),
):
    try:
        record = ImpactRepository(session).get_impact_score(tenant_id, org_unit_id, period_year, period_month)
    except NotFoundError as exc:
        return domain_error(exc)
    return ImpactScoreResponse(data=ImpactScoreItem.model_validate(record))
