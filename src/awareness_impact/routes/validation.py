"""Validation framework routes: behaviour inputs and collect/evaluate jobs."""

import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ..config import get_settings
from ..db import get_db_session
from ..errors import domain_error
from ..observability import get_metrics, log_event, request_trace_id
from ..repositories import ConflictError, ImpactRepository
from ..schemas import (
    BehaviorObservationItem,
    BehaviorObservationRequest,
    BehaviorObservationResponse,
    ErrorResponse,
    ListValidationsResponse,
    ValidationItem,
    ValidationJobRequest,
    ValidationJobResponse,
    ValidationStatus,
)
from ..validation import ValidationEngine

router = APIRouter(tags=["validation"])
logger = logging.getLogger("awareness_impact")

_settings = get_settings()
_metrics = get_metrics()


@router.post(
    "/behavior-observations",
    response_model=BehaviorObservationResponse,
    responses={409: {"model": ErrorResponse}},
)
def upsert_behavior_observation(payload: BehaviorObservationRequest, session: Session = Depends(get_db_session)):
    try:
        record = ImpactRepository(session).upsert_behavior_observation(**payload.model_dump())
    except ConflictError as exc:
        return domain_error(exc)
    return BehaviorObservationResponse(data=BehaviorObservationItem.model_validate(record))


@router.post("/validations/jobs", response_model=ValidationJobResponse)
def run_validation_job(
    payload: ValidationJobRequest,
    request: Request,
    session: Session = Depends(get_db_session),
) -> ValidationJobResponse:
    trace_id = request_trace_id(request.headers)
    log_event(
        logger,
        "impact_validation_job_request",
        action=payload.action,
        tenant_id=payload.tenant_id,
        period=f"{payload.period_year}-{payload.period_month:02d}",
        trace_id=trace_id,
    )

    engine = ValidationEngine(repository=ImpactRepository(session), settings=_settings, metrics=_metrics)
    if payload.action == "collect":
        result = engine.collect(payload.tenant_id, payload.period_year, payload.period_month, payload.lookback_months)
    else:
        result = engine.evaluate(payload.tenant_id, payload.period_year, payload.period_month)
    return ValidationJobResponse(**result.as_dict())


@router.get("/validations", response_model=ListValidationsResponse)
def list_validations(
    tenant_id: str = Query(min_length=1, max_length=64),
    status_filter: ValidationStatus | None = Query(default=None, alias="status"),
    period_year: int | None = Query(default=None, ge=2000, le=2100),
    period_month: int | None = Query(default=None, ge=1, le=12),
    session: Session = Depends(get_db_session),
) -> ListValidationsResponse:
    records = ImpactRepository(session).list_validations(
        tenant_id, status=status_filter, period_year=period_year, period_month=period_month
    )
    return ListValidationsResponse(data=[ValidationItem.model_validate(record) for record in records])
