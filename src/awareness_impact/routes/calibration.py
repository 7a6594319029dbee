"""Calibration runs and weight-suggestion review routes."""

import logging

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ..calibration import CalibrationService
from ..config import get_settings
from ..db import get_db_session
from ..errors import domain_error
from ..observability import get_metrics, log_event, request_trace_id
from ..repositories import ConflictError, ImpactRepository, NotFoundError
from ..schemas import (
    ApplySuggestionResponse,
    CalibrationCellItem,
    CalibrationRunDetailResponse,
    CalibrationRunItem,
    CalibrationRunRequest,
    CalibrationRunResponse,
    ErrorResponse,
    ListCalibrationCellsResponse,
    ListWeightSuggestionsResponse,
    SuggestionReviewRequest,
    SuggestionStatus,
    WeightSuggestionItem,
    WeightVersionItem,
)

router = APIRouter(tags=["calibration"])
logger = logging.getLogger("awareness_impact")

_settings = get_settings()
_metrics = get_metrics()


def _service(session: Session) -> CalibrationService:
    return CalibrationService(repository=ImpactRepository(session), settings=_settings, metrics=_metrics)


@router.post(
    "/calibration/runs",
    response_model=CalibrationRunResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
def run_calibration(payload: CalibrationRunRequest, request: Request, session: Session = Depends(get_db_session)):
    trace_id = request_trace_id(request.headers)
    try:
        outcome = _service(session).run_calibration_analysis(
            payload.tenant_id,
            model_version=payload.model_version,
            period_start=payload.period_start,
            period_end=payload.period_end,
            run_label=payload.run_label,
            description=payload.description,
            created_by=payload.created_by,
        )
    except (ConflictError, NotFoundError) as exc:
        return domain_error(exc)

    log_event(
        logger,
        "calibration_analysis_completed",
        tenant_id=payload.tenant_id,
        run_id=outcome.run.id,
        cells=len(outcome.cells),
        suggestion_id=outcome.suggestion.id,
        overall_status=outcome.run.overall_status,
        trace_id=trace_id,
    )
    return CalibrationRunResponse(
        run=CalibrationRunItem.model_validate(outcome.run),
        cells=[CalibrationCellItem.model_validate(cell) for cell in outcome.cells],
        suggestions=[WeightSuggestionItem.model_validate(outcome.suggestion)],
    )


@router.get(
    "/calibration/runs/{run_id}",
    response_model=CalibrationRunDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_calibration_run(
    run_id: str,
    tenant_id: str = Query(min_length=1, max_length=64),
    session: Session = Depends(get_db_session),
):
    try:
        run = ImpactRepository(session).get_calibration_run(tenant_id, run_id)
    except NotFoundError as exc:
        return domain_error(exc)
    return CalibrationRunDetailResponse(data=CalibrationRunItem.model_validate(run))


@router.get(
    "/calibration/runs/{run_id}/cells",
    response_model=ListCalibrationCellsResponse,
    responses={404: {"model": ErrorResponse}},
)
def list_calibration_cells(
    run_id: str,
    tenant_id: str = Query(min_length=1, max_length=64),
    session: Session = Depends(get_db_session),
):
    repository = ImpactRepository(session)
    try:
        repository.get_calibration_run(tenant_id, run_id)
    except NotFoundError as exc:
        return domain_error(exc)
    cells = repository.list_calibration_cells(tenant_id, run_id)
    return ListCalibrationCellsResponse(data=[CalibrationCellItem.model_validate(cell) for cell in cells])


@router.get("/weight-suggestions", response_model=ListWeightSuggestionsResponse)
def list_weight_suggestions(
    tenant_id: str = Query(min_length=1, max_length=64),
    status_filter: SuggestionStatus | None = Query(default=None, alias="status"),
    session: Session = Depends(get_db_session),
) -> ListWeightSuggestionsResponse:
    suggestions = ImpactRepository(session).list_weight_suggestions(tenant_id, status_filter)
    return ListWeightSuggestionsResponse(data=[WeightSuggestionItem.model_validate(item) for item in suggestions])


@router.post(
    "/weight-suggestions/{suggestion_id}/approve",
    response_model=ApplySuggestionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def approve_weight_suggestion(
    suggestion_id: str,
    payload: SuggestionReviewRequest,
    request: Request,
    session: Session = Depends(get_db_session),
):
    try:
        suggestion, record, event = _service(session).approve_and_apply(
            payload.tenant_id, suggestion_id, payload.reviewed_by, trace_id=request_trace_id(request.headers)
        )
    except (ConflictError, NotFoundError) as exc:
        return domain_error(exc)

    return ApplySuggestionResponse(
        suggestion=WeightSuggestionItem.model_validate(suggestion),
        weights=WeightVersionItem.model_validate(record),
        event=event,
    )


@router.post(
    "/weight-suggestions/{suggestion_id}/reject",
    response_model=WeightSuggestionItem,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def reject_weight_suggestion(
    suggestion_id: str,
    payload: SuggestionReviewRequest,
    session: Session = Depends(get_db_session),
):
    try:
        suggestion = _service(session).reject(payload.tenant_id, suggestion_id, payload.reviewed_by)
    except (ConflictError, NotFoundError) as exc:
        return domain_error(exc)
    return WeightSuggestionItem.model_validate(suggestion)
