"""Weight configuration routes."""

import logging

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ..config import get_settings
from ..db import get_db_session
from ..errors import domain_error, invalid_weights
from ..formula import DEFAULT_WEIGHTS, ImpactWeights, validate_weights
from ..observability import log_event, request_trace_id
from ..repositories import ConflictError, ImpactRepository
from ..schemas import (
    CreateWeightsRequest,
    ErrorResponse,
    ListWeightVersionsResponse,
    WeightVersionItem,
    WeightVersionResponse,
)

router = APIRouter(tags=["weights"])
logger = logging.getLogger("awareness_impact")

_settings = get_settings()


@router.get("/weights", response_model=ListWeightVersionsResponse)
def list_weight_versions(
    tenant_id: str = Query(min_length=1, max_length=64),
    session: Session = Depends(get_db_session),
) -> ListWeightVersionsResponse:
    records = ImpactRepository(session).list_weight_versions(tenant_id)
    return ListWeightVersionsResponse(data=[WeightVersionItem.model_validate(record) for record in records])


@router.get("/weights/active", response_model=WeightVersionResponse)
def get_active_weights(
    tenant_id: str = Query(min_length=1, max_length=64),
    session: Session = Depends(get_db_session),
) -> WeightVersionResponse:
    record = ImpactRepository(session).get_active_weights(tenant_id)
    if record is None:
        return WeightVersionResponse(
            data=WeightVersionItem(
                tenant_id=tenant_id,
                version=None,
                is_active=True,
                label="Default weights",
                engagement_weight=DEFAULT_WEIGHTS.engagement_weight,
                completion_weight=DEFAULT_WEIGHTS.completion_weight,
                feedback_quality_weight=DEFAULT_WEIGHTS.feedback_quality_weight,
                compliance_linkage_weight=DEFAULT_WEIGHTS.compliance_linkage_weight,
            )
        )
    return WeightVersionResponse(data=WeightVersionItem.model_validate(record))


@router.post(
    "/weights",
    response_model=WeightVersionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def create_weight_version(payload: CreateWeightsRequest, request: Request, session: Session = Depends(get_db_session)):
    weights = ImpactWeights(
        engagement_weight=payload.engagement_weight,
        completion_weight=payload.completion_weight,
        feedback_quality_weight=payload.feedback_quality_weight,
        compliance_linkage_weight=payload.compliance_linkage_weight,
    )
    if not validate_weights(weights, _settings.weight_sum_tolerance):
        return invalid_weights(weights.total, _settings.weight_sum_tolerance)

    try:
        record = ImpactRepository(session).create_weight_version(
            payload.tenant_id, weights, label=payload.label, notes=payload.notes
        )
    except ConflictError as exc:
        return domain_error(exc)

    log_event(
        logger,
        "impact_weights_created",
        tenant_id=payload.tenant_id,
        version=record.version,
        trace_id=request_trace_id(request.headers),
    )
    return WeightVersionResponse(data=WeightVersionItem.model_validate(record))
