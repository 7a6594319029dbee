"""Event payload builders for awareness impact scoring."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4


def _envelope(
    *,
    event_type: str,
    occurred_at: datetime,
    produced_by: str,
    trace_id: str,
    tenant_id: str,
    data: dict[str, Any],
) -> dict[str, Any]:
    return {
        "event_id": str(uuid4()),
        "event_type": event_type,
        "event_version": "v1",
        "occurred_at": occurred_at.isoformat(),
        "produced_by": produced_by,
        "trace_id": trace_id,
        "tenant_id": tenant_id,
        "data": data,
    }


def build_impact_computed_event(
    *,
    tenant_id: str,
    org_unit_id: str,
    period_year: int,
    period_month: int,
    computed_at: datetime,
    impact_score: float,
    risk_level: str,
    confidence_level: int,
    weight_version: int | None,
    data_source: str,
    trace_id: str,
    produced_by: str,
) -> dict[str, Any]:
    """Build `awareness.impact.computed` event envelope."""

    return _envelope(
        event_type="awareness.impact.computed",
        occurred_at=computed_at,
        produced_by=produced_by,
        trace_id=trace_id,
        tenant_id=tenant_id,
        data={
            "org_unit_id": org_unit_id,
            "period_year": period_year,
            "period_month": period_month,
            "computed_at": computed_at.isoformat(),
            "impact_score": impact_score,
            "risk_level": risk_level,
            "confidence_level": confidence_level,
            "weight_version": weight_version,
            "data_source": data_source,
        },
    )


def build_impact_recomputed_event(
    *,
    tenant_id: str,
    period_year: int,
    period_month: int,
    completed_at: datetime,
    stats: dict[str, int],
    trace_id: str,
    produced_by: str,
) -> dict[str, Any]:
    """Build `awareness.impact.recomputed` event envelope for a tenant batch."""

    return _envelope(
        event_type="awareness.impact.recomputed",
        occurred_at=completed_at,
        produced_by=produced_by,
        trace_id=trace_id,
        tenant_id=tenant_id,
        data={
            "period_year": period_year,
            "period_month": period_month,
            "completed_at": completed_at.isoformat(),
            **stats,
        },
    )


def build_weights_applied_event(
    *,
    tenant_id: str,
    applied_at: datetime,
    weight_version: int,
    weights: dict[str, float],
    suggestion_id: str | None,
    applied_by: str,
    trace_id: str,
    produced_by: str,
) -> dict[str, Any]:
    """Build `awareness.impact.weights.applied` event envelope."""

    return _envelope(
        event_type="awareness.impact.weights.applied",
        occurred_at=applied_at,
        produced_by=produced_by,
        trace_id=trace_id,
        tenant_id=tenant_id,
        data={
            "weight_version": weight_version,
            "suggestion_id": suggestion_id,
            "applied_by": applied_by,
            "applied_at": applied_at.isoformat(),
            **weights,
        },
    )
