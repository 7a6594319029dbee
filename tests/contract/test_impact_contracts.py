"""Contract tests for impact compute payloads and emitted events."""

from __future__ import annotations

from datetime import datetime, timezone
import json
from pathlib import Path

from fastapi.testclient import TestClient
import jsonschema
from referencing import Registry, Resource

from awareness_impact.events import (
    build_impact_computed_event,
    build_impact_recomputed_event,
    build_weights_applied_event,
)
from awareness_impact.main import app


ROOT = Path(__file__).resolve().parents[2]


def _absolutize_refs(schema: object, schema_path: Path) -> object:
    if isinstance(schema, dict):
        updated: dict[str, object] = {}
        for key, value in schema.items():
            if key == "$ref" and isinstance(value, str):
                if value.startswith("#") or "://" in value:
                    updated[key] = value
                else:
                    updated[key] = (schema_path.parent / value).resolve().as_uri()
            else:
                updated[key] = _absolutize_refs(value, schema_path)
        return updated

    if isinstance(schema, list):
        return [_absolutize_refs(item, schema_path) for item in schema]

    return schema


def _build_schema_store() -> tuple[dict[str, dict], Registry]:
    store: dict[str, dict] = {}
    for schema_path in (ROOT / "contracts").rglob("*.json"):
        schema = _absolutize_refs(json.loads(schema_path.read_text()), schema_path.resolve())
        if not isinstance(schema, dict):
            continue
        store[schema_path.resolve().as_uri()] = schema

    registry = Registry()
    for uri, schema in store.items():
        registry = registry.with_resource(uri, Resource.from_contents(schema))
    return store, registry


def _validator(schema_rel_path: str) -> jsonschema.Draft202012Validator:
    store, registry = _build_schema_store()
    schema = store[(ROOT / schema_rel_path).resolve().as_uri()]
    return jsonschema.Draft202012Validator(
        schema=schema,
        registry=registry,
        format_checker=jsonschema.Draft202012Validator.FORMAT_CHECKER,
    )


def test_impact_compute_request_response_contracts() -> None:
    request_payload = {
        "metrics": {
            "engagement_score": 80,
            "completion_score": 70,
            "feedback_quality_score": 85,
            "compliance_linkage_score": None,
        },
        "weights": {
            "engagement_weight": 0.4,
            "completion_weight": 0.2,
            "feedback_quality_weight": 0.2,
            "compliance_linkage_weight": 0.2,
        },
    }
    _validator("contracts/impact/impact.compute.request.schema.json").validate(request_payload)

    client = TestClient(app)
    response = client.post("/impact/compute", json=request_payload, headers={"x-trace-id": "trace-contract-impact-001"})
    assert response.status_code == 200
    _validator("contracts/impact/impact.compute.response.schema.json").validate(response.json())


def test_impact_computed_event_contract() -> None:
    event = build_impact_computed_event(
        tenant_id="tenant_acme",
        org_unit_id="ou_finance",
        period_year=2026,
        period_month=9,
        computed_at=datetime(2026, 10, 1, 8, 30, tzinfo=timezone.utc),
        impact_score=58.75,
        risk_level="medium",
        confidence_level=80,
        weight_version=None,
        data_source="impact_formula_v1",
        trace_id="trace-contract-impact-002",
        produced_by="services/awareness-impact-service",
    )
    _validator("contracts/events/awareness.impact.computed.schema.json").validate(event)


def test_impact_recomputed_event_contract() -> None:
    event = build_impact_recomputed_event(
        tenant_id="tenant_acme",
        period_year=2026,
        period_month=9,
        completed_at=datetime(2026, 10, 1, 8, 31, tzinfo=timezone.utc),
        stats={"total": 4, "processed": 4, "successful": 3, "skipped": 1, "failed": 0},
        trace_id="trace-contract-impact-003",
        produced_by="services/awareness-impact-service",
    )
    _validator("contracts/events/awareness.impact.recomputed.schema.json").validate(event)


def test_weights_applied_event_contract() -> None:
    event = build_weights_applied_event(
        tenant_id="tenant_acme",
        applied_at=datetime(2026, 10, 2, 9, 0, tzinfo=timezone.utc),
        weight_version=2,
        weights={
            "engagement_weight": 0.22,
            "completion_weight": 0.23,
            "feedback_quality_weight": 0.25,
            "compliance_linkage_weight": 0.30,
        },
        suggestion_id="8d1c7c55-6f0e-4c43-9d8e-2a51f2d2c0a1",
        applied_by="ciso@acme.test",
        trace_id="trace-contract-impact-004",
        produced_by="services/awareness-impact-service",
    )
    _validator("contracts/events/awareness.impact.weights.applied.schema.json").validate(event)


def test_computed_event_contract_rejects_unknown_risk_level() -> None:
    event = build_impact_computed_event(
        tenant_id="tenant_acme",
        org_unit_id="ou_finance",
        period_year=2026,
        period_month=9,
        computed_at=datetime(2026, 10, 1, 8, 30, tzinfo=timezone.utc),
        impact_score=58.75,
        risk_level="critical",
        confidence_level=80,
        weight_version=1,
        data_source="impact_formula_v1",
        trace_id="trace-contract-impact-005",
        produced_by="services/awareness-impact-service",
    )
    validator = _validator("contracts/events/awareness.impact.computed.schema.json")
    assert not validator.is_valid(event)
