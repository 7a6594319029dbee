"""API tests for impact scoring, KPI inputs and weight configuration."""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from awareness_impact.observability import get_metrics
from awareness_impact.repositories import ConflictError, ImpactRepository
from support import build_test_client, put_kpis


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    get_metrics().reset()


def test_health_endpoint() -> None:
    with build_test_client() as client:
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["service"] == "awareness-impact-service"


def test_compute_endpoint_uses_default_weights() -> None:
    with build_test_client() as client:
        response = client.post(
            "/impact/compute",
            json={
                "metrics": {
                    "engagement_score": 80,
                    "completion_score": 70,
                    "feedback_quality_score": 85,
                    "compliance_linkage_score": 75,
                }
            },
        )
        assert response.status_code == 200
        assert response.json() == {
            "impact_score": 77.5,
            "risk_level": "low",
            "risk_label": "Low Risk",
            "confidence_level": 90,
        }


def test_compute_endpoint_reports_missing_metrics_through_confidence() -> None:
    with build_test_client() as client:
        response = client.post("/impact/compute", json={"metrics": {}})
        assert response.status_code == 200
        body = response.json()
        assert body["impact_score"] == 0.0
        assert body["risk_level"] == "high"
        assert body["confidence_level"] == 50


def test_compute_endpoint_rejects_weights_that_do_not_sum_to_one() -> None:
    with build_test_client() as client:
        response = client.post(
            "/impact/compute",
            json={
                "metrics": {"engagement_score": 50},
                "weights": {
                    "engagement_weight": 0.5,
                    "completion_weight": 0.5,
                    "feedback_quality_weight": 0.5,
                    "compliance_linkage_weight": 0.5,
                },
            },
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_WEIGHTS"


def test_compute_endpoint_rejects_scores_outside_range() -> None:
    with build_test_client() as client:
        response = client.post("/impact/compute", json={"metrics": {"engagement_score": 150}})
        assert response.status_code == 422


def test_compute_single_requires_org_unit() -> None:
    with build_test_client() as client:
        response = client.post(
            "/impact-scores/jobs",
            json={"action": "compute_single", "tenant_id": "tenant_acme", "period_year": 2026, "period_month": 9},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_REQUEST"


def test_compute_single_without_kpis_reports_no_data() -> None:
    with build_test_client() as client:
        response = client.post(
            "/impact-scores/jobs",
            json={
                "action": "compute_single",
                "tenant_id": "tenant_acme",
                "org_unit_id": "ou_finance",
                "period_year": 2026,
                "period_month": 9,
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["result"]["reason"] == "no_data"
        assert body["event"] is None


def test_compute_single_persists_score_and_emits_event() -> None:
    with build_test_client() as client:
        put_kpis(
            client,
            "ou_finance",
            started_rate=80,
            completion_rate=70,
            avg_score=85,
            compliance_rate=None,
        )
        response = client.post(
            "/impact-scores/jobs",
            json={
                "action": "compute_single",
                "tenant_id": "tenant_acme",
                "org_unit_id": "ou_finance",
                "period_year": 2026,
                "period_month": 9,
            },
            headers={"x-trace-id": "trace-impact-single-001"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["result"]["impact_score"] == 58.75
        assert body["result"]["confidence_level"] == 80
        assert body["result"]["weight_version"] is None
        assert body["event"]["event_type"] == "awareness.impact.computed"
        assert body["event"]["trace_id"] == "trace-impact-single-001"
        assert body["event"]["data"]["org_unit_id"] == "ou_finance"

        listed = client.get("/impact-scores?tenant_id=tenant_acme&period_year=2026&period_month=9")
        assert listed.status_code == 200
        rows = listed.json()["data"]
        assert len(rows) == 1
        assert rows[0]["compliance_linkage_score"] == 0.0
        assert rows[0]["data_source"] == "impact_formula_v1"

        single = client.get("/impact-scores/ou_finance?tenant_id=tenant_acme&period_year=2026&period_month=9")
        assert single.status_code == 200
        assert single.json()["data"]["impact_score"] == 58.75

        missing = client.get("/impact-scores/ou_finance?tenant_id=tenant_acme&period_year=2026&period_month=8")
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "NOT_FOUND"


def test_recompute_is_idempotent_per_period() -> None:
    with build_test_client() as client:
        put_kpis(client, "ou_finance", started_rate=90, completion_rate=90, avg_score=90, compliance_rate=90)
        job = {
            "action": "compute_single",
            "tenant_id": "tenant_acme",
            "org_unit_id": "ou_finance",
            "period_year": 2026,
            "period_month": 9,
        }
        assert client.post("/impact-scores/jobs", json=job).status_code == 200
        put_kpis(client, "ou_finance", started_rate=30, completion_rate=30, avg_score=30, compliance_rate=30)
        assert client.post("/impact-scores/jobs", json=job).status_code == 200

        rows = client.get("/impact-scores?tenant_id=tenant_acme").json()["data"]
        assert len(rows) == 1
        assert rows[0]["impact_score"] == 30.0
        assert rows[0]["risk_level"] == "high"


def test_recompute_tenant_processes_only_the_requested_period() -> None:
    with build_test_client() as client:
        put_kpis(client, "ou_finance", started_rate=90, completion_rate=90, avg_score=90, compliance_rate=90)
        put_kpis(client, "ou_hr", started_rate=50, completion_rate=40, avg_score=None, compliance_rate=60)
        put_kpis(client, "ou_ops", started_rate=10, completion_rate=20, avg_score=30, compliance_rate=40)
        put_kpis(client, "ou_legal", month=8, started_rate=70, completion_rate=70, avg_score=70, compliance_rate=70)

        response = client.post(
            "/impact-scores/jobs",
            json={"action": "recompute_tenant", "tenant_id": "tenant_acme", "period_year": 2026, "period_month": 9},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["result"] == {"total": 3, "processed": 3, "successful": 3, "skipped": 0, "failed": 0}
        assert body["event"]["event_type"] == "awareness.impact.recomputed"
        assert body["event"]["data"]["successful"] == 3

        rows = client.get("/impact-scores?tenant_id=tenant_acme").json()["data"]
        assert sorted(row["org_unit_id"] for row in rows) == ["ou_finance", "ou_hr", "ou_ops"]


def test_recompute_tenant_with_no_kpis_is_empty() -> None:
    with build_test_client() as client:
        response = client.post(
            "/impact-scores/jobs",
            json={"action": "recompute_tenant", "tenant_id": "tenant_empty", "period_year": 2026, "period_month": 9},
        )
        assert response.status_code == 200
        assert response.json()["result"]["total"] == 0


def test_job_rejects_invalid_period() -> None:
    with build_test_client() as client:
        response = client.post(
            "/impact-scores/jobs",
            json={"action": "recompute_tenant", "tenant_id": "tenant_acme", "period_year": 2026, "period_month": 13},
        )
        assert response.status_code == 422


def test_active_weights_default_until_a_version_exists() -> None:
    with build_test_client() as client:
        response = client.get("/weights/active?tenant_id=tenant_acme")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["version"] is None
        assert data["engagement_weight"] == 0.25


def test_weight_versions_are_sequential_with_one_active() -> None:
    with build_test_client() as client:
        first = client.post(
            "/weights",
            json={
                "tenant_id": "tenant_acme",
                "engagement_weight": 0.4,
                "completion_weight": 0.2,
                "feedback_quality_weight": 0.2,
                "compliance_linkage_weight": 0.2,
                "label": "Engagement heavy",
            },
        )
        assert first.status_code == 201
        assert first.json()["data"]["version"] == 1

        second = client.post(
            "/weights",
            json={
                "tenant_id": "tenant_acme",
                "engagement_weight": 0.1,
                "completion_weight": 0.2,
                "feedback_quality_weight": 0.3,
                "compliance_linkage_weight": 0.4,
            },
        )
        assert second.status_code == 201
        assert second.json()["data"]["version"] == 2

        versions = client.get("/weights?tenant_id=tenant_acme").json()["data"]
        assert [(item["version"], item["is_active"]) for item in versions] == [(2, True), (1, False)]

        active = client.get("/weights/active?tenant_id=tenant_acme").json()["data"]
        assert active["version"] == 2
        assert active["compliance_linkage_weight"] == 0.4


def test_create_weights_rejects_bad_sum() -> None:
    with build_test_client() as client:
        response = client.post(
            "/weights",
            json={
                "tenant_id": "tenant_acme",
                "engagement_weight": 0.3,
                "completion_weight": 0.3,
                "feedback_quality_weight": 0.3,
                "compliance_linkage_weight": 0.3,
            },
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_WEIGHTS"
        assert client.get("/weights?tenant_id=tenant_acme").json()["data"] == []


def test_scores_record_the_active_weight_version() -> None:
    with build_test_client() as client:
        client.post(
            "/weights",
            json={
                "tenant_id": "tenant_acme",
                "engagement_weight": 0.0,
                "completion_weight": 0.0,
                "feedback_quality_weight": 0.0,
                "compliance_linkage_weight": 1.0,
            },
        )
        put_kpis(client, "ou_finance", started_rate=10, completion_rate=10, avg_score=10, compliance_rate=95)
        body = client.post(
            "/impact-scores/jobs",
            json={
                "action": "compute_single",
                "tenant_id": "tenant_acme",
                "org_unit_id": "ou_finance",
                "period_year": 2026,
                "period_month": 9,
            },
        ).json()
        assert body["result"]["weight_version"] == 1
        assert body["result"]["impact_score"] == 95.0
        assert body["result"]["risk_level"] == "very_low"


def test_metrics_endpoint_tracks_score_jobs() -> None:
    with build_test_client() as client:
        before = client.get("/metrics")
        assert before.status_code == 200
        assert "awareness_impact_score_requests_total 0" in before.text

        put_kpis(client, "ou_finance", started_rate=50, completion_rate=50, avg_score=50, compliance_rate=50)
        for org_unit_id in ("ou_finance", "ou_unknown"):
            client.post(
                "/impact-scores/jobs",
                json={
                    "action": "compute_single",
                    "tenant_id": "tenant_acme",
                    "org_unit_id": org_unit_id,
                    "period_year": 2026,
                    "period_month": 9,
                },
            )

        after = client.get("/metrics").text
        assert "awareness_impact_score_requests_total 2" in after
        assert "awareness_impact_scores_computed_total 1" in after
        assert "awareness_impact_scores_skipped_total 1" in after
        assert "awareness_impact_last_impact_score 50.00" in after


def _fail_upsert_for(monkeypatch, org_unit_id: str, error: Exception) -> None:
    original = ImpactRepository.upsert_impact_score

    def upsert_impact_score(self, **fields):
        if fields["org_unit_id"] == org_unit_id:
            raise error
        return original(self, **fields)

    monkeypatch.setattr(ImpactRepository, "upsert_impact_score", upsert_impact_score)


def test_recompute_tenant_counts_failed_org_unit_and_keeps_going(monkeypatch) -> None:
    with build_test_client() as client:
        put_kpis(client, "ou_bad", started_rate=60, completion_rate=60, avg_score=60, compliance_rate=60)
        put_kpis(client, "ou_good", started_rate=80, completion_rate=80, avg_score=80, compliance_rate=80)
        _fail_upsert_for(monkeypatch, "ou_bad", ConflictError("Impact score violates constraints"))

        response = client.post(
            "/impact-scores/jobs",
            json={"action": "recompute_tenant", "tenant_id": "tenant_acme", "period_year": 2026, "period_month": 9},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["result"] == {"total": 2, "processed": 2, "successful": 1, "skipped": 0, "failed": 1}
        assert body["event"]["data"]["failed"] == 1

        rows = client.get("/impact-scores?tenant_id=tenant_acme").json()["data"]
        assert [row["org_unit_id"] for row in rows] == ["ou_good"]
        assert rows[0]["impact_score"] == 80.0

        metrics = client.get("/metrics").text
        assert "awareness_impact_scores_failed_total 1" in metrics
        assert "awareness_impact_scores_computed_total 1" in metrics


def test_recompute_tenant_isolates_database_errors(monkeypatch) -> None:
    with build_test_client() as client:
        put_kpis(client, "ou_bad", started_rate=60, completion_rate=60, avg_score=60, compliance_rate=60)
        put_kpis(client, "ou_good", started_rate=80, completion_rate=80, avg_score=80, compliance_rate=80)
        _fail_upsert_for(monkeypatch, "ou_bad", SQLAlchemyError("database is locked"))

        body = client.post(
            "/impact-scores/jobs",
            json={"action": "recompute_tenant", "tenant_id": "tenant_acme", "period_year": 2026, "period_month": 9},
        ).json()
        assert body["result"]["successful"] == 1
        assert body["result"]["failed"] == 1


def test_compute_single_database_error_returns_error_envelope(monkeypatch) -> None:
    with build_test_client() as client:
        put_kpis(client, "ou_finance", started_rate=60, completion_rate=60, avg_score=60, compliance_rate=60)
        _fail_upsert_for(monkeypatch, "ou_finance", SQLAlchemyError("database is locked"))

        response = client.post(
            "/impact-scores/jobs",
            json={
                "action": "compute_single",
                "tenant_id": "tenant_acme",
                "org_unit_id": "ou_finance",
                "period_year": 2026,
                "period_month": 9,
            },
        )
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "PERSISTENCE_ERROR"
        assert "awareness_impact_scores_failed_total 1" in client.get("/metrics").text


def test_compute_endpoint_counts_requests() -> None:
    with build_test_client() as client:
        for _ in range(2):
            response = client.post("/impact/compute", json={"metrics": {"engagement_score": 40}})
            assert response.status_code == 200

        assert "awareness_impact_score_requests_total 2" in client.get("/metrics").text
