"""In-memory SQLite test client, overriding the request-scoped session."""

from collections.abc import Generator
from contextlib import contextmanager

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from awareness_impact import models  # noqa: F401
from awareness_impact.db import Base, get_db_session
from awareness_impact.main import app


@contextmanager
def build_test_client() -> Generator[TestClient, None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    testing_session_local = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    def override_get_db() -> Generator[Session, None, None]:
        session = testing_session_local()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db_session] = override_get_db
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def put_kpis(client: TestClient, org_unit_id: str, *, year: int = 2026, month: int = 9, **rates) -> None:
    payload = {
        "tenant_id": "tenant_acme",
        "org_unit_id": org_unit_id,
        "period_year": year,
        "period_month": month,
        **rates,
    }
    response = client.post("/kpi-snapshots", json=payload)
    assert response.status_code == 200, response.text
