from __future__ import annotations

import json
import logging
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.context import reset_correlation_id, set_correlation_id
from app.core.auth import get_current_principal, get_identity_provider
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.identity import Principal, StubIdentityProvider
from app.logging import JsonLogFormatter
from app.main import app


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    principal = Principal(id="user-1", email="user@acme.io", first_name="Uma", last_name="User")

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_principal] = lambda: principal
    app.dependency_overrides[get_identity_provider] = lambda: StubIdentityProvider([principal])
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_logs_include_correlation_id_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.get("/api/subaccounts/sub-404/access", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 403

    records = [record for record in caplog.records if record.name == "app.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/subaccounts/{id}/access"
        and getattr(record, "status_code", None) == 403
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_denial_log_carries_request_context(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    client.get("/api/subaccounts/sub-404/access", headers={"X-Correlation-Id": "deny-123"})

    denials = [record for record in caplog.records if record.name == "app.authz"]
    assert any(
        record.getMessage() == "authz.denied"
        and getattr(record, "correlation_id", None) == "deny-123"
        and getattr(record, "user_id", None) == "user-1"
        and getattr(record, "reason", None) == "no_role"
        for record in denials
    )


def test_json_formatter_keeps_known_fields_only() -> None:
    token = set_correlation_id("fmt-1")
    try:
        record = logging.getLogger("app.pipelines").makeRecord(
            "app.pipelines",
            logging.WARNING,
            __file__,
            1,
            "ordering.lanes_rejected",
            (),
            None,
            extra={"entity": "lane", "reason": "duplicate_order", "secret": "hunter2", "error": "x" * 900},
        )
    finally:
        reset_correlation_id(token)

    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["msg"] == "ordering.lanes_rejected"
    assert payload["level"] == "WARNING"
    assert payload["correlation_id"] == "fmt-1"
    assert payload["fields"]["entity"] == "lane"
    assert payload["fields"]["reason"] == "duplicate_order"
    assert len(payload["fields"]["error"]) == 500
    assert "secret" not in payload["fields"]
