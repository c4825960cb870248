from __future__ import annotations

import os
from collections.abc import Generator

import httpx
import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("OTEL_ENABLED", "true")

from app.context import reset_correlation_id, set_correlation_id
from app.core.auth import get_current_principal, get_identity_provider
from app.core.config import Settings, get_settings
from app.core.database import Base, get_db
from app.identity import ClerkIdentityProvider, Principal, StubIdentityProvider
from app.main import app
from app.otel import setup_inmemory_otel, setup_otel


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
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel("api")
    exporter.clear()
    return exporter


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


def test_request_span_contains_correlation_id(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    response = client.get("/api/subaccounts/sub-1/access", headers={"X-Correlation-Id": "otel-corr-1"})
    assert response.status_code == 403

    spans = span_exporter.get_finished_spans()
    assert spans
    assert any(span.attributes.get("correlation_id") == "otel-corr-1" for span in spans)


def test_identity_call_span_contains_user_and_correlation(span_exporter: InMemorySpanExporter) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": "user_jane",
                "first_name": "Jane",
                "last_name": "Doe",
                "email_addresses": [{"id": "idn_1", "email_address": "jane@acme.io"}],
            },
        )

    provider = ClerkIdentityProvider(
        secret_key="sk_test",
        base_url="https://clerk.test/v1",
        base_delay=0,
        transport=httpx.MockTransport(handler),
    )
    token = set_correlation_id("otel-identity-1")
    try:
        principal = provider.get_user("user_jane")
    finally:
        reset_correlation_id(token)
        provider.close()

    assert principal is not None
    identity_spans = [span for span in span_exporter.get_finished_spans() if span.name == "identity.get_user"]
    assert identity_spans
    assert identity_spans[-1].attributes.get("user_id") == "user_jane"
    assert identity_spans[-1].attributes.get("correlation_id") == "otel-identity-1"


def test_setup_otel_is_a_noop_when_disabled() -> None:
    assert setup_otel(Settings(otel_enabled=False)) is None
