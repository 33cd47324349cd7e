"""Pytest configuration and fixtures."""

import json
import os

# Must be set before possync is imported: settings and the engine are built at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("POS_SCHEDULER_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("POS_API_KEY", "")

from typing import Any, Callable, Dict, Generator, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from possync.db.base import Base
from possync.db.session import get_db
from possync.main import app
# Import all models to ensure they're registered with Base.metadata
from possync.models import *
from possync.services.pos.client import TuuClient, client_registry

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"
TEST_BASE_URL = "https://pos.test"


class FakeTuuApi:
    """In-process stand-in for the Tuu API, served through httpx.MockTransport.

    ``pages`` maps a page number to the JSON body returned for it; a page
    that is not listed answers with an empty ``data`` list. Set ``status``
    to make every call fail with that HTTP status. A ``responder`` callable,
    given the request payload, overrides both and may return a body or an
    httpx.Response.
    """

    def __init__(self):
        self.pages: Dict[int, Any] = {}
        self.status: int = 200
        self.error_body: Any = {"message": "boom"}
        self.requests: List[httpx.Request] = []
        self.payloads: List[Dict[str, Any]] = []
        self.responder: Optional[Callable[[Dict[str, Any]], Any]] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        payload = json.loads(request.content or b"{}")
        self.payloads.append(payload)
        if self.status != 200:
            return httpx.Response(self.status, json=self.error_body)
        if self.responder is not None:
            body = self.responder(payload)
            if isinstance(body, httpx.Response):
                return body
            return httpx.Response(200, json=body)
        return httpx.Response(200, json=self.pages.get(payload.get("page", 1), {"data": []}))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_api() -> FakeTuuApi:
    return FakeTuuApi()


@pytest.fixture
def tuu_client(fake_api: FakeTuuApi) -> TuuClient:
    return TuuClient("test-key", TEST_BASE_URL, timeout=5, transport=fake_api.transport)


@pytest.fixture
def pos_config(db_session: Session) -> PosConfiguration:
    """An enabled configuration with an API key."""
    config = PosConfiguration(
        api_key="test-key",
        base_url=TEST_BASE_URL,
        auto_sync_enabled=True,
        sync_interval_hours=24,
        max_days_to_sync=60,
        retention_days=365,
    )
    db_session.add(config)
    db_session.commit()
    db_session.refresh(config)
    return config


@pytest.fixture(scope="function")
def client(db_session: Session, fake_api: FakeTuuApi) -> Generator[TestClient, None, None]:
    """Create a test client with database override and a fake upstream API."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    client_registry.reset()
    client_registry.transport = fake_api.transport
    # Disable rate limiters during tests to avoid flaky failures
    from possync.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    client_registry.transport = None
    client_registry.reset()
    app.dependency_overrides.clear()
