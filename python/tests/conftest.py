"""Pytest configuration and fixtures for Kivendi tests.

Test isolation strategy:
- Every test that touches the database gets a fresh in-memory SQLite
  engine with the full schema; the application session factory is pointed
  at it for the duration of the test
- Outbound collaborators (payment gateway, push transport, object store)
  are in-process fakes passed to create_app()
- Auth tests use HS256 tokens minted with TEST_JWT_SECRET
"""

import os

# Settings are read at import time by kivendi.celery; pin them before any kivendi import.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("KKIAPAY_SECRET", "test-webhook-secret")
os.environ.setdefault("RUN_BOOST_EXPIRY_LOOP", "false")

from collections.abc import Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import Engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from kivendi.app import add_request_id_middleware, create_app  # noqa: E402
from kivendi.auth.verifier import JwtTokenVerifier  # noqa: E402
from kivendi.config import clear_settings_cache  # noqa: E402
from kivendi.db.engine import create_db_engine  # noqa: E402
from kivendi.db.models import Base  # noqa: E402
from kivendi.db.session import create_session_factory, set_session_factory  # noqa: E402
from kivendi.storage.client import InMemoryObjectStore  # noqa: E402
from tests.helpers import TEST_JWT_SECRET  # noqa: E402
from tests.support.fakes import FakeGateway, RecordingPushTransport  # noqa: E402


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database with the full schema."""
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    set_session_factory(create_session_factory(engine))
    yield engine
    set_session_factory(None)
    engine.dispose()


@pytest.fixture
def db_session(engine: Engine) -> Generator[Session, None, None]:
    """Session on the test engine, for arranging and asserting rows."""
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def push_transport() -> RecordingPushTransport:
    return RecordingPushTransport()


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def app(
    engine: Engine,
    gateway: FakeGateway,
    push_transport: RecordingPushTransport,
    object_store: InMemoryObjectStore,
) -> FastAPI:
    """Application with auth middleware, fakes and no expiration loop."""
    app = create_app(
        token_verifier=JwtTokenVerifier(TEST_JWT_SECRET),
        payment_gateway=gateway,
        push_transport=push_transport,
        object_store=object_store,
        run_expiry_loop=False,
    )
    add_request_id_middleware(app, log_requests=False)
    return app


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Test client with the lifespan running."""
    with TestClient(app) as client:
        yield client


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
