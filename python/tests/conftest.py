"""Pytest configuration and fixtures for freefor tests.

Test isolation strategy:
- Every test gets its own SQLite database file created from the ORM metadata
- Route tests run the real app with auth middleware backed by MockJwtVerifier
- The push sender is replaced by an in-memory FakePushSender
"""

import os

# Settings are read lazily, but must be present before any freefor import uses them
os.environ.setdefault("FREEFOR_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SUPABASE_JWKS_URL", "http://localhost:54321/auth/v1/.well-known/jwks.json")
os.environ.setdefault("SUPABASE_ISSUER", "test-issuer")
os.environ.setdefault("SUPABASE_AUDIENCES", "test-audience")
os.environ.setdefault(
    "FREEFOR_KEY_ENCRYPTION_KEY", "AAECAwQFBgcICQoLDA0ODxAREhMUFRYXGBkaGxwdHh8="
)

from collections.abc import Generator
from uuid import UUID

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from freefor.api.deps import get_db
from freefor.app import add_request_id_middleware, create_app
from freefor.auth.middleware import AuthMiddleware
from freefor.config import clear_settings_cache
from freefor.db.engine import create_db_engine
from freefor.db.models import Base
from freefor.db.session import create_session_factory
from freefor.services.crypto import clear_master_key_cache
from freefor.services.profiles import ensure_user
from tests.helpers import create_test_user_id
from tests.support.mock_verifier import MockJwtVerifier
from tests.support.push import FakePushSender


@pytest.fixture
def engine(tmp_path) -> Generator[Engine, None, None]:
    """A fresh SQLite database with the full schema."""
    engine = create_db_engine(f"sqlite+pysqlite:///{tmp_path / 'freefor.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """A session on the per-test database, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def push_sender() -> FakePushSender:
    return FakePushSender()


@pytest.fixture
def app(session_factory: sessionmaker[Session], push_sender: FakePushSender) -> FastAPI:
    """The application wired to the test database, test verifier and fake push sender."""

    def bootstrap_callback(user_id: UUID) -> UUID:
        db = session_factory()
        try:
            return ensure_user(db, user_id)
        finally:
            db.close()

    def override_get_db() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app = create_app(skip_auth_middleware=True)
    app.dependency_overrides[get_db] = override_get_db
    app.state.push_sender = push_sender

    app.add_middleware(
        AuthMiddleware,
        verifier=MockJwtVerifier(),
        requires_internal_header=False,
        internal_secret=None,
        bootstrap_callback=bootstrap_callback,
    )
    # Added LAST so it runs FIRST (outermost)
    add_request_id_middleware(app, log_requests=False)
    return app


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    with TestClient(app) as client:
        yield client


@pytest.fixture
def test_user_id() -> UUID:
    return create_test_user_id()


@pytest.fixture(autouse=True)
def reset_caches():
    """Reset cached settings and the derived master key around each test."""
    clear_settings_cache()
    clear_master_key_cache()
    yield
    clear_settings_cache()
    clear_master_key_cache()
