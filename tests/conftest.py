"""Pytest fixtures. SQLite in-memory for fast tests; testcontainers-python PostgreSQL for slow tests."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from guardian.ai.vision_base import MockVisionModel
from guardian.repository.history_repo import HistoryStore
from guardian.session.endpoint import SessionEndpoint, SessionRegistry

TINY_JPEG_B64 = "/9j/4AAQSkZJRgABAQAAAQABAAD/2wBDAAEBAQ=="


def clear_app_caches() -> None:
    """
    Clear the app's config and registry caches. Call this in any fixture that changes
    DATABASE_URL or the config file so the app builds fresh dependencies.
    """
    from guardian.api.main import _get_registry, _get_session_factory
    from guardian.core import config as config_module

    config_module._config = None  # type: ignore[attr-defined]
    _get_session_factory.cache_clear()
    _get_registry.cache_clear()


@pytest.fixture
def engine():
    """Fresh in-memory SQLite engine with all tables; StaticPool shares one connection across threads."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def store(session_factory):
    return HistoryStore(session_factory, "test-session")


@pytest.fixture
def mock_model():
    return MockVisionModel()


@pytest.fixture
def endpoint(store, mock_model):
    return SessionEndpoint("test-session", store, mock_model, max_history_limit=100)


@pytest.fixture
def registry(session_factory, mock_model):
    return SessionRegistry(session_factory, mock_model, max_history_limit=100)


@pytest.fixture(scope="module")
def postgres_container():
    """Module-scoped PostgreSQL 16 container (testcontainers)."""
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:16-alpine") as postgres:
        yield postgres


@pytest.fixture
def image_b64():
    """Small base64 payload (JPEG header bytes) without a data-URI prefix."""
    return TINY_JPEG_B64


@pytest.fixture
def fresh_app_caches():
    """Clear app caches before and after the test (config, engine, registry)."""
    clear_app_caches()
    yield
    clear_app_caches()
