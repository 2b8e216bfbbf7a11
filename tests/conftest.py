"""
Shared test fixtures for telemetry engine tests.

Provides environment isolation and a FastAPI TestClient with a mocked
database session.

CHANGELOG:
- 2026-10-15: Add client fixture with dependency overrides (STORY-109)
- 2026-10-10: Initial creation (STORY-101)

TODO:
- None
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from telemetry_engine.db.session import get_async_session
from telemetry_engine.main import app

_ALL_ENV_VARS = (
    "DATABASE_URL",
    "REDIS_URL",
    "CACHE_TTL_S",
    "INGEST_MAX_ATTEMPTS",
    "CURRENT_STATE_MAX_ATTEMPTS",
    "RETRY_BACKOFF_BASE_S",
    "RETRY_BACKOFF_MAX_S",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _set_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Set required env vars and isolate every test from local .env files."""
    for var in _ALL_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@localhost/db")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")


@pytest.fixture()
def mock_db_session() -> AsyncMock:
    """Create a mock AsyncSession for database operations.

    Returns:
        AsyncMock: Mock session; ``add`` is synchronous like the real one.
    """
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture()
def client(mock_db_session: AsyncMock) -> TestClient:
    """Create a TestClient with the DB session dependency mocked.

    Args:
        mock_db_session: Mock async database session.

    Returns:
        TestClient: Configured test client with dependency overrides.
    """

    async def override_get_session():
        yield mock_db_session

    app.dependency_overrides[get_async_session] = override_get_session

    yield TestClient(app)

    app.dependency_overrides.clear()
