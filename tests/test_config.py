"""
Tests for Settings loading and structured logging setup.

CHANGELOG:
- 2026-10-12: Add retry settings and JSON log context tests (STORY-104)
- 2026-10-10: Initial creation (STORY-101)

TODO:
- None
"""

import json
import logging
import sys

import pytest
from pydantic import ValidationError

from telemetry_engine.config import Settings
from telemetry_engine.logging_config import JSONFormatter, setup_logging


class TestSettings:
    """Settings loads from environment variables with defaults."""

    def test_loads_required_from_env(self) -> None:
        settings = Settings()
        assert settings.DATABASE_URL == "postgresql+asyncpg://u:p@localhost/db"
        assert settings.REDIS_URL == "redis://localhost:6379/0"

    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.CACHE_TTL_S == 5
        assert settings.INGEST_MAX_ATTEMPTS == 3
        assert settings.CURRENT_STATE_MAX_ATTEMPTS == 3
        assert settings.RETRY_BACKOFF_BASE_S == 0.1
        assert settings.RETRY_BACKOFF_MAX_S == 2.0
        assert settings.LOG_LEVEL == "INFO"

    def test_overrides_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CACHE_TTL_S", "10")
        monkeypatch.setenv("INGEST_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("RETRY_BACKOFF_BASE_S", "0.5")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        settings = Settings()

        assert settings.CACHE_TTL_S == 10
        assert settings.INGEST_MAX_ATTEMPTS == 5
        assert settings.RETRY_BACKOFF_BASE_S == 0.5
        assert settings.LOG_LEVEL == "DEBUG"

    def test_missing_database_url_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DATABASE_URL")
        with pytest.raises(ValidationError):
            Settings()

    def test_reads_dotenv_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
        """A .env file in the working directory is honoured."""
        monkeypatch.delenv("REDIS_URL")
        (tmp_path / ".env").write_text("REDIS_URL=redis://cache:6379/1\n")

        assert Settings().REDIS_URL == "redis://cache:6379/1"


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="telemetry_engine.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Reading %s degraded",
        args=("M1",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """JSONFormatter emits one JSON object per record."""

    def test_base_fields(self) -> None:
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "telemetry_engine.test"
        assert entry["message"] == "Reading M1 degraded"
        assert "timestamp" in entry
        assert "device_id" not in entry

    def test_device_context_carried(self) -> None:
        entry = json.loads(
            JSONFormatter().format(_record(device_id="M1", device_class="meter")),
        )
        assert entry["device_id"] == "M1"
        assert entry["device_class"] == "meter"

    def test_exception_included(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()

        entry = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in entry["exc_info"]


class TestSetupLogging:
    """setup_logging installs a single JSON handler on the root logger."""

    def test_replaces_root_handlers(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            root.addHandler(logging.NullHandler())

            setup_logging("DEBUG")

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
