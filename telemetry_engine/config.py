"""
Engine configuration from environment variables using Pydantic BaseSettings.

All configuration values are loaded from environment variables (or a local
``.env`` file) at startup. No hardcoded hosts, URLs, or credentials.

CHANGELOG:
- 2026-10-12: Add retry and backoff settings for the ingestion coordinator (STORY-104)
- 2026-10-10: Initial creation (STORY-101)

TODO:
- None
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings loaded from environment variables.

    Attributes:
        DATABASE_URL: PostgreSQL connection string (asyncpg).
        REDIS_URL: Redis connection string for the current-state cache.
        CACHE_TTL_S: Redis cache TTL in seconds.
        INGEST_MAX_ATTEMPTS: Attempts for the durability-critical history append.
        CURRENT_STATE_MAX_ATTEMPTS: Attempts for the current-state replace
            before the ingest is reported as degraded.
        RETRY_BACKOFF_BASE_S: Base delay for exponential retry backoff.
        RETRY_BACKOFF_MAX_S: Upper bound for a single backoff delay.
        LOG_LEVEL: Root logging level name.
    """

    DATABASE_URL: str
    REDIS_URL: str
    CACHE_TTL_S: int = 5
    INGEST_MAX_ATTEMPTS: int = 3
    CURRENT_STATE_MAX_ATTEMPTS: int = 3
    RETRY_BACKOFF_BASE_S: float = 0.1
    RETRY_BACKOFF_MAX_S: float = 2.0
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


def get_settings() -> Settings:
    """Create and return a Settings instance.

    Returns:
        Settings: Validated configuration from environment variables.
    """
    return Settings()
