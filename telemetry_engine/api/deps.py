"""
FastAPI dependency injection providers.

Provides database sessions and the shared ingestion coordinator for use
with FastAPI's Depends() mechanism.

CHANGELOG:
- 2026-10-12: Add IngestionCoordinator dependency (STORY-104)
- 2026-10-10: Initial creation (STORY-101)

TODO:
- None
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from telemetry_engine.cache.redis_client import refresh_device_cache
from telemetry_engine.config import get_settings
from telemetry_engine.db.session import get_async_session, get_session_factory
from telemetry_engine.services.ingestion import IngestionCoordinator

# Type alias for injecting an async DB session via FastAPI Depends().
# Usage in route handlers:
#   async def my_route(db: DbSession):
#       result = await db.execute(...)
DbSession = Annotated[AsyncSession, Depends(get_async_session)]

_coordinator: IngestionCoordinator | None = None


def get_coordinator() -> IngestionCoordinator:
    """Return the process-wide IngestionCoordinator, building it on first use.

    The coordinator opens its own short-lived sessions from the shared
    session factory and refreshes the cached current state after each
    successful current-state replace.

    Returns:
        IngestionCoordinator: Configured coordinator.
    """
    global _coordinator  # noqa: PLW0603
    if _coordinator is None:
        _coordinator = IngestionCoordinator.from_settings(
            get_session_factory(),
            get_settings(),
            on_current_state_replaced=refresh_device_cache,
        )
    return _coordinator


# Annotated dependency for use in FastAPI route signatures:
#   async def my_endpoint(coordinator: Coordinator): ...
Coordinator = Annotated[IngestionCoordinator, Depends(get_coordinator)]
