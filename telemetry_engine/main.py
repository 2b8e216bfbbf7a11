"""
FastAPI application entry point for the telemetry engine.

Wires the thin HTTP adapter around the core services: readings ingest,
device status and stats, correlation registry, efficiency analytics and
health.

CHANGELOG:
- 2026-10-15: Register routers and TelemetryError handler (STORY-109)
- 2026-10-10: Initial creation (STORY-101)

TODO:
- None
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from telemetry_engine import __version__
from telemetry_engine.api.correlations import router as correlations_router
from telemetry_engine.api.devices import router as devices_router
from telemetry_engine.api.efficiency import router as efficiency_router
from telemetry_engine.api.errors import register_error_handlers
from telemetry_engine.api.health import router as health_router
from telemetry_engine.api.readings import router as readings_router
from telemetry_engine.config import get_settings
from telemetry_engine.db.session import dispose_engine, init_engine
from telemetry_engine.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: configure logging and the database engine."""
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    init_engine()
    logger.info("Telemetry engine started")
    yield
    await dispose_engine()


app = FastAPI(
    title="EV Meter Telemetry API",
    description="Meter and EV telemetry ingestion, status and efficiency analytics.",
    version=__version__,
    lifespan=lifespan,
)

register_error_handlers(app)

app.include_router(readings_router)
app.include_router(devices_router)
app.include_router(correlations_router)
app.include_router(efficiency_router)
app.include_router(health_router)


@app.get("/")
async def root() -> dict:
    """Liveness endpoint.

    Returns:
        dict: JSON object with application status.
    """
    return {"status": "ok"}
