"""
Database package for SQLAlchemy models and session management.

CHANGELOG:
- 2026-10-13: Export CorrelationEdgeRecord (STORY-105)
- 2026-10-10: Initial creation (STORY-103)

TODO:
- None
"""

from telemetry_engine.db.models import (
    CURRENT_STATE_MODELS,
    HISTORY_MODELS,
    Base,
    CorrelationEdgeRecord,
    MeterCurrentState,
    MeterHistory,
    VehicleCurrentState,
    VehicleHistory,
)
from telemetry_engine.db.session import (
    create_engine,
    create_session_factory,
    dispose_engine,
    get_async_session,
    get_session_factory,
    init_engine,
)

__all__ = [
    "CURRENT_STATE_MODELS",
    "HISTORY_MODELS",
    "Base",
    "CorrelationEdgeRecord",
    "MeterCurrentState",
    "MeterHistory",
    "VehicleCurrentState",
    "VehicleHistory",
    "create_engine",
    "create_session_factory",
    "dispose_engine",
    "get_async_session",
    "get_session_factory",
    "init_engine",
]
