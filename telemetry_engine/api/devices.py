"""
Device status and windowed statistics endpoints.

GET /v1/devices/{device_class}/{device_id}/current serves the latest state
(read-through Redis cache); GET .../stats aggregates one metric over a
half-open window of the device's history.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-109)

TODO:
- None
"""

from datetime import datetime

from fastapi import APIRouter, Query

from telemetry_engine.api.deps import DbSession
from telemetry_engine.models import CurrentState, DeviceClass, WindowStats
from telemetry_engine.services.analytics import get_current_status, get_windowed_stats

router = APIRouter(prefix="/v1/devices", tags=["devices"])


@router.get("/{device_class}/{device_id}/current", response_model=CurrentState)
async def current_status(
    device_class: DeviceClass,
    device_id: str,
    db: DbSession,
) -> CurrentState:
    """Return the latest accepted reading for a device (404 if unknown)."""
    return await get_current_status(db, device_id, device_class)


@router.get("/{device_class}/{device_id}/stats")
async def windowed_stats(
    device_class: DeviceClass,
    device_id: str,
    db: DbSession,
    start: datetime = Query(..., description="Inclusive window start"),
    end: datetime = Query(..., description="Exclusive window end"),
    metric: str | None = Query(None, description="Metric column; defaults to energy"),
) -> dict:
    """Aggregate a device metric over [start, end).

    Returns:
        dict: device_id, device_class, window bounds and the stats.
    """
    stats: WindowStats = await get_windowed_stats(
        db, device_id, device_class, start, end, metric,
    )
    return {
        "device_id": device_id,
        "device_class": device_class.value,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "stats": stats.model_dump(),
    }
