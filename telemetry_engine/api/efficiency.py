"""
Efficiency endpoints: per-vehicle ratio and the low-efficiency listing.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-109)

TODO:
- None
"""

from datetime import datetime

from fastapi import APIRouter, Query

from telemetry_engine.api.deps import DbSession
from telemetry_engine.services.analytics import (
    get_efficiency_ratio,
    iter_low_efficiency_vehicles,
)

router = APIRouter(prefix="/v1", tags=["efficiency"])


@router.get("/vehicles/{vehicle_id}/efficiency")
async def vehicle_efficiency(
    vehicle_id: str,
    db: DbSession,
    start: datetime = Query(..., description="Inclusive window start"),
    end: datetime = Query(..., description="Exclusive window end"),
) -> dict:
    """Delivered / consumed energy for a vehicle over [start, end).

    Raises:
        NoActiveMapping, AmbiguousMapping: 409.
        NoDataInWindow: 404.
        DivisionUndefined: 422 when the meter consumed nothing.
    """
    ratio = await get_efficiency_ratio(db, vehicle_id, start, end)
    return {
        "vehicle_id": vehicle_id,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "ratio": ratio,
    }


@router.get("/efficiency/low")
async def low_efficiency(
    db: DbSession,
    threshold: float = Query(..., description="Report ratios strictly below this"),
    start: datetime = Query(..., description="Inclusive window start"),
    end: datetime = Query(..., description="Exclusive window end"),
) -> dict:
    """List vehicles whose efficiency ratio is below *threshold*."""
    vehicles = [
        {"vehicle_id": vehicle_id, "ratio": ratio}
        async for vehicle_id, ratio in iter_low_efficiency_vehicles(db, threshold, start, end)
    ]
    return {"threshold": threshold, "vehicles": vehicles}
