"""
Correlation registry endpoints for the administrative process.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-109)

TODO:
- None
"""

from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel

from telemetry_engine.api.deps import DbSession
from telemetry_engine.models import CorrelationEdge
from telemetry_engine.services.correlation import (
    add_mapping,
    deactivate_mapping,
    list_mappings,
    resolve_meter_for,
)

router = APIRouter(prefix="/v1", tags=["correlations"])


class MappingIn(BaseModel):
    """Meter/vehicle pair identifying an edge."""

    meter_id: str
    vehicle_id: str


@router.post("/correlations", response_model=CorrelationEdge, status_code=201)
async def create_mapping(body: MappingIn, db: DbSession) -> CorrelationEdge:
    """Activate a meter -> vehicle mapping (409 if the vehicle is mapped elsewhere)."""
    return await add_mapping(db, body.meter_id, body.vehicle_id)


@router.post("/correlations/deactivate", response_model=CorrelationEdge)
async def close_mapping(body: MappingIn, db: DbSession) -> CorrelationEdge:
    """Deactivate an active mapping (404 if none matches)."""
    return await deactivate_mapping(db, body.meter_id, body.vehicle_id)


@router.get("/correlations", response_model=list[CorrelationEdge])
async def get_mappings(
    db: DbSession,
    vehicle_id: str | None = None,
    meter_id: str | None = None,
    include_inactive: bool = False,
) -> list[CorrelationEdge]:
    """List mappings, including the closed audit trail on request."""
    return await list_mappings(db, vehicle_id, meter_id, include_inactive)


@router.get("/vehicles/{vehicle_id}/meter")
async def get_vehicle_meter(
    vehicle_id: str,
    db: DbSession,
    at: datetime | None = Query(None, description="Resolve at this instant; defaults to now"),
) -> dict:
    """Resolve the single meter mapped to a vehicle."""
    meter_id = await resolve_meter_for(db, vehicle_id, at)
    return {"vehicle_id": vehicle_id, "meter_id": meter_id}
