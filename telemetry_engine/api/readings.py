"""
Ingest API endpoints for meter and vehicle readings.

POST /v1/readings ingests one reading; POST /v1/readings/batch ingests an
ordered list and reports per-item outcomes. Parsing into canonical readings
and all write semantics live in the services layer.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-109)

TODO:
- None
"""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from telemetry_engine.api.deps import Coordinator
from telemetry_engine.models import BatchResult, IngestResult
from telemetry_engine.services.validation import normalize_reading

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["readings"])


# ---------------------------------------------------------------------------
# Pydantic request / response schemas
# ---------------------------------------------------------------------------


class ReadingIn(BaseModel):
    """Schema for a single reading.

    Attributes:
        device_id: Identifier of the meter or vehicle.
        device_class: ``meter`` or ``vehicle``.
        ts: Reading timestamp (timezone-aware).
        metrics: Class-specific payload, validated against the class schema.
    """

    device_id: str
    device_class: str
    ts: datetime
    metrics: dict[str, Any]


class BatchIn(BaseModel):
    """Schema for the batch ingest body.

    Items are kept as raw objects so one malformed item is rejected on its
    own instead of failing the whole request.
    """

    readings: list[dict[str, Any]] = Field(default_factory=list)


class BatchOut(BaseModel):
    """Schema for the batch ingest response."""

    results: list[IngestResult]
    counts: dict[str, int]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/readings", response_model=IngestResult)
async def ingest_reading(body: ReadingIn, coordinator: Coordinator) -> IngestResult:
    """Ingest one reading.

    Returns:
        IngestResult: accepted, duplicate or degraded.

    Raises:
        ValidationRejected: 422 when the metrics do not match the class.
        DurabilityFailure: 503 when the history append did not commit.
    """
    reading = normalize_reading(body.model_dump())
    return await coordinator.ingest(reading)


@router.post("/readings/batch", response_model=BatchOut)
async def ingest_batch(body: BatchIn, coordinator: Coordinator) -> BatchOut:
    """Ingest an ordered batch of readings with per-item outcomes."""
    batch: BatchResult = await coordinator.ingest_batch(body.readings)
    return BatchOut(results=batch.results, counts=batch.counts)
