"""
Domain types shared by the ingestion, correlation and analytics services.

Readings are immutable Pydantic models. Energy fields
(``energy_consumed_kwh`` and ``energy_delivered_kwh``) are per-interval
deltas: the energy moved since the device's previous reading, so a windowed
sum is the energy moved within the window.

CHANGELOG:
- 2026-10-14: Add WindowStats.combine for merging adjacent windows (STORY-107)
- 2026-10-12: Add IngestResult and BatchResult (STORY-104)
- 2026-10-10: Initial creation (STORY-102)

TODO:
- None
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class DeviceClass(StrEnum):
    """Class of telemetry-producing device."""

    METER = "meter"
    VEHICLE = "vehicle"


class MeterMetrics(BaseModel):
    """Payload of a power meter reading.

    Attributes:
        energy_consumed_kwh: AC energy consumed since the previous reading.
        voltage_v: Supply voltage at the time of the reading.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    energy_consumed_kwh: float
    voltage_v: float


class VehicleMetrics(BaseModel):
    """Payload of an electric vehicle reading.

    Attributes:
        state_of_charge_pct: Battery state of charge, 0-100.
        energy_delivered_kwh: DC energy delivered to the battery since the
            previous reading.
        battery_temp_c: Battery temperature in degrees Celsius.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    state_of_charge_pct: float = Field(ge=0, le=100)
    energy_delivered_kwh: float
    battery_temp_c: float


METRICS_MODELS: dict[DeviceClass, type[MeterMetrics] | type[VehicleMetrics]] = {
    DeviceClass.METER: MeterMetrics,
    DeviceClass.VEHICLE: VehicleMetrics,
}


class Reading(BaseModel):
    """One canonical telemetry reading. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    device_class: DeviceClass
    ts: datetime
    metrics: MeterMetrics | VehicleMetrics

    def to_row(self) -> dict:
        """Flatten into a dict matching the history and current-state columns."""
        return {"device_id": self.device_id, "ts": self.ts, **self.metrics.model_dump()}


class CurrentState(BaseModel):
    """Latest accepted reading for a device plus the time it was stored."""

    device_id: str
    device_class: DeviceClass
    ts: datetime
    metrics: MeterMetrics | VehicleMetrics
    last_updated: datetime


class WindowStats(BaseModel):
    """Aggregate of one metric over a half-open time window."""

    model_config = ConfigDict(frozen=True)

    sum: float
    avg: float
    min: float
    max: float
    count: int

    def combine(self, other: WindowStats) -> WindowStats:
        """Merge stats of two disjoint windows into stats of their union.

        Sum, count, min and max combine exactly; the average is recomputed
        weighted by count.
        """
        count = self.count + other.count
        total = self.sum + other.sum
        return WindowStats(
            sum=total,
            avg=total / count,
            min=min(self.min, other.min),
            max=max(self.max, other.max),
            count=count,
        )


class IngestStatus(StrEnum):
    """Per-reading outcome of an ingest."""

    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    DEGRADED = "degraded"
    REJECTED = "rejected"
    DURABILITY_FAILURE = "durability_failure"


class IngestResult(BaseModel):
    """Outcome of ingesting one reading.

    ``DEGRADED`` means the reading is in history but the current-state
    replace failed after retries; current state heals on the next reading.
    """

    device_id: str | None = None
    device_class: DeviceClass | None = None
    ts: datetime | None = None
    status: IngestStatus
    detail: str | None = None

    @classmethod
    def for_reading(
        cls, reading: Reading, status: IngestStatus, detail: str | None = None,
    ) -> IngestResult:
        return cls(
            device_id=reading.device_id,
            device_class=reading.device_class,
            ts=reading.ts,
            status=status,
            detail=detail,
        )


class BatchResult(BaseModel):
    """Per-item outcomes of a batch ingest, in input order."""

    results: list[IngestResult] = Field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        """Number of items per status."""
        tally = Counter(result.status for result in self.results)
        return {status.value: tally.get(status, 0) for status in IngestStatus}


class CorrelationEdge(BaseModel):
    """Interval-valid association between a meter and a vehicle."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    meter_id: str
    vehicle_id: str
    active: bool
    valid_from: datetime
    valid_to: datetime | None = None
