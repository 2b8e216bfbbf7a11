"""
Builders and mock helpers shared across the test modules.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-104)

TODO:
- None
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from unittest.mock import MagicMock

from telemetry_engine.models import DeviceClass, MeterMetrics, Reading, VehicleMetrics

T0 = datetime(2026, 10, 1, 12, 0, 0, tzinfo=UTC)


def meter_reading(
    device_id: str = "M1",
    ts: datetime = T0,
    energy_consumed_kwh: float = 45.5,
    voltage_v: float = 240.5,
) -> Reading:
    """Build a meter Reading with sensible defaults."""
    return Reading(
        device_id=device_id,
        device_class=DeviceClass.METER,
        ts=ts,
        metrics=MeterMetrics(energy_consumed_kwh=energy_consumed_kwh, voltage_v=voltage_v),
    )


def vehicle_reading(
    device_id: str = "V1",
    ts: datetime = T0,
    state_of_charge_pct: float = 75.5,
    energy_delivered_kwh: float = 38.7,
    battery_temp_c: float = 28.5,
) -> Reading:
    """Build a vehicle Reading with sensible defaults."""
    return Reading(
        device_id=device_id,
        device_class=DeviceClass.VEHICLE,
        ts=ts,
        metrics=VehicleMetrics(
            state_of_charge_pct=state_of_charge_pct,
            energy_delivered_kwh=energy_delivered_kwh,
            battery_temp_c=battery_temp_c,
        ),
    )


def make_session_factory(session):
    """Wrap *session* in a callable behaving like an async_sessionmaker."""

    @asynccontextmanager
    async def _factory():
        yield session

    return _factory


def scalars_result(values: list) -> MagicMock:
    """Mock Result whose .scalars().all() / .first() return *values*."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = values
    result.scalars.return_value.first.return_value = values[0] if values else None
    return result


def stats_result(count: int, total=None, avg=None, low=None, high=None) -> MagicMock:
    """Mock Result for an aggregate query returning a single row."""
    row = MagicMock()
    row._mapping = {"count": count, "sum": total, "avg": avg, "min": low, "max": high}
    result = MagicMock()
    result.one.return_value = row
    return result
