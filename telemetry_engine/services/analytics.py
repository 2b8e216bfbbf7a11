"""
Analytics over history: windowed stats, current status and efficiency.

Every windowed computation is a single aggregate query over a
``[start, end)`` range of the (device_id, ts) primary-key index, so memory
is bounded by the result, never by the device's total history. Reads run
at read-committed isolation and may miss an in-flight ingest.

Efficiency ratio = vehicle energy delivered / meter energy consumed over
the same window, with the meter resolved through the correlation
registry. Energy columns are per-interval deltas, so window sums are the
energy moved inside the window.

CHANGELOG:
- 2026-10-15: Stream low-efficiency vehicles from one joined query (STORY-108)
- 2026-10-14: Add efficiency ratio (STORY-107)
- 2026-10-14: Initial creation (STORY-106)

TODO:
- None
"""

import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from telemetry_engine.cache.redis_client import cache_get_current, cache_set_current
from telemetry_engine.exceptions import (
    DeviceUnknown,
    DivisionUndefined,
    NoDataInWindow,
    ValidationRejected,
)
from telemetry_engine.models import CurrentState, DeviceClass, WindowStats
from telemetry_engine.services.correlation import resolve_meter_for
from telemetry_engine.services.stores import get_current_state

logger = logging.getLogger(__name__)

# Metric configuration: maps device class to its history table, the energy
# column used by default and for efficiency, and every column that may be
# aggregated. Only names from this table are interpolated into SQL.
METRIC_CONFIG = {
    DeviceClass.METER: {
        "table": "meter_history",
        "energy": "energy_consumed_kwh",
        "metrics": ("energy_consumed_kwh", "voltage_v"),
    },
    DeviceClass.VEHICLE: {
        "table": "vehicle_history",
        "energy": "energy_delivered_kwh",
        "metrics": ("state_of_charge_pct", "energy_delivered_kwh", "battery_temp_c"),
    },
}

_LOW_EFFICIENCY_SQL = (
    "WITH edges AS ("
    "  SELECT vehicle_id, MIN(meter_id) AS meter_id"
    "  FROM correlation_edges"
    "  WHERE valid_from <= :at AND (valid_to IS NULL OR valid_to > :at)"
    "  GROUP BY vehicle_id"
    "  HAVING COUNT(*) = 1"
    "), delivered AS ("
    "  SELECT device_id, SUM(energy_delivered_kwh) AS kwh"
    "  FROM vehicle_history"
    "  WHERE ts >= :start AND ts < :end"
    "  GROUP BY device_id"
    "), consumed AS ("
    "  SELECT device_id, SUM(energy_consumed_kwh) AS kwh"
    "  FROM meter_history"
    "  WHERE ts >= :start AND ts < :end"
    "  GROUP BY device_id"
    ") "
    "SELECT e.vehicle_id, d.kwh / c.kwh AS ratio "
    "FROM edges e "
    "JOIN delivered d ON d.device_id = e.vehicle_id "
    "JOIN consumed c ON c.device_id = e.meter_id "
    "WHERE c.kwh <> 0 AND d.kwh / c.kwh < :threshold "
    "ORDER BY e.vehicle_id"
)


def _check_window(start: datetime, end: datetime) -> None:
    if start >= end:
        raise ValidationRejected(
            f"Window start {start.isoformat()} must be before end {end.isoformat()}"
        )


async def get_windowed_stats(
    session: AsyncSession,
    device_id: str,
    device_class: DeviceClass,
    start: datetime,
    end: datetime,
    metric: str | None = None,
) -> WindowStats:
    """Aggregate one metric of a device over ``[start, end)``.

    Args:
        session: Async SQLAlchemy session for database operations.
        device_id: Device identifier.
        device_class: Class of the device, selecting its history table.
        start: Inclusive window start.
        end: Exclusive window end.
        metric: Column to aggregate; defaults to the class's energy column.

    Returns:
        WindowStats: sum, avg, min, max and count of the metric.

    Raises:
        ValidationRejected: If the window is empty or the metric unknown.
        NoDataInWindow: If the device has no readings in the window.
    """
    _check_window(start, end)
    config = METRIC_CONFIG[device_class]
    column = metric or config["energy"]
    if column not in config["metrics"]:
        raise ValidationRejected(
            f"Unknown {device_class.value} metric: {column}. "
            f"Must be one of: {', '.join(config['metrics'])}"
        )

    sql = (
        f"SELECT COUNT({column}) AS count, "
        f"SUM({column}) AS sum, "
        f"AVG({column}) AS avg, "
        f"MIN({column}) AS min, "
        f"MAX({column}) AS max "
        f"FROM {config['table']} "
        "WHERE device_id = :device_id AND ts >= :start AND ts < :end"
    )
    result = await session.execute(
        text(sql), {"device_id": device_id, "start": start, "end": end},
    )
    row = result.one()._mapping

    if not row["count"]:
        raise NoDataInWindow(device_id, start, end)

    return WindowStats(
        sum=float(row["sum"]),
        avg=float(row["avg"]),
        min=float(row["min"]),
        max=float(row["max"]),
        count=int(row["count"]),
    )


async def get_current_status(
    session: AsyncSession,
    device_id: str,
    device_class: DeviceClass | None = None,
) -> CurrentState:
    """Return a device's current state.

    Checks the Redis cache first; on miss, reads the current-state table
    and caches the result. Without *device_class*, meters are looked up
    before vehicles.

    Args:
        session: Async SQLAlchemy session.
        device_id: Device identifier.
        device_class: Optional class restricting the lookup.

    Returns:
        CurrentState: Latest accepted reading for the device.

    Raises:
        DeviceUnknown: If the device has no current state.
    """
    classes = [device_class] if device_class is not None else list(DeviceClass)
    for cls in classes:
        cached = await cache_get_current(cls, device_id)
        if cached is not None:
            return cached

        state = await get_current_state(session, device_id, cls)
        if state is not None:
            await cache_set_current(state)
            return state

    raise DeviceUnknown(device_id)


async def get_efficiency_ratio(
    session: AsyncSession,
    vehicle_id: str,
    start: datetime,
    end: datetime,
    at: datetime | None = None,
) -> float:
    """Ratio of vehicle energy delivered to meter energy consumed.

    Args:
        session: Async SQLAlchemy session.
        vehicle_id: Vehicle identifier.
        start: Inclusive window start.
        end: Exclusive window end.
        at: Instant at which the meter mapping is resolved; defaults to now.

    Returns:
        float: delivered / consumed over the window.

    Raises:
        NoActiveMapping: If the vehicle has no active meter.
        AmbiguousMapping: If the vehicle has several active meters.
        NoDataInWindow: If either device has no readings in the window.
        DivisionUndefined: If meter consumption in the window is zero.
    """
    _check_window(start, end)
    meter_id = await resolve_meter_for(session, vehicle_id, at)

    consumed = await get_windowed_stats(session, meter_id, DeviceClass.METER, start, end)
    if consumed.sum == 0:
        raise DivisionUndefined(
            f"Meter '{meter_id}' consumed no energy in the window; "
            f"efficiency of '{vehicle_id}' is undefined"
        )
    delivered = await get_windowed_stats(
        session, vehicle_id, DeviceClass.VEHICLE, start, end,
    )
    return delivered.sum / consumed.sum


async def iter_low_efficiency_vehicles(
    session: AsyncSession,
    threshold: float,
    start: datetime,
    end: datetime,
    at: datetime | None = None,
) -> AsyncIterator[tuple[str, float]]:
    """Yield ``(vehicle_id, ratio)`` for vehicles below *threshold*.

    Lazy, finite and non-restartable: rows are streamed from a single
    server-side cursor over one aggregate query. Vehicles without exactly
    one valid mapping at *at*, without readings on either side, or whose
    meter consumed nothing in the window are skipped.

    Args:
        session: Async SQLAlchemy session, held until iteration ends.
        threshold: Ratios strictly below this value are reported.
        start: Inclusive window start.
        end: Exclusive window end.
        at: Instant at which mappings are resolved; defaults to now.

    Yields:
        tuple[str, float]: Vehicle id and its efficiency ratio, by vehicle id.
    """
    _check_window(start, end)
    params = {
        "threshold": threshold,
        "start": start,
        "end": end,
        "at": at or datetime.now(UTC),
    }
    result = await session.stream(text(_LOW_EFFICIENCY_SQL), params)
    async for row in result:
        yield row.vehicle_id, float(row.ratio)
