"""
Typed failures raised by the telemetry engine.

Every failure is scoped to a single operation. Translation to transport
status codes is left to the caller (see ``telemetry_engine.api.errors``).

CHANGELOG:
- 2026-10-10: Initial creation (STORY-102)

TODO:
- None
"""

from __future__ import annotations

from datetime import datetime


class TelemetryError(Exception):
    """Base exception for all engine errors."""


class ValidationRejected(TelemetryError):
    """Input was malformed and rejected before any write."""


class DurabilityFailure(TelemetryError):
    """The history append did not commit; the caller may retry."""

    def __init__(self, message: str, *, device_id: str = "", attempts: int = 0) -> None:
        self.device_id = device_id
        self.attempts = attempts
        super().__init__(message)


class DeviceUnknown(TelemetryError):
    """No current-state row exists for the device yet."""

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__(f"No current state for device '{device_id}'")


class NoDataInWindow(TelemetryError):
    """The device has no history records inside the requested window."""

    def __init__(self, device_id: str, start: datetime, end: datetime) -> None:
        self.device_id = device_id
        self.start = start
        self.end = end
        super().__init__(
            f"No readings for device '{device_id}' in "
            f"[{start.isoformat()}, {end.isoformat()})"
        )


class NoActiveMapping(TelemetryError):
    """The vehicle has no active meter correlation at the requested time."""

    def __init__(self, vehicle_id: str) -> None:
        self.vehicle_id = vehicle_id
        super().__init__(f"No active meter mapping for vehicle '{vehicle_id}'")


class AmbiguousMapping(TelemetryError):
    """More than one meter is active for the vehicle at the requested time."""

    def __init__(self, vehicle_id: str, meter_ids: list[str]) -> None:
        self.vehicle_id = vehicle_id
        self.meter_ids = meter_ids
        super().__init__(
            f"Vehicle '{vehicle_id}' has {len(meter_ids)} active meter mappings: "
            f"{', '.join(meter_ids)}"
        )


class DivisionUndefined(TelemetryError):
    """Meter-side consumption in the window is zero."""


class DuplicateActiveMapping(TelemetryError):
    """The vehicle already has a different active meter mapping."""

    def __init__(self, vehicle_id: str, meter_id: str) -> None:
        self.vehicle_id = vehicle_id
        self.meter_id = meter_id
        super().__init__(
            f"Vehicle '{vehicle_id}' is already mapped to meter '{meter_id}'; "
            "deactivate it before re-mapping"
        )


class EdgeNotFound(TelemetryError):
    """No active edge matches the given meter and vehicle."""

    def __init__(self, meter_id: str, vehicle_id: str) -> None:
        self.meter_id = meter_id
        self.vehicle_id = vehicle_id
        super().__init__(f"No active mapping {meter_id} -> {vehicle_id}")
