"""
Reading validator: turns raw payloads into canonical Reading values.

The engine trusts field types once a Reading exists; this module only
guards the structural preconditions the coordinator needs (non-empty
device_id, resolved class, metrics matching the class, timezone-aware
timestamp). Pure functions, no I/O.

CHANGELOG:
- 2026-10-11: Initial creation (STORY-104)

TODO:
- None
"""

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from telemetry_engine.exceptions import ValidationRejected
from telemetry_engine.models import METRICS_MODELS, DeviceClass, Reading


def check_reading(reading: Reading) -> None:
    """Verify the structural preconditions of an already-built Reading.

    Args:
        reading: Candidate reading.

    Raises:
        ValidationRejected: Listing the first violated precondition.
    """
    if not reading.device_id or not reading.device_id.strip():
        raise ValidationRejected("device_id must be a non-empty string")
    if not isinstance(reading.device_class, DeviceClass):
        raise ValidationRejected(f"Unknown device_class: {reading.device_class!r}")
    if reading.ts is None:
        raise ValidationRejected("ts is required")
    if reading.ts.tzinfo is None or reading.ts.utcoffset() is None:
        raise ValidationRejected("ts must be timezone-aware")
    expected = METRICS_MODELS[reading.device_class]
    if not isinstance(reading.metrics, expected):
        raise ValidationRejected(
            f"{reading.device_class.value} reading carries "
            f"{type(reading.metrics).__name__}, expected {expected.__name__}"
        )


def normalize_reading(payload: Mapping[str, Any]) -> Reading:
    """Build a canonical Reading from a raw payload.

    The payload's ``device_class`` selects the metrics schema, so a meter
    payload can never be parsed as vehicle metrics or vice versa.

    Args:
        payload: Dict with ``device_id``, ``device_class``, ``ts`` and
            ``metrics`` keys.

    Returns:
        Reading: Validated, immutable reading.

    Raises:
        ValidationRejected: If the payload is malformed.
    """
    try:
        device_class = DeviceClass(payload.get("device_class"))
    except ValueError as exc:
        raise ValidationRejected(
            f"Unknown device_class: {payload.get('device_class')!r}"
        ) from exc

    try:
        metrics = METRICS_MODELS[device_class].model_validate(payload.get("metrics"))
        reading = Reading(
            device_id=payload.get("device_id"),
            device_class=device_class,
            ts=payload.get("ts"),
            metrics=metrics,
        )
    except ValidationError as exc:
        raise ValidationRejected(_describe(exc)) from exc

    check_reading(reading)
    return reading


def _describe(exc: ValidationError) -> str:
    """Flatten a Pydantic ValidationError into one readable line."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"]) or "payload"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)
