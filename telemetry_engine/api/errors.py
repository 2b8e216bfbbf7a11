"""
Translation of engine failures into HTTP responses.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-109)

TODO:
- None
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from telemetry_engine.exceptions import (
    AmbiguousMapping,
    DeviceUnknown,
    DivisionUndefined,
    DuplicateActiveMapping,
    DurabilityFailure,
    EdgeNotFound,
    NoActiveMapping,
    NoDataInWindow,
    TelemetryError,
    ValidationRejected,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
STATUS_CODES: tuple[tuple[type[TelemetryError], int], ...] = (
    (ValidationRejected, 422),
    (DurabilityFailure, 503),
    (DeviceUnknown, 404),
    (NoDataInWindow, 404),
    (EdgeNotFound, 404),
    (NoActiveMapping, 409),
    (AmbiguousMapping, 409),
    (DuplicateActiveMapping, 409),
    (DivisionUndefined, 422),
)


def status_for(exc: TelemetryError) -> int:
    """Return the HTTP status code for an engine failure (500 if unmapped)."""
    for error_type, status_code in STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def telemetry_error_handler(request: Request, exc: TelemetryError) -> JSONResponse:
    """Render a TelemetryError as ``{"error": <type>, "detail": <message>}``."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the TelemetryError handler on *app*."""
    app.add_exception_handler(TelemetryError, telemetry_error_handler)
