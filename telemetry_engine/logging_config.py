"""
Structured JSON logging configuration for the telemetry engine.

Provides a custom JSON formatter and a ``setup_logging()`` function
that replaces the default logging configuration with structured output.
Each log record is emitted as a single JSON line containing
``timestamp``, ``level``, ``logger`` and ``message``. Device context passed
through ``extra={"device_id": ..., "device_class": ...}`` is carried along.

CHANGELOG:
- 2026-10-12: Carry device context fields into the JSON line (STORY-104)
- 2026-10-10: Initial creation (STORY-101)

TODO:
- None
"""

import json
import logging
from datetime import UTC, datetime

# Optional LogRecord attributes copied into the JSON line when present.
_CONTEXT_FIELDS = ("device_id", "device_class", "vehicle_id", "meter_id")


class JSONFormatter(logging.Formatter):
    """Logging formatter that outputs a single JSON object per line.

    Fields emitted:
    - ``timestamp``: ISO-8601 UTC timestamp.
    - ``level``: Log level name (INFO, WARNING, ERROR, ...).
    - ``logger``: Logger name.
    - ``message``: Formatted log message.
    - any of ``device_id``, ``device_class``, ``vehicle_id``, ``meter_id``
      attached to the record via ``extra``.
    - ``exc_info``: Formatted traceback, when the record carries one.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format *record* as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            A single-line JSON string.
        """
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value
        if record.exc_info:
            log_entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: int | str = logging.INFO) -> None:
    """Configure the root logger with structured JSON output.

    Removes any existing handlers on the root logger and installs
    a single ``StreamHandler`` using :class:`JSONFormatter`.

    Args:
        level: Logging level (number or name) for the root logger.
            Defaults to ``logging.INFO``.
    """
    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicate output.
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
