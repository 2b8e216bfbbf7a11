"""
History and current-state store access.

Each function performs exactly one datastore primitive in its own
transaction:

- ``append_history``: INSERT ... ON CONFLICT (device_id, ts) DO NOTHING.
  The first write for a (device_id, ts) pair wins; later duplicates are
  deduplicated and reported as not inserted. History rows are never
  updated or deleted here.
- ``upsert_current_state``: INSERT ... ON CONFLICT (device_id) DO UPDATE
  guarded by ``WHERE current.ts < excluded.ts``, so concurrent writers for
  one device settle on the reading with the latest timestamp regardless of
  arrival order. Contention is scoped to the device's row.

CHANGELOG:
- 2026-10-12: Add history_matches for retried appends (STORY-104)
- 2026-10-11: Initial creation (STORY-103)

TODO:
- None
"""

from datetime import UTC, datetime

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from telemetry_engine.db.models import CURRENT_STATE_MODELS, HISTORY_MODELS
from telemetry_engine.models import METRICS_MODELS, CurrentState, DeviceClass, Reading


async def append_history(session: AsyncSession, reading: Reading) -> bool:
    """Append a reading to its class's history table.

    Args:
        session: Async SQLAlchemy session for database operations.
        reading: Canonical reading to record.

    Returns:
        bool: True if a new row was inserted, False if (device_id, ts)
        already existed.
    """
    model = HISTORY_MODELS[reading.device_class]
    stmt = (
        insert(model)
        .values(**reading.to_row())
        .on_conflict_do_nothing(index_elements=["device_id", "ts"])
    )
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount == 1


async def history_matches(session: AsyncSession, reading: Reading) -> bool:
    """Check whether the stored history row for (device_id, ts) equals *reading*.

    Used after a retried append hits the conflict path: a previous attempt
    may have committed before its acknowledgement was lost.

    Args:
        session: Async SQLAlchemy session.
        reading: Reading whose key and payload are compared.

    Returns:
        bool: True if a row exists and all metric columns match.
    """
    model = HISTORY_MODELS[reading.device_class]
    record = await session.get(model, (reading.device_id, reading.ts))
    if record is None:
        return False
    payload = reading.metrics.model_dump()
    return all(getattr(record, column) == value for column, value in payload.items())


async def upsert_current_state(
    session: AsyncSession,
    reading: Reading,
    now: datetime | None = None,
) -> bool:
    """Replace the device's current state if *reading* is newer.

    Args:
        session: Async SQLAlchemy session for database operations.
        reading: Reading already committed to history.
        now: Value for ``last_updated``; defaults to the current UTC time.

    Returns:
        bool: True if the row was created or replaced, False if the stored
        state already holds a reading with an equal or later timestamp.
    """
    model = CURRENT_STATE_MODELS[reading.device_class]
    row = reading.to_row()
    row["last_updated"] = now or datetime.now(UTC)

    stmt = insert(model).values(**row)
    stmt = stmt.on_conflict_do_update(
        index_elements=["device_id"],
        set_={column: stmt.excluded[column] for column in row if column != "device_id"},
        where=model.ts < stmt.excluded.ts,
    )
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount == 1


async def get_current_state(
    session: AsyncSession,
    device_id: str,
    device_class: DeviceClass,
) -> CurrentState | None:
    """Point lookup of a device's current state by primary key.

    Args:
        session: Async SQLAlchemy session.
        device_id: Device identifier.
        device_class: Class whose current-state table is read.

    Returns:
        CurrentState or None if the device has never reported.
    """
    model = CURRENT_STATE_MODELS[device_class]
    record = await session.get(model, device_id)
    if record is None:
        return None

    metrics_model = METRICS_MODELS[device_class]
    metrics = metrics_model.model_validate(
        {field: getattr(record, field) for field in metrics_model.model_fields}
    )
    return CurrentState(
        device_id=record.device_id,
        device_class=device_class,
        ts=record.ts,
        metrics=metrics,
        last_updated=record.last_updated,
    )
