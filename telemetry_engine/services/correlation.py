"""
Correlation registry: interval-valid meter/vehicle mappings.

An edge is valid over ``[valid_from, valid_to)``; the open edge
(``valid_to IS NULL``, ``active = true``) is the current one. Edges are
closed, never deleted. At most one open edge per vehicle is enforced both
here (explicit check) and in storage (partial unique index), so a racing
second ``add_mapping`` fails with ``DuplicateActiveMapping`` instead of
creating an ambiguous mapping. The resolver still refuses to pick between
several valid edges rather than choosing one arbitrarily.

CHANGELOG:
- 2026-10-17: Reject deactivation before the edge's valid_from (STORY-110)
- 2026-10-13: Initial creation (STORY-105)

TODO:
- None
"""

import logging
from datetime import UTC, datetime

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from telemetry_engine.db.models import CorrelationEdgeRecord
from telemetry_engine.exceptions import (
    AmbiguousMapping,
    DuplicateActiveMapping,
    EdgeNotFound,
    NoActiveMapping,
    ValidationRejected,
)
from telemetry_engine.models import CorrelationEdge

logger = logging.getLogger(__name__)


def _valid_at(at: datetime):
    """SQL predicate selecting edges valid at instant *at*."""
    return (
        CorrelationEdgeRecord.valid_from <= at,
        or_(CorrelationEdgeRecord.valid_to.is_(None), CorrelationEdgeRecord.valid_to > at),
    )


async def add_mapping(
    session: AsyncSession,
    meter_id: str,
    vehicle_id: str,
    now: datetime | None = None,
) -> CorrelationEdge:
    """Create an active edge from *meter_id* to *vehicle_id*.

    Re-adding the mapping that is already active returns the existing edge.

    Args:
        session: Async SQLAlchemy session.
        meter_id: Meter identifier.
        vehicle_id: Vehicle identifier.
        now: Start of validity; defaults to the current UTC time.

    Returns:
        CorrelationEdge: The new (or already active) edge.

    Raises:
        ValidationRejected: If either identifier is empty.
        DuplicateActiveMapping: If the vehicle has a different active meter.
    """
    if not meter_id or not vehicle_id:
        raise ValidationRejected("meter_id and vehicle_id must be non-empty")
    now = now or datetime.now(UTC)

    result = await session.execute(
        select(CorrelationEdgeRecord).where(
            CorrelationEdgeRecord.vehicle_id == vehicle_id,
            CorrelationEdgeRecord.active.is_(True),
        )
    )
    active = result.scalars().all()
    for edge in active:
        if edge.meter_id == meter_id:
            return CorrelationEdge.model_validate(edge)
    if active:
        raise DuplicateActiveMapping(vehicle_id, active[0].meter_id)

    record = CorrelationEdgeRecord(
        meter_id=meter_id,
        vehicle_id=vehicle_id,
        active=True,
        valid_from=now,
        valid_to=None,
    )
    session.add(record)
    try:
        await session.commit()
    except IntegrityError as exc:
        # Lost a race against another add_mapping for the same vehicle.
        await session.rollback()
        raise DuplicateActiveMapping(vehicle_id, "<concurrent>") from exc

    logger.info(
        "Mapped meter %s to vehicle %s", meter_id, vehicle_id,
        extra={"meter_id": meter_id, "vehicle_id": vehicle_id},
    )
    return CorrelationEdge.model_validate(record)


async def deactivate_mapping(
    session: AsyncSession,
    meter_id: str,
    vehicle_id: str,
    now: datetime | None = None,
) -> CorrelationEdge:
    """Close the active edge from *meter_id* to *vehicle_id*.

    Args:
        session: Async SQLAlchemy session.
        meter_id: Meter identifier.
        vehicle_id: Vehicle identifier.
        now: End of validity; defaults to the current UTC time.

    Returns:
        CorrelationEdge: The closed edge.

    Raises:
        ValidationRejected: If *now* precedes the edge's valid_from.
        EdgeNotFound: If no matching active edge exists.
    """
    now = now or datetime.now(UTC)
    matches_pair = (
        CorrelationEdgeRecord.meter_id == meter_id,
        CorrelationEdgeRecord.vehicle_id == vehicle_id,
        CorrelationEdgeRecord.active.is_(True),
    )
    stmt = (
        update(CorrelationEdgeRecord)
        .where(*matches_pair, CorrelationEdgeRecord.valid_from <= now)
        .values(active=False, valid_to=now)
        .returning(CorrelationEdgeRecord)
    )
    result = await session.execute(stmt)
    record = result.scalars().first()
    if record is None:
        await session.rollback()
        opened = await session.execute(
            select(CorrelationEdgeRecord.valid_from).where(*matches_pair)
        )
        valid_from = opened.scalars().first()
        if valid_from is not None:
            raise ValidationRejected(
                f"Cannot close mapping {meter_id} -> {vehicle_id} at {now.isoformat()}: "
                f"it is valid from {valid_from.isoformat()}"
            )
        raise EdgeNotFound(meter_id, vehicle_id)

    edge = CorrelationEdge.model_validate(record)
    await session.commit()
    logger.info(
        "Deactivated mapping of meter %s to vehicle %s", meter_id, vehicle_id,
        extra={"meter_id": meter_id, "vehicle_id": vehicle_id},
    )
    return edge


async def resolve_meter_for(
    session: AsyncSession,
    vehicle_id: str,
    at: datetime | None = None,
) -> str:
    """Return the single meter mapped to *vehicle_id* at instant *at*.

    Args:
        session: Async SQLAlchemy session.
        vehicle_id: Vehicle identifier.
        at: Point in time; defaults to now.

    Returns:
        str: The meter identifier.

    Raises:
        NoActiveMapping: If no edge is valid at *at*.
        AmbiguousMapping: If more than one edge is valid at *at*.
    """
    at = at or datetime.now(UTC)
    result = await session.execute(
        select(CorrelationEdgeRecord.meter_id)
        .where(CorrelationEdgeRecord.vehicle_id == vehicle_id, *_valid_at(at))
        .order_by(CorrelationEdgeRecord.meter_id)
    )
    meter_ids = list(result.scalars().all())
    if not meter_ids:
        raise NoActiveMapping(vehicle_id)
    if len(meter_ids) > 1:
        raise AmbiguousMapping(vehicle_id, meter_ids)
    return meter_ids[0]


async def list_mappings(
    session: AsyncSession,
    vehicle_id: str | None = None,
    meter_id: str | None = None,
    include_inactive: bool = False,
) -> list[CorrelationEdge]:
    """List edges, oldest first, optionally filtered.

    Args:
        session: Async SQLAlchemy session.
        vehicle_id: Only edges for this vehicle.
        meter_id: Only edges for this meter.
        include_inactive: Include closed edges (the audit trail).

    Returns:
        list[CorrelationEdge]: Matching edges ordered by valid_from.
    """
    stmt = select(CorrelationEdgeRecord)
    if vehicle_id is not None:
        stmt = stmt.where(CorrelationEdgeRecord.vehicle_id == vehicle_id)
    if meter_id is not None:
        stmt = stmt.where(CorrelationEdgeRecord.meter_id == meter_id)
    if not include_inactive:
        stmt = stmt.where(CorrelationEdgeRecord.active.is_(True))
    stmt = stmt.order_by(CorrelationEdgeRecord.valid_from, CorrelationEdgeRecord.id)

    result = await session.execute(stmt)
    return [CorrelationEdge.model_validate(record) for record in result.scalars().all()]
