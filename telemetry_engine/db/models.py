"""
SQLAlchemy ORM models for the telemetry database.

Defines three relations per the persisted layout:
- history tables (``meter_history``, ``vehicle_history``): append-only
  TimescaleDB hypertables with a composite primary key on (device_id, ts)
  that doubles as the ordered index for windowed range scans;
- current-state tables (``meter_current_state``, ``vehicle_current_state``):
  one row per device, replaced on every newer reading;
- ``correlation_edges``: interval-valid meter/vehicle mappings with a partial
  unique index allowing a single open edge per vehicle.

CHANGELOG:
- 2026-10-13: Add correlation_edges with partial unique index (STORY-105)
- 2026-10-10: Initial creation (STORY-103)

TODO:
- None
"""

import datetime

from sqlalchemy import Boolean, DateTime, Double, Index, Integer, Text, func, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from telemetry_engine.models import DeviceClass


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all engine ORM models."""

    pass


class MeterHistory(Base):
    """Permanent copy of an accepted power meter reading.

    Attributes:
        device_id: Identifier of the meter.
        ts: Reading timestamp in UTC.
        energy_consumed_kwh: Energy consumed since the previous reading (kWh).
        voltage_v: Supply voltage (V).
    """

    __tablename__ = "meter_history"

    device_id: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    ts: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), primary_key=True, nullable=False,
    )
    energy_consumed_kwh: Mapped[float] = mapped_column(Double, nullable=False)
    voltage_v: Mapped[float] = mapped_column(Double, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the MeterHistory row."""
        return (
            f"MeterHistory(device_id={self.device_id!r}, ts={self.ts!r}, "
            f"energy_consumed_kwh={self.energy_consumed_kwh!r})"
        )


class VehicleHistory(Base):
    """Permanent copy of an accepted vehicle reading.

    Attributes:
        device_id: Identifier of the vehicle.
        ts: Reading timestamp in UTC.
        state_of_charge_pct: Battery state of charge (%).
        energy_delivered_kwh: Energy delivered since the previous reading (kWh).
        battery_temp_c: Battery temperature (degrees Celsius).
    """

    __tablename__ = "vehicle_history"

    device_id: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    ts: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), primary_key=True, nullable=False,
    )
    state_of_charge_pct: Mapped[float] = mapped_column(Double, nullable=False)
    energy_delivered_kwh: Mapped[float] = mapped_column(Double, nullable=False)
    battery_temp_c: Mapped[float] = mapped_column(Double, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the VehicleHistory row."""
        return (
            f"VehicleHistory(device_id={self.device_id!r}, ts={self.ts!r}, "
            f"energy_delivered_kwh={self.energy_delivered_kwh!r})"
        )


class MeterCurrentState(Base):
    """Latest accepted reading for each power meter."""

    __tablename__ = "meter_current_state"

    device_id: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    ts: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    energy_consumed_kwh: Mapped[float] = mapped_column(Double, nullable=False)
    voltage_v: Mapped[float] = mapped_column(Double, nullable=False)
    last_updated: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )


class VehicleCurrentState(Base):
    """Latest accepted reading for each vehicle."""

    __tablename__ = "vehicle_current_state"

    device_id: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    ts: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    state_of_charge_pct: Mapped[float] = mapped_column(Double, nullable=False)
    energy_delivered_kwh: Mapped[float] = mapped_column(Double, nullable=False)
    battery_temp_c: Mapped[float] = mapped_column(Double, nullable=False)
    last_updated: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )


class CorrelationEdgeRecord(Base):
    """Meter-to-vehicle mapping, valid over [valid_from, valid_to).

    An open edge (valid_to IS NULL) is the active one. Edges are closed,
    never deleted, so the table doubles as the audit trail.
    """

    __tablename__ = "correlation_edges"
    __table_args__ = (
        Index("ix_correlation_edges_vehicle_id", "vehicle_id", "valid_from"),
        Index("ix_correlation_edges_meter_id", "meter_id"),
        Index(
            "uq_correlation_edges_open_vehicle",
            "vehicle_id",
            unique=True,
            postgresql_where=text("valid_to IS NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    meter_id: Mapped[str] = mapped_column(Text, nullable=False)
    vehicle_id: Mapped[str] = mapped_column(Text, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    valid_from: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    valid_to: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def __repr__(self) -> str:
        """Return string representation of the CorrelationEdgeRecord."""
        return (
            f"CorrelationEdgeRecord(meter_id={self.meter_id!r}, "
            f"vehicle_id={self.vehicle_id!r}, active={self.active!r})"
        )


# Per-class table lookup used by the stores and analytics services.
HISTORY_MODELS: dict[DeviceClass, type[MeterHistory] | type[VehicleHistory]] = {
    DeviceClass.METER: MeterHistory,
    DeviceClass.VEHICLE: VehicleHistory,
}

CURRENT_STATE_MODELS: dict[
    DeviceClass, type[MeterCurrentState] | type[VehicleCurrentState]
] = {
    DeviceClass.METER: MeterCurrentState,
    DeviceClass.VEHICLE: VehicleCurrentState,
}
