"""
Initial schema: history hypertables and current-state tables.

Enables the TimescaleDB extension, creates ``meter_history`` and
``vehicle_history`` with composite primary keys on (device_id, ts), converts
both to hypertables partitioned on ts, and creates the one-row-per-device
``meter_current_state`` and ``vehicle_current_state`` tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-10

CHANGELOG:
- 2026-10-10: Initial creation (STORY-103)

TODO:
- None
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# Revision identifiers used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_HISTORY_TABLES = ("meter_history", "vehicle_history")


def upgrade() -> None:
    """Create history hypertables and current-state tables.

    Steps:
        1. Enable timescaledb extension (idempotent).
        2. Create both history tables with composite PK (device_id, ts).
        3. Convert each history table to a hypertable on ts.
        4. Create both current-state tables keyed by device_id.
    """
    op.execute("CREATE EXTENSION IF NOT EXISTS timescaledb")

    op.create_table(
        "meter_history",
        sa.Column("device_id", sa.Text(), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("energy_consumed_kwh", sa.Double(), nullable=False),
        sa.Column("voltage_v", sa.Double(), nullable=False),
        sa.PrimaryKeyConstraint("device_id", "ts"),
    )
    op.create_table(
        "vehicle_history",
        sa.Column("device_id", sa.Text(), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("state_of_charge_pct", sa.Double(), nullable=False),
        sa.Column("energy_delivered_kwh", sa.Double(), nullable=False),
        sa.Column("battery_temp_c", sa.Double(), nullable=False),
        sa.PrimaryKeyConstraint("device_id", "ts"),
    )

    for table in _HISTORY_TABLES:
        op.execute(
            f"SELECT create_hypertable('{table}', 'ts', if_not_exists => TRUE)"
        )

    op.create_table(
        "meter_current_state",
        sa.Column("device_id", sa.Text(), primary_key=True),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("energy_consumed_kwh", sa.Double(), nullable=False),
        sa.Column("voltage_v", sa.Double(), nullable=False),
        sa.Column(
            "last_updated",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_table(
        "vehicle_current_state",
        sa.Column("device_id", sa.Text(), primary_key=True),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("state_of_charge_pct", sa.Double(), nullable=False),
        sa.Column("energy_delivered_kwh", sa.Double(), nullable=False),
        sa.Column("battery_temp_c", sa.Double(), nullable=False),
        sa.Column(
            "last_updated",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    """Drop current-state and history tables.

    Note: Does not drop the timescaledb extension as other tables may use it.
    """
    op.drop_table("vehicle_current_state")
    op.drop_table("meter_current_state")
    for table in reversed(_HISTORY_TABLES):
        op.drop_table(table)
