"""
Create the correlation_edges table.

Interval-valid meter/vehicle mappings. A partial unique index on vehicle_id
WHERE valid_to IS NULL guarantees at most one open (active) edge per vehicle,
so concurrent AddMapping calls cannot both succeed.

Revision ID: 002
Revises: 001
Create Date: 2026-10-13

CHANGELOG:
- 2026-10-13: Initial creation (STORY-105)

TODO:
- None
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# Revision identifiers used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create correlation_edges with lookup and open-edge indexes."""
    op.create_table(
        "correlation_edges",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("meter_id", sa.Text(), nullable=False),
        sa.Column("vehicle_id", sa.Text(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_correlation_edges_vehicle_id",
        "correlation_edges",
        ["vehicle_id", "valid_from"],
    )
    op.create_index(
        "ix_correlation_edges_meter_id", "correlation_edges", ["meter_id"],
    )
    op.create_index(
        "uq_correlation_edges_open_vehicle",
        "correlation_edges",
        ["vehicle_id"],
        unique=True,
        postgresql_where=sa.text("valid_to IS NULL"),
    )


def downgrade() -> None:
    """Drop correlation_edges and its indexes."""
    op.drop_index("uq_correlation_edges_open_vehicle", table_name="correlation_edges")
    op.drop_index("ix_correlation_edges_meter_id", table_name="correlation_edges")
    op.drop_index("ix_correlation_edges_vehicle_id", table_name="correlation_edges")
    op.drop_table("correlation_edges")
