"""Add trailers, movements and movement_damages tables.

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "trailers",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("trailer_number", sa.String(50), nullable=False, unique=True),
        sa.Column("owner", sa.String(200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "movements",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("yard_id", sa.String(20), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("trailer_id", sa.Uuid, sa.ForeignKey("trailers.id"), nullable=True),
        # Carrier
        sa.Column("carrier_name", sa.String(200), nullable=True),
        sa.Column("carrier_truck_number", sa.String(50), nullable=True),
        sa.Column("carrier_driver_name", sa.String(200), nullable=True),
        # Trip
        sa.Column("trip_order_number", sa.String(100), nullable=True),
        sa.Column("trip_destination", sa.String(200), nullable=True),
        sa.Column("trip_customer_name", sa.String(200), nullable=True),
        sa.Column("trip_is_loaded", sa.Boolean, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_movements_ts", "movements", ["ts"])
    op.create_index("ix_movements_yard_type_ts", "movements", ["yard_id", "type", "ts"])
    op.create_index("ix_movements_trailer_id", "movements", ["trailer_id"])

    op.create_table(
        "movement_damages",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "movement_id",
            sa.Uuid,
            sa.ForeignKey("movements.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("location", sa.String(50), nullable=True),
        sa.Column("damage_type", sa.String(50), nullable=True),
        sa.Column("new_damage", sa.Boolean, nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_movement_damages_movement_id", "movement_damages", ["movement_id"])


def downgrade() -> None:
    op.drop_index("ix_movement_damages_movement_id", table_name="movement_damages")
    op.drop_table("movement_damages")
    op.drop_index("ix_movements_trailer_id", table_name="movements")
    op.drop_index("ix_movements_yard_type_ts", table_name="movements")
    op.drop_index("ix_movements_ts", table_name="movements")
    op.drop_table("movements")
    op.drop_table("trailers")
