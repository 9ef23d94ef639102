"""Movement, Trailer and MovementDamage models: the yard history read by exports.

Only the columns the report pipeline filters, sorts or renders are mapped
here; photos, checklists and tire data live elsewhere.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from yard_reports.models.base import Base, TimestampMixin, UUIDMixin


class MovementType(enum.StrEnum):
    """Kind of yard event logged by a guard."""

    IN = "IN"
    OUT = "OUT"
    INSPECTION = "INSPECTION"


class YardId(enum.StrEnum):
    """Known yards."""

    YARD_1 = "yard1"
    YARD_2 = "yard2"
    YARD_3 = "yard3"


class Trailer(Base, UUIDMixin, TimestampMixin):
    """A trailer known to the yards."""

    __tablename__ = "trailers"

    trailer_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    owner: Mapped[str | None] = mapped_column(String(200), nullable=True)


class Movement(Base, UUIDMixin, TimestampMixin):
    """One IN/OUT/INSPECTION event for a trailer."""

    __tablename__ = "movements"

    yard_id: Mapped[str] = mapped_column(String(20), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    trailer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("trailers.id"), nullable=True)

    # Carrier
    carrier_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    carrier_truck_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    carrier_driver_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # Trip
    trip_order_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    trip_destination: Mapped[str | None] = mapped_column(String(200), nullable=True)
    trip_customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    trip_is_loaded: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    trailer: Mapped[Trailer | None] = relationship(lazy="raise")
    damages: Mapped[list["MovementDamage"]] = relationship(back_populates="movement", lazy="raise")

    __table_args__ = (
        Index("ix_movements_ts", "ts"),
        Index("ix_movements_yard_type_ts", "yard_id", "type", "ts"),
        Index("ix_movements_trailer_id", "trailer_id"),
    )


class MovementDamage(Base, UUIDMixin):
    """A damage recorded during a movement."""

    __tablename__ = "movement_damages"

    movement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("movements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location: Mapped[str | None] = mapped_column(String(50), nullable=True)
    damage_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    new_damage: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    movement: Mapped[Movement] = relationship(back_populates="damages", lazy="raise")
