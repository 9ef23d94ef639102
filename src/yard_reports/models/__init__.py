"""ORM model registry. Import all models so Alembic autogenerate discovers them."""

from yard_reports.models.movement import Movement, MovementDamage, MovementType, Trailer, YardId

__all__ = [
    "Movement",
    "MovementDamage",
    "MovementType",
    "Trailer",
    "YardId",
]
