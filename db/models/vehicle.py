"""
db/models/vehicle.py

Vehicle model, matched by licence plate.
"""

import uuid

from sqlalchemy import Boolean, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, OwnedMixin, TimestampMixin


class Vehicle(Base, OwnedMixin, TimestampMixin):
    __tablename__ = "vehicles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    plate: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    __table_args__ = (
        Index("ix_vehicles_owner_id_is_active", "owner_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Vehicle id={self.id} plate={self.plate!r}>"
