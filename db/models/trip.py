"""
db/models/trip.py

A trip accepted by an import pass. External ids are unique per owner after
normalize_key(), the same folding the row classifier applies, which is what
makes a re-submitted row a DUPLICATE_EXTERNAL_ID instead of a copy.
"""

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, OwnedMixin, TimestampMixin


class Trip(Base, OwnedMixin, TimestampMixin):
    __tablename__ = "trips"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    import_session_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        comment="Not a foreign key: sessions are purged after expiry",
    )

    external_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )

    external_key: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="external_id after normalize_key; the per-owner uniqueness key",
    )

    trip_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    origin_site_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("sites.id", ondelete="RESTRICT"),
        nullable=False,
    )

    destination_site_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("sites.id", ondelete="RESTRICT"),
        nullable=False,
    )

    route_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("routes.id", ondelete="RESTRICT"),
        nullable=False,
    )

    tariff_type: Mapped[str | None] = mapped_column(
        String(16),
        nullable=True,
    )

    personnel_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("personnel.id", ondelete="SET NULL"),
        nullable=True,
    )

    vehicle_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("vehicles.id", ondelete="SET NULL"),
        nullable=True,
    )

    units: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 3),
        nullable=True,
        comment="Pallets or other load units",
    )

    original_index: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Row position in the submitted batch",
    )

    __table_args__ = (
        UniqueConstraint("owner_id", "external_key", name="uq_trips_owner_external_key"),
        Index("ix_trips_route_id_trip_date", "route_id", "trip_date"),
        Index("ix_trips_import_session_id", "import_session_id"),
    )

    def __repr__(self) -> str:
        return f"<Trip id={self.id} external_id={self.external_id!r} date={self.trip_date}>"
