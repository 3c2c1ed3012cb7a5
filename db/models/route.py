"""
db/models/route.py

Route model: a fixed origin/destination pair of sites for which tariffs
are defined. Tariff versions hang off a route in tariff_records.
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Float, ForeignKey, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, OwnedMixin, TimestampMixin

if TYPE_CHECKING:
    from db.models.tariff_record import TariffRecordModel


class Route(Base, OwnedMixin, TimestampMixin):
    __tablename__ = "routes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
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

    distance_km: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
        comment="Used by per-distance tariffs",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────────

    tariff_records: Mapped[list["TariffRecordModel"]] = relationship(
        "TariffRecordModel",
        back_populates="route",
        passive_deletes=True,
    )

    # ── Indexes ────────────────────────────────────────────────────────────────

    __table_args__ = (
        UniqueConstraint(
            "owner_id",
            "origin_site_id",
            "destination_site_id",
            name="uq_routes_owner_origin_destination",
        ),
        Index("ix_routes_owner_id_is_active", "owner_id", "is_active"),
    )

    def __repr__(self) -> str:
        return (
            f"<Route id={self.id} origin={self.origin_site_id} "
            f"destination={self.destination_site_id}>"
        )
