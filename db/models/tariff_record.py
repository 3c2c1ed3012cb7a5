"""
db/models/tariff_record.py

One version of a route tariff. Versions of the same
(route_id, tariff_type, calculation_method) key must not overlap in time;
the gate lives in tariffs.store, so rows are only written through it.
Rows are never deleted once trips may have been priced with them.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from db.models.route import Route


class TariffRecordModel(Base, TimestampMixin):
    __tablename__ = "tariff_records"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    route_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("routes.id", ondelete="RESTRICT"),
        nullable=False,
    )

    tariff_type: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="TRMC (contracted) or TRMI (incidental)",
    )

    calculation_method: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="per_distance, per_unit, fixed",
    )

    base_value: Mapped[Decimal] = mapped_column(nullable=False)

    surcharge_value: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))

    valid_from: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    valid_until: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        comment="Inclusive; NULL means open-ended",
    )

    # ── Relationships ──────────────────────────────────────────────────────────

    route: Mapped["Route"] = relationship(
        "Route",
        back_populates="tariff_records",
    )

    # ── Indexes ────────────────────────────────────────────────────────────────

    __table_args__ = (
        CheckConstraint("base_value >= 0", name="ck_tariff_records_base_value_non_negative"),
        CheckConstraint(
            "surcharge_value >= 0", name="ck_tariff_records_surcharge_value_non_negative"
        ),
        CheckConstraint(
            "valid_until IS NULL OR valid_until >= valid_from",
            name="ck_tariff_records_valid_range",
        ),
        Index(
            "ix_tariff_records_route_type_method",
            "route_id",
            "tariff_type",
            "calculation_method",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<TariffRecordModel id={self.id} route_id={self.route_id} "
            f"type={self.tariff_type} method={self.calculation_method} "
            f"window={self.valid_from}..{self.valid_until}>"
        )
