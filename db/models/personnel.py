"""
db/models/personnel.py

Personnel model: drivers and crew, matched by identifier (document number)
or by full name.
"""

import uuid

from sqlalchemy import Boolean, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, OwnedMixin, TimestampMixin


class Personnel(Base, OwnedMixin, TimestampMixin):
    __tablename__ = "personnel"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    identifier: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="National id or internal staff number",
    )

    full_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    __table_args__ = (
        Index("ix_personnel_owner_id_is_active", "owner_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Personnel id={self.id} identifier={self.identifier!r}>"
