"""
db/models/site.py

Site model: a named loading or unloading location owned by a client.
Trip rows reference sites by name; matching is accent- and case-insensitive.
"""

import uuid

from sqlalchemy import Boolean, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, OwnedMixin, TimestampMixin


class Site(Base, OwnedMixin, TimestampMixin):
    __tablename__ = "sites"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Inactive sites are left out of import snapshots",
    )

    __table_args__ = (
        Index("ix_sites_owner_id_is_active", "owner_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Site id={self.id} name={self.name!r}>"
