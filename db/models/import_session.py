"""
db/models/import_session.py

Self-contained trip import session. Failed and pending rows are embedded as
JSONB so the session can be exported in one read and purged in one delete.
`version` is SQLAlchemy's version_id_col: every UPDATE checks and bumps it.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, OwnedMixin


class ImportSessionModel(Base, OwnedMixin):
    __tablename__ = "import_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="processing, pending_correction, retrying, completed, failed",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    initial_success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    initial_failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    retry_success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    retry_failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_breakdown: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        comment="Per reason: count and sample external ids",
    )
    failed_rows: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
    )
    pending_rows: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
    )
    processed_correction_kinds: Mapped[list[str]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_import_sessions_status", "status"),
        Index("ix_import_sessions_expires_at", "expires_at"),
    )
