"""create import_sessions and trips tables

Revision ID: 20261012_0002
Revises: 20261012_0001
Create Date: 2026-10-12 10:30:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261012_0002"
down_revision = "20261012_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "import_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_rows", sa.Integer(), nullable=False),
        sa.Column("initial_success_count", sa.Integer(), nullable=False),
        sa.Column("initial_failure_count", sa.Integer(), nullable=False),
        sa.Column("retry_success_count", sa.Integer(), nullable=False),
        sa.Column("retry_failure_count", sa.Integer(), nullable=False),
        sa.Column("failure_breakdown", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("failed_rows", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("pending_rows", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("processed_correction_kinds", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_import_sessions_owner_id", "import_sessions", ["owner_id"], unique=False)
    op.create_index("ix_import_sessions_status", "import_sessions", ["status"], unique=False)
    op.create_index("ix_import_sessions_expires_at", "import_sessions", ["expires_at"], unique=False)

    op.create_table(
        "trips",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("import_session_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("external_id", sa.String(length=128), nullable=False),
        sa.Column("external_key", sa.String(length=128), nullable=False),
        sa.Column("trip_date", sa.Date(), nullable=False),
        sa.Column("origin_site_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("destination_site_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("route_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tariff_type", sa.String(length=16), nullable=True),
        sa.Column("personnel_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("vehicle_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("units", sa.Numeric(precision=12, scale=3), nullable=True),
        sa.Column("original_index", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["origin_site_id"], ["sites.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["destination_site_id"], ["sites.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["route_id"], ["routes.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["personnel_id"], ["personnel.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["vehicle_id"], ["vehicles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("owner_id", "external_key", name="uq_trips_owner_external_key"),
    )
    op.create_index("ix_trips_owner_id", "trips", ["owner_id"], unique=False)
    op.create_index("ix_trips_route_id_trip_date", "trips", ["route_id", "trip_date"], unique=False)
    op.create_index("ix_trips_import_session_id", "trips", ["import_session_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_trips_import_session_id", table_name="trips")
    op.drop_index("ix_trips_route_id_trip_date", table_name="trips")
    op.drop_index("ix_trips_owner_id", table_name="trips")
    op.drop_table("trips")
    op.drop_index("ix_import_sessions_expires_at", table_name="import_sessions")
    op.drop_index("ix_import_sessions_status", table_name="import_sessions")
    op.drop_index("ix_import_sessions_owner_id", table_name="import_sessions")
    op.drop_table("import_sessions")
