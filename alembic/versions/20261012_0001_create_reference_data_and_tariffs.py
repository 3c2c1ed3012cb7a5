"""create reference data and tariff_records tables

Revision ID: 20261012_0001
Revises:
Create Date: 2026-10-12 10:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261012_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "sites",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sites_owner_id", "sites", ["owner_id"], unique=False)
    op.create_index("ix_sites_owner_id_is_active", "sites", ["owner_id", "is_active"], unique=False)

    op.create_table(
        "personnel",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("identifier", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_personnel_owner_id", "personnel", ["owner_id"], unique=False)
    op.create_index("ix_personnel_owner_id_is_active", "personnel", ["owner_id", "is_active"], unique=False)

    op.create_table(
        "vehicles",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("plate", sa.String(length=32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_vehicles_owner_id", "vehicles", ["owner_id"], unique=False)
    op.create_index("ix_vehicles_owner_id_is_active", "vehicles", ["owner_id", "is_active"], unique=False)

    op.create_table(
        "routes",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("origin_site_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("destination_site_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("distance_km", sa.Float(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["origin_site_id"], ["sites.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["destination_site_id"], ["sites.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "owner_id",
            "origin_site_id",
            "destination_site_id",
            name="uq_routes_owner_origin_destination",
        ),
    )
    op.create_index("ix_routes_owner_id", "routes", ["owner_id"], unique=False)
    op.create_index("ix_routes_owner_id_is_active", "routes", ["owner_id", "is_active"], unique=False)

    op.create_table(
        "tariff_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("route_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tariff_type", sa.String(length=16), nullable=False),
        sa.Column("calculation_method", sa.String(length=32), nullable=False),
        sa.Column("base_value", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("surcharge_value", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("valid_from", sa.Date(), nullable=False),
        sa.Column("valid_until", sa.Date(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("base_value >= 0", name="ck_tariff_records_base_value_non_negative"),
        sa.CheckConstraint("surcharge_value >= 0", name="ck_tariff_records_surcharge_value_non_negative"),
        sa.CheckConstraint(
            "valid_until IS NULL OR valid_until >= valid_from",
            name="ck_tariff_records_valid_range",
        ),
        sa.ForeignKeyConstraint(["route_id"], ["routes.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_tariff_records_route_type_method",
        "tariff_records",
        ["route_id", "tariff_type", "calculation_method"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_tariff_records_route_type_method", table_name="tariff_records")
    op.drop_table("tariff_records")
    op.drop_index("ix_routes_owner_id_is_active", table_name="routes")
    op.drop_index("ix_routes_owner_id", table_name="routes")
    op.drop_table("routes")
    op.drop_index("ix_vehicles_owner_id_is_active", table_name="vehicles")
    op.drop_index("ix_vehicles_owner_id", table_name="vehicles")
    op.drop_table("vehicles")
    op.drop_index("ix_personnel_owner_id_is_active", table_name="personnel")
    op.drop_index("ix_personnel_owner_id", table_name="personnel")
    op.drop_table("personnel")
    op.drop_index("ix_sites_owner_id_is_active", table_name="sites")
    op.drop_index("ix_sites_owner_id", table_name="sites")
    op.drop_table("sites")
