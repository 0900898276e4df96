"""create venues and events tables

Revision ID: 20261001_0001
Revises:
Create Date: 2026-10-01 00:00:01
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261001_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "venues",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=True),
        sa.Column("address", sa.String(length=512), nullable=True),
        sa.Column("postcode", sa.String(length=32), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("place_id", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("website", sa.String(length=512), nullable=True),
        sa.Column("facebook", sa.String(length=512), nullable=True),
        sa.Column("instagram", sa.String(length=512), nullable=True),
        sa.Column("city_id", sa.Integer(), nullable=True),
        sa.Column("google_place_images", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.String(length=255), nullable=True),
        sa.Column("merged_into_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_venues_slug", "venues", ["slug"], unique=False)
    op.create_index("ix_venues_postcode", "venues", ["postcode"], unique=False)
    op.create_index("ix_venues_place_id", "venues", ["place_id"], unique=False)
    op.create_index("ix_venues_city_id", "venues", ["city_id"], unique=False)
    op.create_index("ix_venues_deleted_at", "venues", ["deleted_at"], unique=False)
    op.create_index("ix_venues_merged_into_id", "venues", ["merged_into_id"], unique=False)

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("venue_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["venue_id"], ["venues.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("venue_id", "day_of_week", "start_time", name="uq_events_venue_slot"),
    )
    op.create_index("ix_events_venue_id", "events", ["venue_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_events_venue_id", table_name="events")
    op.drop_table("events")
    op.drop_index("ix_venues_merged_into_id", table_name="venues")
    op.drop_index("ix_venues_deleted_at", table_name="venues")
    op.drop_index("ix_venues_city_id", table_name="venues")
    op.drop_index("ix_venues_place_id", table_name="venues")
    op.drop_index("ix_venues_postcode", table_name="venues")
    op.drop_index("ix_venues_slug", table_name="venues")
    op.drop_table("venues")
