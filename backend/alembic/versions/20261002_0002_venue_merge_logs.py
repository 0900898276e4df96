"""add venue merge audit log

Revision ID: 20261002_0002
Revises: 20261001_0001
Create Date: 2026-10-02 00:00:02
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261002_0002"
down_revision: str | None = "20261001_0001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "venue_merge_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("action_type", sa.String(length=50), nullable=False),
        sa.Column("primary_venue_id", sa.Integer(), nullable=False),
        sa.Column("secondary_venue_id", sa.Integer(), nullable=False),
        sa.Column("performed_by", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=False),
        sa.Column("inserted_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_venue_merge_logs_action_type", "venue_merge_logs", ["action_type"], unique=False)
    op.create_index(
        "ix_venue_merge_logs_primary_venue_id",
        "venue_merge_logs",
        ["primary_venue_id"],
        unique=False,
    )
    op.create_index(
        "ix_venue_merge_logs_secondary_venue_id",
        "venue_merge_logs",
        ["secondary_venue_id"],
        unique=False,
    )
    op.create_index("ix_venue_merge_logs_inserted_at", "venue_merge_logs", ["inserted_at"], unique=False)
    op.create_index(
        "uq_venue_merge_logs_not_duplicate_pair",
        "venue_merge_logs",
        ["primary_venue_id", "secondary_venue_id", "action_type"],
        unique=True,
        postgresql_where=sa.text("action_type = 'not_duplicate'"),
    )


def downgrade() -> None:
    op.drop_index("uq_venue_merge_logs_not_duplicate_pair", table_name="venue_merge_logs")
    op.drop_index("ix_venue_merge_logs_inserted_at", table_name="venue_merge_logs")
    op.drop_index("ix_venue_merge_logs_secondary_venue_id", table_name="venue_merge_logs")
    op.drop_index("ix_venue_merge_logs_primary_venue_id", table_name="venue_merge_logs")
    op.drop_index("ix_venue_merge_logs_action_type", table_name="venue_merge_logs")
    op.drop_table("venue_merge_logs")
