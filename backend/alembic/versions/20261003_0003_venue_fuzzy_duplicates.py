"""add fuzzy duplicate candidate pairs

Revision ID: 20261003_0003
Revises: 20261002_0002
Create Date: 2026-10-03 00:00:03
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261003_0003"
down_revision: str | None = "20261002_0002"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "venue_fuzzy_duplicates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("venue1_id", sa.Integer(), nullable=False),
        sa.Column("venue2_id", sa.Integer(), nullable=False),
        sa.Column("confidence_score", sa.Float(), nullable=False),
        sa.Column("name_similarity", sa.Float(), nullable=False),
        sa.Column("location_similarity", sa.Float(), nullable=False),
        sa.Column("match_criteria", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("venue1_id", "venue2_id", name="uq_venue_fuzzy_duplicates_pair"),
        sa.CheckConstraint("venue1_id <> venue2_id", name="ck_venue_fuzzy_duplicates_distinct"),
        sa.CheckConstraint(
            "confidence_score >= 0.0 AND confidence_score <= 1.0",
            name="ck_venue_fuzzy_duplicates_confidence_range",
        ),
        sa.CheckConstraint(
            "name_similarity >= 0.0 AND name_similarity <= 1.0",
            name="ck_venue_fuzzy_duplicates_name_range",
        ),
        sa.CheckConstraint(
            "location_similarity >= 0.0 AND location_similarity <= 1.0",
            name="ck_venue_fuzzy_duplicates_location_range",
        ),
    )
    op.create_index("ix_venue_fuzzy_duplicates_venue1_id", "venue_fuzzy_duplicates", ["venue1_id"], unique=False)
    op.create_index("ix_venue_fuzzy_duplicates_venue2_id", "venue_fuzzy_duplicates", ["venue2_id"], unique=False)
    op.create_index(
        "ix_venue_fuzzy_duplicates_confidence_score",
        "venue_fuzzy_duplicates",
        ["confidence_score"],
        unique=False,
    )
    op.create_index("ix_venue_fuzzy_duplicates_status", "venue_fuzzy_duplicates", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_venue_fuzzy_duplicates_status", table_name="venue_fuzzy_duplicates")
    op.drop_index("ix_venue_fuzzy_duplicates_confidence_score", table_name="venue_fuzzy_duplicates")
    op.drop_index("ix_venue_fuzzy_duplicates_venue2_id", table_name="venue_fuzzy_duplicates")
    op.drop_index("ix_venue_fuzzy_duplicates_venue1_id", table_name="venue_fuzzy_duplicates")
    op.drop_table("venue_fuzzy_duplicates")
