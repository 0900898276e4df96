"""Venue merge audit log model."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from venue_dedupe.models.base import Base, IdMixin

MERGE_ACTION = "merge"
NOT_DUPLICATE_ACTION = "not_duplicate"


class VenueMergeLog(Base, IdMixin):
    """Append-only record of merge and not-duplicate decisions."""

    __tablename__ = "venue_merge_logs"
    __table_args__ = (
        Index(
            "uq_venue_merge_logs_not_duplicate_pair",
            "primary_venue_id",
            "secondary_venue_id",
            "action_type",
            unique=True,
            postgresql_where=text("action_type = 'not_duplicate'"),
            sqlite_where=text("action_type = 'not_duplicate'"),
        ),
    )

    action_type: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    primary_venue_id: Mapped[int] = mapped_column(index=True, nullable=False)
    secondary_venue_id: Mapped[int] = mapped_column(index=True, nullable=False)
    performed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    inserted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        index=True,
        nullable=False,
    )
