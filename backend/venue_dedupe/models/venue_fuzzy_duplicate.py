"""Scored fuzzy duplicate venue pair model."""

from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, DateTime, Float, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from venue_dedupe.models.base import Base, IdMixin, TimestampMixin

FUZZY_DUPLICATE_STATUSES = ("pending", "reviewed", "merged", "rejected")


class VenueFuzzyDuplicate(Base, IdMixin, TimestampMixin):
    """Candidate duplicate pair awaiting review.

    Pairs are stored with ``venue1_id < venue2_id`` so that detection from
    either side lands on the same unique key.
    """

    __tablename__ = "venue_fuzzy_duplicates"
    __table_args__ = (
        UniqueConstraint("venue1_id", "venue2_id", name="uq_venue_fuzzy_duplicates_pair"),
        CheckConstraint("venue1_id <> venue2_id", name="ck_venue_fuzzy_duplicates_distinct"),
        CheckConstraint(
            "confidence_score >= 0.0 AND confidence_score <= 1.0",
            name="ck_venue_fuzzy_duplicates_confidence_range",
        ),
        CheckConstraint(
            "name_similarity >= 0.0 AND name_similarity <= 1.0",
            name="ck_venue_fuzzy_duplicates_name_range",
        ),
        CheckConstraint(
            "location_similarity >= 0.0 AND location_similarity <= 1.0",
            name="ck_venue_fuzzy_duplicates_location_range",
        ),
    )

    venue1_id: Mapped[int] = mapped_column(index=True, nullable=False)
    venue2_id: Mapped[int] = mapped_column(index=True, nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, index=True, nullable=False)
    name_similarity: Mapped[float] = mapped_column(Float, nullable=False)
    location_similarity: Mapped[float] = mapped_column(Float, nullable=False)
    match_criteria: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="pending", index=True, nullable=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)


def confidence_level(score: float) -> str:
    """Bucket a confidence score into ``high`` / ``medium`` / ``low``."""

    if score >= 0.90:
        return "high"
    if score >= 0.75:
        return "medium"
    return "low"
