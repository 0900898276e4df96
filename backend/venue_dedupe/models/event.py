"""Recurring venue event ORM model."""

from datetime import time

from sqlalchemy import ForeignKey, String, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from venue_dedupe.models.base import Base, IdMixin, TimestampMixin


class Event(Base, IdMixin, TimestampMixin):
    """Weekly event hosted at a venue."""

    __tablename__ = "events"
    __table_args__ = (
        UniqueConstraint("venue_id", "day_of_week", "start_time", name="uq_events_venue_slot"),
    )

    venue_id: Mapped[int] = mapped_column(ForeignKey("venues.id"), index=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # ISO weekday, 1 = Monday.
    day_of_week: Mapped[int] = mapped_column(nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
