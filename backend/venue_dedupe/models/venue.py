"""Venue ORM model."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from venue_dedupe.models.base import Base, IdMixin, TimestampMixin


class Venue(Base, IdMixin, TimestampMixin):
    """Venue record aggregated from one or more data sources."""

    __tablename__ = "venues"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str | None] = mapped_column(String(255), index=True, nullable=True)
    address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    postcode: Mapped[str | None] = mapped_column(String(32), index=True, nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    place_id: Mapped[str | None] = mapped_column(String(255), index=True, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    website: Mapped[str | None] = mapped_column(String(512), nullable=True)
    facebook: Mapped[str | None] = mapped_column(String(512), nullable=True)
    instagram: Mapped[str | None] = mapped_column(String(512), nullable=True)
    city_id: Mapped[int | None] = mapped_column(index=True, nullable=True)
    google_place_images: Mapped[list[Any]] = mapped_column(JSON, default=list, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        index=True,
        nullable=True,
    )
    deleted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Audit lookup only; intentionally not a foreign key.
    merged_into_id: Mapped[int | None] = mapped_column(index=True, nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
