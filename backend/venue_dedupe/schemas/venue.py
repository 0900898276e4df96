"""Venue and event response schemas."""

from datetime import datetime, time
from typing import Any

from pydantic import BaseModel, ConfigDict


class VenueRead(BaseModel):
    """Serialized venue."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str | None
    address: str | None
    postcode: str | None
    latitude: float | None
    longitude: float | None
    place_id: str | None
    phone: str | None
    website: str | None
    facebook: str | None
    instagram: str | None
    city_id: int | None
    google_place_images: list[Any]
    deleted_at: datetime | None
    deleted_by: str | None
    merged_into_id: int | None
    created_at: datetime
    updated_at: datetime


class EventRead(BaseModel):
    """Serialized venue event."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    venue_id: int
    name: str | None
    day_of_week: int
    start_time: time
