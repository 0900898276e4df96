"""SQLAlchemy metadata registry import for Alembic."""

from venue_dedupe.models import Event, Venue, VenueFuzzyDuplicate, VenueMergeLog
from venue_dedupe.models.base import Base

__all__ = ["Base", "Venue", "Event", "VenueFuzzyDuplicate", "VenueMergeLog"]
