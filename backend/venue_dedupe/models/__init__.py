"""ORM models package exports."""

from venue_dedupe.models.event import Event
from venue_dedupe.models.venue import Venue
from venue_dedupe.models.venue_fuzzy_duplicate import VenueFuzzyDuplicate
from venue_dedupe.models.venue_merge_log import VenueMergeLog

__all__ = [
    "Venue",
    "Event",
    "VenueFuzzyDuplicate",
    "VenueMergeLog",
]
