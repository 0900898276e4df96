"""Fuzzy duplicate detection and review queue schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from venue_dedupe.schemas.venue import VenueRead

FuzzyDuplicateFilter = Literal["all", "high_confidence", "medium_confidence", "low_confidence"]
FuzzyDuplicateSort = Literal["confidence", "name", "name_similarity", "location_similarity"]


class FuzzyDuplicateRead(BaseModel):
    """Stored candidate pair."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    venue1_id: int
    venue2_id: int
    confidence_score: float
    name_similarity: float
    location_similarity: float
    match_criteria: list[str]
    status: str
    reviewed_at: datetime | None
    reviewed_by: str | None
    created_at: datetime


class FuzzyDuplicateQueueItem(BaseModel):
    """Candidate pair with both venues attached for review."""

    duplicate: FuzzyDuplicateRead
    confidence_level: str
    venue1: VenueRead
    venue2: VenueRead


class FuzzyDuplicateQueue(BaseModel):
    items: list[FuzzyDuplicateQueueItem]
    total: int
    limit: int
    offset: int


class SimilarityBreakdown(BaseModel):
    """Score components for one venue pair."""

    venue1_id: int
    venue2_id: int
    confidence_score: float
    name_similarity: float
    location_similarity: float
    is_duplicate: bool
    match_criteria: list[str]


class ProcessRequest(BaseModel):
    """Overrides for a full duplicate scan; unset fields fall back to settings."""

    batch_size: int | None = Field(default=None, ge=1)
    min_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    clear_existing: bool | None = None


class ProcessingSummary(BaseModel):
    processed: int
    duplicates_found: int
    duplicates_stored: int


class SyncSummary(BaseModel):
    merged: int
    rejected: int


class FuzzyDuplicateStatistics(BaseModel):
    """Aggregate view of stored candidate pairs."""

    total: int
    high_confidence: int
    medium_confidence: int
    low_confidence: int
    by_status: dict[str, int]
    average_confidence: float | None
    average_name_similarity: float | None
    average_location_similarity: float | None
