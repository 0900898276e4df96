"""Venue merge, preview and audit log schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from venue_dedupe.schemas.venue import VenueRead

MetadataStrategy = Literal["prefer_primary", "prefer_secondary", "combine"]
EventStrategy = Literal["migrate_all", "selective"]
MergeRecommendation = Literal["safe", "review_conflicts", "manual_review"]
MergeActionType = Literal["merge", "not_duplicate"]
MergeableField = Literal[
    "name",
    "address",
    "postcode",
    "phone",
    "website",
    "facebook",
    "instagram",
    "slug",
    "google_place_images",
]


class MergeOptions(BaseModel):
    """Per-call merge configuration."""

    performed_by: str = "system"
    notes: str | None = None
    metadata_strategy: MetadataStrategy = "combine"
    # "selective" is accepted but currently migrates every event.
    event_strategy: EventStrategy = "migrate_all"
    field_overrides: list[MergeableField] | None = None
    dry_run: bool = False


class MergeRequest(MergeOptions):
    primary_venue_id: int = Field(..., ge=1)
    secondary_venue_id: int = Field(..., ge=1)

    def to_options(self) -> MergeOptions:
        return MergeOptions.model_validate(
            self.model_dump(exclude={"primary_venue_id", "secondary_venue_id"})
        )


class MergeResult(BaseModel):
    """Outcome of a committed merge."""

    primary_venue_id: int
    secondary_venue_id: int
    log_id: int
    events_migrated: int
    conflicting_events_deleted: int
    fields_updated: list[str]
    errors: list[str] = Field(default_factory=list)


class MetadataConflict(BaseModel):
    field: str
    primary_value: Any
    secondary_value: Any


class EstimatedChanges(BaseModel):
    events_to_migrate: int
    event_conflicts: int
    metadata_conflicts: int
    metadata_will_change: bool
    fields_to_update: list[str]


class MergePreview(BaseModel):
    """Read-only forecast of what a merge would do."""

    primary_venue: VenueRead
    secondary_venue: VenueRead
    primary_events_count: int
    secondary_events_count: int
    metadata_conflicts: list[MetadataConflict]
    estimated_changes: EstimatedChanges
    recommendation: MergeRecommendation


class MergeOutcome(BaseModel):
    """Response of the merge endpoint: a result, or a preview for dry runs."""

    dry_run: bool
    result: MergeResult | None = None
    preview: MergePreview | None = None


class PrimaryVenueRecommendation(BaseModel):
    primary_venue_id: int
    secondary_venue_id: int
    primary_score: float
    secondary_score: float


class NotDuplicateRequest(BaseModel):
    venue1_id: int = Field(..., ge=1)
    venue2_id: int = Field(..., ge=1)
    performed_by: str | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def _distinct_venues(self) -> "NotDuplicateRequest":
        if self.venue1_id == self.venue2_id:
            raise ValueError("venue1_id and venue2_id must differ")
        return self


class MergeHistoryFilters(BaseModel):
    venue_id: int | None = None
    action_type: MergeActionType | None = None
    inserted_from: datetime | None = None
    inserted_to: datetime | None = None


class MergeLogRead(BaseModel):
    """Serialized merge audit entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    action_type: str
    primary_venue_id: int
    secondary_venue_id: int
    performed_by: str | None
    notes: str | None
    metadata_json: dict[str, Any]
    inserted_at: datetime
