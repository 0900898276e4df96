"""Duplicate detection and review queue routes."""

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session

from venue_dedupe.db.dependencies import get_db
from venue_dedupe.duplicate_detection.detector import (
    DEFAULT_NAME_THRESHOLD,
    DetectorOptions,
    calculate_similarity_score,
    find_potential_duplicates,
    is_duplicate,
    match_criteria,
)
from venue_dedupe.duplicate_detection.similarity import location_similarity, name_similarity
from venue_dedupe.models.venue import Venue
from venue_dedupe.schemas.common import ApiResponse
from venue_dedupe.schemas.fuzzy_duplicate import (
    FuzzyDuplicateFilter,
    FuzzyDuplicateQueue,
    FuzzyDuplicateSort,
    FuzzyDuplicateStatistics,
    ProcessingSummary,
    ProcessRequest,
    SimilarityBreakdown,
    SyncSummary,
)
from venue_dedupe.schemas.venue import VenueRead
from venue_dedupe.services.fuzzy_duplicates import (
    ProcessingOptions,
    count_fuzzy_duplicates,
    get_statistics,
    list_fuzzy_duplicates,
    process_all_venues,
    sync_with_merge_logs,
)

router = APIRouter()


@router.get("/venues/{venue_id}/duplicates", response_model=ApiResponse[list[VenueRead]])
def get_venue_duplicates(
    venue_id: int = Path(..., ge=1),
    name_threshold: float = Query(default=DEFAULT_NAME_THRESHOLD, ge=0.0, le=1.0),
    db: Session = Depends(get_db),
) -> ApiResponse[list[VenueRead]]:
    """Live venues in the same city that look like duplicates."""

    venue = _venue_or_404(db, venue_id)
    duplicates = find_potential_duplicates(db, venue, DetectorOptions(name_threshold=name_threshold))
    return ApiResponse(data=[VenueRead.model_validate(candidate) for candidate in duplicates])


@router.get(
    "/venues/{venue1_id}/similarity/{venue2_id}",
    response_model=ApiResponse[SimilarityBreakdown],
)
def get_venue_similarity(
    venue1_id: int = Path(..., ge=1),
    venue2_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
) -> ApiResponse[SimilarityBreakdown]:
    venue1 = _venue_or_404(db, venue1_id)
    venue2 = _venue_or_404(db, venue2_id)
    return ApiResponse(
        data=SimilarityBreakdown(
            venue1_id=venue1.id,
            venue2_id=venue2.id,
            confidence_score=calculate_similarity_score(venue1, venue2),
            name_similarity=name_similarity(venue1.name, venue2.name),
            location_similarity=location_similarity(venue1, venue2),
            is_duplicate=is_duplicate(venue1, venue2),
            match_criteria=match_criteria(venue1, venue2),
        )
    )


@router.get("/duplicates", response_model=ApiResponse[FuzzyDuplicateQueue])
def get_duplicate_queue(
    filter_type: FuzzyDuplicateFilter = Query(default="all"),
    sort_by: FuzzyDuplicateSort = Query(default="confidence"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> ApiResponse[FuzzyDuplicateQueue]:
    """Pending candidate pairs awaiting review."""

    items = list_fuzzy_duplicates(db, filter_type=filter_type, sort_by=sort_by, limit=limit, offset=offset)
    total = count_fuzzy_duplicates(db, filter_type=filter_type)
    return ApiResponse(data=FuzzyDuplicateQueue(items=items, total=total, limit=limit, offset=offset))


@router.get("/duplicates/statistics", response_model=ApiResponse[FuzzyDuplicateStatistics])
def get_duplicate_statistics(db: Session = Depends(get_db)) -> ApiResponse[FuzzyDuplicateStatistics]:
    return ApiResponse(data=FuzzyDuplicateStatistics(**get_statistics(db)))


@router.post("/duplicates/process", response_model=ApiResponse[ProcessingSummary])
def post_process_duplicates(
    payload: ProcessRequest,
    db: Session = Depends(get_db),
) -> ApiResponse[ProcessingSummary]:
    """Run a full duplicate scan synchronously."""

    options = ProcessingOptions.from_settings(
        batch_size=payload.batch_size,
        min_confidence=payload.min_confidence,
        clear_existing=payload.clear_existing,
    )
    return ApiResponse(data=ProcessingSummary(**process_all_venues(db, options)))


@router.post("/duplicates/sync", response_model=ApiResponse[SyncSummary])
def post_sync_duplicates(db: Session = Depends(get_db)) -> ApiResponse[SyncSummary]:
    """Apply merge and not-duplicate decisions to pending pairs."""

    return ApiResponse(data=SyncSummary(**sync_with_merge_logs(db)))


def _venue_or_404(db: Session, venue_id: int) -> Venue:
    venue = db.get(Venue, venue_id)
    if venue is None:
        raise HTTPException(status_code=404, detail="Venue not found")
    return venue
