"""Venue merge and audit log routes."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session

from venue_dedupe.db.dependencies import get_db
from venue_dedupe.models.venue import Venue
from venue_dedupe.schemas.common import ApiResponse, StepErrorDetail
from venue_dedupe.schemas.merge import (
    MergeActionType,
    MergeHistoryFilters,
    MergeLogRead,
    MergeOptions,
    MergeOutcome,
    MergePreview,
    MergeRequest,
    NotDuplicateRequest,
    PrimaryVenueRecommendation,
)
from venue_dedupe.services.venue_merge import (
    MergeLogNotFoundError,
    MergeStepError,
    RollbackNotSupportedError,
    SelfMergeError,
    VenueAlreadyDeletedError,
    VenueMergeError,
    VenueNotFoundError,
    calculate_venue_score,
    create_not_duplicate_log,
    determine_primary_venue,
    list_merge_history,
    merge_venues,
    preview_merge,
    rollback_merge,
)

router = APIRouter()

_ERROR_STATUS: dict[type[VenueMergeError], int] = {
    VenueNotFoundError: 404,
    MergeLogNotFoundError: 404,
    VenueAlreadyDeletedError: 409,
    SelfMergeError: 400,
    RollbackNotSupportedError: 501,
    MergeStepError: 500,
}


@router.post("/venues/merge", response_model=ApiResponse[MergeOutcome])
def post_merge_venues(
    payload: MergeRequest,
    db: Session = Depends(get_db),
) -> ApiResponse[MergeOutcome]:
    """Merge the secondary venue into the primary, or preview when ``dry_run`` is set."""

    try:
        outcome = merge_venues(db, payload.primary_venue_id, payload.secondary_venue_id, payload.to_options())
    except VenueMergeError as exc:
        raise _to_http_error(exc) from exc
    if isinstance(outcome, MergePreview):
        return ApiResponse(data=MergeOutcome(dry_run=True, preview=outcome))
    return ApiResponse(data=MergeOutcome(dry_run=False, result=outcome))


@router.post("/venues/merge/preview", response_model=ApiResponse[MergePreview])
def post_merge_preview(
    payload: MergeRequest,
    db: Session = Depends(get_db),
) -> ApiResponse[MergePreview]:
    try:
        preview = preview_merge(db, payload.primary_venue_id, payload.secondary_venue_id, payload.to_options())
    except VenueMergeError as exc:
        raise _to_http_error(exc) from exc
    return ApiResponse(data=preview)


@router.get("/venues/merge/primary", response_model=ApiResponse[PrimaryVenueRecommendation])
def get_primary_venue(
    venue1_id: int = Query(..., ge=1),
    venue2_id: int = Query(..., ge=1),
    db: Session = Depends(get_db),
) -> ApiResponse[PrimaryVenueRecommendation]:
    """Suggest which of two venues should survive a merge."""

    try:
        primary_id, secondary_id = determine_primary_venue(db, venue1_id, venue2_id)
    except VenueMergeError as exc:
        raise _to_http_error(exc) from exc
    return ApiResponse(
        data=PrimaryVenueRecommendation(
            primary_venue_id=primary_id,
            secondary_venue_id=secondary_id,
            primary_score=calculate_venue_score(db, db.get(Venue, primary_id)),
            secondary_score=calculate_venue_score(db, db.get(Venue, secondary_id)),
        )
    )


@router.post("/venues/not-duplicates", response_model=ApiResponse[MergeLogRead])
def post_not_duplicate(
    payload: NotDuplicateRequest,
    db: Session = Depends(get_db),
) -> ApiResponse[MergeLogRead]:
    try:
        entry = create_not_duplicate_log(
            db,
            payload.venue1_id,
            payload.venue2_id,
            performed_by=payload.performed_by,
            notes=payload.notes,
        )
    except VenueMergeError as exc:
        raise _to_http_error(exc) from exc
    return ApiResponse(data=MergeLogRead.model_validate(entry))


@router.get("/merge-logs", response_model=ApiResponse[list[MergeLogRead]])
def get_merge_logs(
    venue_id: int | None = Query(default=None, ge=1),
    action_type: MergeActionType | None = Query(default=None),
    inserted_from: datetime | None = Query(default=None),
    inserted_to: datetime | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> ApiResponse[list[MergeLogRead]]:
    """Merge and not-duplicate audit entries, newest first."""

    filters = MergeHistoryFilters(
        venue_id=venue_id,
        action_type=action_type,
        inserted_from=inserted_from,
        inserted_to=inserted_to,
    )
    entries = list_merge_history(db, filters, limit=limit)
    return ApiResponse(data=[MergeLogRead.model_validate(entry) for entry in entries])


@router.post("/merge-logs/{log_id}/rollback")
def post_rollback_merge(
    log_id: int = Path(..., ge=1),
    performed_by: str = Query(default="system"),
    db: Session = Depends(get_db),
) -> None:
    try:
        rollback_merge(db, log_id, MergeOptions(performed_by=performed_by))
    except VenueMergeError as exc:
        raise _to_http_error(exc) from exc


def _to_http_error(exc: VenueMergeError) -> HTTPException:
    status_code = _ERROR_STATUS.get(type(exc), 400)
    return HTTPException(
        status_code=status_code,
        detail=StepErrorDetail(step=exc.step, reason=exc.reason).model_dump(),
    )
