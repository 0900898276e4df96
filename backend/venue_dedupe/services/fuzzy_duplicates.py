"""Batch fuzzy duplicate detection and candidate pair bookkeeping."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from time import perf_counter
from typing import Any

from sqlalchemy import and_, case, delete, exists, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, aliased

from venue_dedupe.config import Settings, get_settings
from venue_dedupe.duplicate_detection.detector import (
    DetectorOptions,
    calculate_similarity_score,
    find_potential_duplicates,
    match_criteria,
)
from venue_dedupe.duplicate_detection.similarity import (
    coarse_geographic_similarity,
    location_similarity,
    name_similarity,
)
from venue_dedupe.models.venue import Venue
from venue_dedupe.models.venue_fuzzy_duplicate import (
    FUZZY_DUPLICATE_STATUSES,
    VenueFuzzyDuplicate,
    confidence_level,
)
from venue_dedupe.models.venue_merge_log import MERGE_ACTION, NOT_DUPLICATE_ACTION, VenueMergeLog
from venue_dedupe.schemas.fuzzy_duplicate import (
    FuzzyDuplicateFilter,
    FuzzyDuplicateQueueItem,
    FuzzyDuplicateRead,
    FuzzyDuplicateSort,
)
from venue_dedupe.schemas.venue import VenueRead

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 0.90
MEDIUM_CONFIDENCE = 0.75
_NAME_THRESHOLD_RELAXATION = 0.9


@dataclass(slots=True)
class BatchProgress:
    """Cumulative counters reported after each processed batch."""

    batch: int
    total_batches: int
    venues_processed: int
    total_venues: int
    duplicates_found: int
    duplicates_stored: int


@dataclass(slots=True)
class ProcessingOptions:
    batch_size: int = 100
    min_confidence: float = 0.70
    clear_existing: bool = False
    progress_callback: Callable[[BatchProgress], None] | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides: Any) -> "ProcessingOptions":
        """Build options from settings, letting non-None overrides win."""

        resolved = settings or get_settings()
        options = cls(
            batch_size=resolved.duplicate_batch_size,
            min_confidence=resolved.duplicate_min_confidence,
            clear_existing=resolved.duplicate_clear_existing,
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(options, key, value)
        return options


def process_all_venues(db: Session, options: ProcessingOptions | None = None) -> dict[str, int]:
    """Scan every live venue for duplicates and persist qualifying pairs.

    Commits once per batch, so a failure mid-scan keeps earlier batches.
    """

    opts = options or ProcessingOptions()
    if opts.batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    total_started = perf_counter()
    if opts.clear_existing:
        cleared = db.execute(delete(VenueFuzzyDuplicate)).rowcount
        db.commit()
        logger.info("dedupe.clear_existing rows=%s", cleared)

    venues = list(
        db.scalars(
            select(Venue).where(Venue.deleted_at.is_(None)).order_by(Venue.id.asc())
        ).all()
    )
    total_venues = len(venues)
    total_batches = math.ceil(total_venues / opts.batch_size) if total_venues else 0

    processed = 0
    duplicates_found = 0
    duplicates_stored = 0
    for batch_index in range(total_batches):
        batch_started = perf_counter()
        batch = venues[batch_index * opts.batch_size : (batch_index + 1) * opts.batch_size]
        for venue in batch:
            counts = process_venue(db, venue, opts)
            duplicates_found += counts["duplicates_found"]
            duplicates_stored += counts["duplicates_stored"]
            processed += 1
        db.commit()
        logger.info(
            "dedupe.batch_timing batch=%d total_batches=%d venues=%d found=%d stored=%d batch_ms=%.2f",
            batch_index + 1,
            total_batches,
            len(batch),
            duplicates_found,
            duplicates_stored,
            (perf_counter() - batch_started) * 1000.0,
        )
        if opts.progress_callback is not None:
            opts.progress_callback(
                BatchProgress(
                    batch=batch_index + 1,
                    total_batches=total_batches,
                    venues_processed=processed,
                    total_venues=total_venues,
                    duplicates_found=duplicates_found,
                    duplicates_stored=duplicates_stored,
                )
            )

    logger.info(
        "dedupe.process_all_timing processed=%d found=%d stored=%d min_confidence=%.2f total_ms=%.2f",
        processed,
        duplicates_found,
        duplicates_stored,
        opts.min_confidence,
        (perf_counter() - total_started) * 1000.0,
    )
    return {
        "processed": processed,
        "duplicates_found": duplicates_found,
        "duplicates_stored": duplicates_stored,
    }


def process_venue(db: Session, venue: Venue, options: ProcessingOptions | None = None) -> dict[str, int]:
    """Find duplicates of one venue and store pairs above ``min_confidence``.

    Does not commit; the caller owns the transaction.
    """

    opts = options or ProcessingOptions()
    detector_options = DetectorOptions(name_threshold=opts.min_confidence * _NAME_THRESHOLD_RELAXATION)
    candidates = find_potential_duplicates(db, venue, detector_options)

    stored = 0
    for candidate in candidates:
        confidence = calculate_similarity_score(venue, candidate, detector_options)
        if confidence < opts.min_confidence:
            continue
        values = {
            "venue1_id": min(venue.id, candidate.id),
            "venue2_id": max(venue.id, candidate.id),
            "confidence_score": _clamp(confidence),
            "name_similarity": _clamp(name_similarity(venue.name, candidate.name)),
            "location_similarity": _clamp(
                location_similarity(venue, candidate, geographic=coarse_geographic_similarity)
            ),
            "match_criteria": match_criteria(venue, candidate),
            "status": "pending",
        }
        if _insert_if_absent(db, values):
            stored += 1
    return {"duplicates_found": len(candidates), "duplicates_stored": stored}


def get_statistics(db: Session) -> dict[str, Any]:
    """Counts by confidence band and status, plus average scores."""

    score = VenueFuzzyDuplicate.confidence_score
    totals = db.execute(
        select(
            func.count(VenueFuzzyDuplicate.id),
            func.coalesce(func.sum(case((score >= HIGH_CONFIDENCE, 1), else_=0)), 0),
            func.coalesce(
                func.sum(case((and_(score >= MEDIUM_CONFIDENCE, score < HIGH_CONFIDENCE), 1), else_=0)),
                0,
            ),
            func.coalesce(func.sum(case((score < MEDIUM_CONFIDENCE, 1), else_=0)), 0),
            func.avg(score),
            func.avg(VenueFuzzyDuplicate.name_similarity),
            func.avg(VenueFuzzyDuplicate.location_similarity),
        )
    ).one()
    by_status = {status: 0 for status in FUZZY_DUPLICATE_STATUSES}
    for status, count in db.execute(
        select(VenueFuzzyDuplicate.status, func.count(VenueFuzzyDuplicate.id)).group_by(
            VenueFuzzyDuplicate.status
        )
    ).all():
        by_status[status] = int(count)

    return {
        "total": int(totals[0]),
        "high_confidence": int(totals[1]),
        "medium_confidence": int(totals[2]),
        "low_confidence": int(totals[3]),
        "by_status": by_status,
        "average_confidence": _round_optional(totals[4]),
        "average_name_similarity": _round_optional(totals[5]),
        "average_location_similarity": _round_optional(totals[6]),
    }


def sync_with_merge_logs(db: Session) -> dict[str, int]:
    """Move pending pairs to ``merged`` / ``rejected`` based on the audit log.

    Only pending rows are touched, so terminal statuses are never reverted.
    """

    started = perf_counter()
    merged = _mark_pairs_from_log(db, MERGE_ACTION, "merged")
    rejected = _mark_pairs_from_log(db, NOT_DUPLICATE_ACTION, "rejected")
    db.commit()
    logger.info(
        "dedupe.sync_merge_logs merged=%d rejected=%d total_ms=%.2f",
        merged,
        rejected,
        (perf_counter() - started) * 1000.0,
    )
    return {"merged": merged, "rejected": rejected}


def list_fuzzy_duplicates(
    db: Session,
    filter_type: FuzzyDuplicateFilter = "all",
    sort_by: FuzzyDuplicateSort = "confidence",
    limit: int = 50,
    offset: int = 0,
) -> list[FuzzyDuplicateQueueItem]:
    """Pending pairs whose venues are both still live, for the review queue."""

    venue1 = aliased(Venue)
    venue2 = aliased(Venue)
    stmt = _review_queue_query(select(VenueFuzzyDuplicate, venue1, venue2), venue1, venue2, filter_type)
    if sort_by == "name":
        ordering = (venue1.name.asc(),)
    elif sort_by == "name_similarity":
        ordering = (VenueFuzzyDuplicate.name_similarity.desc(),)
    elif sort_by == "location_similarity":
        ordering = (VenueFuzzyDuplicate.location_similarity.desc(),)
    else:
        ordering = (VenueFuzzyDuplicate.confidence_score.desc(),)
    stmt = stmt.order_by(*ordering, VenueFuzzyDuplicate.id.asc()).limit(limit).offset(offset)

    return [
        FuzzyDuplicateQueueItem(
            duplicate=FuzzyDuplicateRead.model_validate(duplicate),
            confidence_level=confidence_level(duplicate.confidence_score),
            venue1=VenueRead.model_validate(first),
            venue2=VenueRead.model_validate(second),
        )
        for duplicate, first, second in db.execute(stmt).all()
    ]


def count_fuzzy_duplicates(db: Session, filter_type: FuzzyDuplicateFilter = "all") -> int:
    venue1 = aliased(Venue)
    venue2 = aliased(Venue)
    stmt = _review_queue_query(
        select(func.count(VenueFuzzyDuplicate.id)), venue1, venue2, filter_type
    )
    return int(db.scalar(stmt) or 0)


def _review_queue_query(stmt, venue1, venue2, filter_type: FuzzyDuplicateFilter):
    stmt = (
        stmt.select_from(VenueFuzzyDuplicate)
        .join(venue1, venue1.id == VenueFuzzyDuplicate.venue1_id)
        .join(venue2, venue2.id == VenueFuzzyDuplicate.venue2_id)
        .where(
            VenueFuzzyDuplicate.status == "pending",
            venue1.deleted_at.is_(None),
            venue2.deleted_at.is_(None),
        )
    )
    score = VenueFuzzyDuplicate.confidence_score
    if filter_type == "high_confidence":
        stmt = stmt.where(score >= HIGH_CONFIDENCE)
    elif filter_type == "medium_confidence":
        stmt = stmt.where(score >= MEDIUM_CONFIDENCE, score < HIGH_CONFIDENCE)
    elif filter_type == "low_confidence":
        stmt = stmt.where(score < MEDIUM_CONFIDENCE)
    return stmt


def _mark_pairs_from_log(db: Session, action_type: str, new_status: str) -> int:
    pair_matches = and_(
        VenueMergeLog.action_type == action_type,
        or_(
            and_(
                VenueMergeLog.primary_venue_id == VenueFuzzyDuplicate.venue1_id,
                VenueMergeLog.secondary_venue_id == VenueFuzzyDuplicate.venue2_id,
            ),
            and_(
                VenueMergeLog.primary_venue_id == VenueFuzzyDuplicate.venue2_id,
                VenueMergeLog.secondary_venue_id == VenueFuzzyDuplicate.venue1_id,
            ),
        ),
    )
    latest_first = (VenueMergeLog.inserted_at.desc(), VenueMergeLog.id.desc())
    stmt = (
        update(VenueFuzzyDuplicate)
        .where(
            VenueFuzzyDuplicate.status == "pending",
            exists(select(VenueMergeLog.id).where(pair_matches)),
        )
        .values(
            status=new_status,
            reviewed_at=select(VenueMergeLog.inserted_at)
            .where(pair_matches)
            .order_by(*latest_first)
            .limit(1)
            .scalar_subquery(),
            reviewed_by=select(VenueMergeLog.performed_by)
            .where(pair_matches)
            .order_by(*latest_first)
            .limit(1)
            .scalar_subquery(),
        )
        .execution_options(synchronize_session=False)
    )
    return int(db.execute(stmt).rowcount or 0)


def _insert_if_absent(db: Session, values: dict[str, Any]) -> bool:
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        insert_stmt = postgresql_insert(VenueFuzzyDuplicate)
    elif dialect_name == "sqlite":
        insert_stmt = sqlite_insert(VenueFuzzyDuplicate)
    else:
        existing = db.scalar(
            select(VenueFuzzyDuplicate.id).where(
                VenueFuzzyDuplicate.venue1_id == values["venue1_id"],
                VenueFuzzyDuplicate.venue2_id == values["venue2_id"],
            )
        )
        if existing is not None:
            return False
        db.add(VenueFuzzyDuplicate(**values))
        db.flush()
        return True

    stmt = insert_stmt.values(**values).on_conflict_do_nothing(index_elements=["venue1_id", "venue2_id"])
    return db.execute(stmt).rowcount == 1


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def _round_optional(value: Any) -> float | None:
    if value is None:
        return None
    return round(float(value), 4)
