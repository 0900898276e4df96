"""Candidate lookup and duplicate decision rules for venues."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from venue_dedupe.duplicate_detection.similarity import (
    VenueLike,
    coarse_geographic_similarity,
    geographic_similarity,
    name_similarity,
    same_place_id,
    same_postcode,
    similarity_score,
)
from venue_dedupe.models.venue import Venue

logger = logging.getLogger(__name__)

DEFAULT_NAME_THRESHOLD = 0.85
DEFAULT_ADDRESS_THRESHOLD = 0.80
_OVERALL_SIMILARITY_THRESHOLD = 0.85
_STRONG_GEOGRAPHIC_THRESHOLD = 0.95
_CRITERIA_NAME_THRESHOLD = 0.85
_CRITERIA_GEOGRAPHIC_THRESHOLD = 0.8


@dataclass(slots=True, frozen=True)
class DetectorOptions:
    """Thresholds and switches for duplicate detection."""

    name_threshold: float = DEFAULT_NAME_THRESHOLD
    # Reserved; no decision currently gates on it.
    address_threshold: float = DEFAULT_ADDRESS_THRESHOLD
    include_place_id_check: bool = True
    exclude_soft_deleted: bool = True


_DEFAULT_OPTIONS = DetectorOptions()


def find_potential_duplicates(
    db: Session,
    venue: Venue,
    options: DetectorOptions | None = None,
) -> list[Venue]:
    """Return venues in the same city that look like duplicates of ``venue``."""

    opts = options or _DEFAULT_OPTIONS
    candidates = _candidate_venues(db, venue, opts)
    duplicates = [candidate for candidate in candidates if is_duplicate(venue, candidate, opts)]
    logger.debug(
        "dedupe.find_candidates venue_id=%s candidates=%d duplicates=%d name_threshold=%.3f",
        venue.id,
        len(candidates),
        len(duplicates),
        opts.name_threshold,
    )
    return duplicates


def calculate_similarity_score(
    venue1: VenueLike,
    venue2: VenueLike,
    options: DetectorOptions | None = None,
) -> float:
    """Composite similarity in [0, 1] used for gating and storage."""

    opts = options or _DEFAULT_OPTIONS
    return similarity_score(venue1, venue2, include_place_id_check=opts.include_place_id_check)


def is_duplicate(
    venue1: VenueLike,
    venue2: VenueLike,
    options: DetectorOptions | None = None,
) -> bool:
    """Decide whether two venues are likely the same place."""

    opts = options or _DEFAULT_OPTIONS
    if venue1 is venue2 or (venue1.id is not None and venue1.id == venue2.id):
        return False
    if opts.include_place_id_check and same_place_id(venue1, venue2):
        return True
    if (
        name_similarity(venue1.name, venue2.name) >= opts.name_threshold
        and has_strong_location_match(venue1, venue2)
    ):
        return True
    return calculate_similarity_score(venue1, venue2, opts) >= _OVERALL_SIMILARITY_THRESHOLD


def has_strong_location_match(venue1: VenueLike, venue2: VenueLike) -> bool:
    """Same postcode, or practically the same coordinates on the strict curve."""

    if same_postcode(venue1, venue2):
        return True
    return geographic_similarity(venue1, venue2) >= _STRONG_GEOGRAPHIC_THRESHOLD


def match_criteria(venue1: VenueLike, venue2: VenueLike) -> list[str]:
    """Human-readable tags explaining why a pair was flagged."""

    criteria: list[str] = []
    if name_similarity(venue1.name, venue2.name) >= _CRITERIA_NAME_THRESHOLD:
        criteria.append("similar_name")
    if same_postcode(venue1, venue2):
        criteria.append("same_postcode")
    if venue1.city_id is not None and venue1.city_id == venue2.city_id:
        criteria.append("same_city")
    if coarse_geographic_similarity(venue1, venue2) >= _CRITERIA_GEOGRAPHIC_THRESHOLD:
        criteria.append("geographic_proximity")
    if same_place_id(venue1, venue2):
        criteria.append("same_place_id")
    return criteria


def _candidate_venues(db: Session, venue: Venue, options: DetectorOptions) -> list[Venue]:
    stmt = select(Venue).where(Venue.id != venue.id)
    if options.exclude_soft_deleted:
        stmt = stmt.where(Venue.deleted_at.is_(None))
    if venue.city_id is not None:
        stmt = stmt.where(Venue.city_id == venue.city_id)
    return list(db.scalars(stmt.order_by(Venue.id.asc())).all())
