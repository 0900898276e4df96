"""Venue duplicate detection package."""

from venue_dedupe.duplicate_detection.detector import (
    DetectorOptions,
    calculate_similarity_score,
    find_potential_duplicates,
    is_duplicate,
    match_criteria,
)
from venue_dedupe.duplicate_detection.normalization import normalize_address, normalize_name

__all__ = [
    "DetectorOptions",
    "calculate_similarity_score",
    "find_potential_duplicates",
    "is_duplicate",
    "match_criteria",
    "normalize_address",
    "normalize_name",
]
