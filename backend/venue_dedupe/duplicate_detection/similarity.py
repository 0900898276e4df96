"""Name, address and geographic similarity scoring for venues."""

from __future__ import annotations

import math
from collections.abc import Callable
from typing import Protocol

from rapidfuzz.distance import JaroWinkler

from venue_dedupe.duplicate_detection.normalization import normalize_address, normalize_name

EARTH_RADIUS_KM = 6371.0
NAME_WEIGHT = 0.7
LOCATION_WEIGHT = 0.3


class VenueLike(Protocol):
    """Attributes the scorers read from a venue."""

    id: int | None
    name: str | None
    address: str | None
    postcode: str | None
    latitude: float | None
    longitude: float | None
    place_id: str | None
    city_id: int | None


GeographicScorer = Callable[[VenueLike, VenueLike], float]


def name_similarity(left: str | None, right: str | None) -> float:
    """Jaro-Winkler similarity of two normalized venue names in [0, 1].

    Names made only of stopwords normalize to an empty string; two of them
    still compare as identical.
    """

    if not left or not right:
        return 0.0
    norm_left = normalize_name(left)
    norm_right = normalize_name(right)
    if norm_left == norm_right:
        return 1.0
    return float(JaroWinkler.similarity(norm_left, norm_right))


def address_similarity(left: str | None, right: str | None) -> float:
    """Jaro-Winkler similarity of two normalized addresses in [0, 1]."""

    norm_left = normalize_address(left)
    norm_right = normalize_address(right)
    if not norm_left or not norm_right:
        return 0.0
    return float(JaroWinkler.similarity(norm_left, norm_right))


def same_postcode(venue1: VenueLike, venue2: VenueLike) -> bool:
    return bool(venue1.postcode) and bool(venue2.postcode) and venue1.postcode == venue2.postcode


def same_place_id(venue1: VenueLike, venue2: VenueLike) -> bool:
    return bool(venue1.place_id) and bool(venue2.place_id) and venue1.place_id == venue2.place_id


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres between two coordinates."""

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2) - math.radians(lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def geographic_similarity(venue1: VenueLike, venue2: VenueLike) -> float:
    """Strict distance curve: 1.0 within 100 m, linear decay to 0.0 at 1 km."""

    coordinates = _coordinates(venue1, venue2)
    if coordinates is None:
        return 0.0
    distance_km = haversine_km(*coordinates)
    if distance_km <= 0.1:
        return 1.0
    if distance_km <= 1.0:
        return 1.0 - (distance_km - 0.1) / 0.9
    return 0.0


def coarse_geographic_similarity(venue1: VenueLike, venue2: VenueLike) -> float:
    """Degree-delta curve used for stored pair scores.

    Sums absolute latitude and longitude deltas: 1.0 up to 0.001 degrees,
    linear decay to 0.0 at 0.01 degrees.
    """

    coordinates = _coordinates(venue1, venue2)
    if coordinates is None:
        return 0.0
    lat1, lon1, lat2, lon2 = coordinates
    total_diff = abs(lat1 - lat2) + abs(lon1 - lon2)
    if total_diff <= 0.001:
        return 1.0
    if total_diff <= 0.01:
        return 1.0 - (total_diff - 0.001) / 0.009
    return 0.0


def location_similarity(
    venue1: VenueLike,
    venue2: VenueLike,
    *,
    geographic: GeographicScorer = geographic_similarity,
) -> float:
    """Postcode match, then address similarity, then geographic proximity."""

    if same_postcode(venue1, venue2):
        return 1.0
    if venue1.address and venue2.address:
        return address_similarity(venue1.address, venue2.address)
    return geographic(venue1, venue2)


def similarity_score(
    venue1: VenueLike,
    venue2: VenueLike,
    *,
    include_place_id_check: bool = True,
) -> float:
    """Composite confidence; a shared place id is definitive."""

    if include_place_id_check and same_place_id(venue1, venue2):
        return 1.0
    name_score = name_similarity(venue1.name, venue2.name)
    location_score = location_similarity(venue1, venue2)
    return NAME_WEIGHT * name_score + LOCATION_WEIGHT * location_score


def _coordinates(venue1: VenueLike, venue2: VenueLike) -> tuple[float, float, float, float] | None:
    values = (venue1.latitude, venue1.longitude, venue2.latitude, venue2.longitude)
    if any(value is None for value in values):
        return None
    lat1, lon1, lat2, lon2 = (float(value) for value in values)
    return lat1, lon1, lat2, lon2
