"""Unit tests for venue normalization, similarity scoring and duplicate rules."""

import math
import unittest
from types import SimpleNamespace

from venue_dedupe.duplicate_detection.detector import DetectorOptions, is_duplicate, match_criteria
from venue_dedupe.duplicate_detection.normalization import normalize_address, normalize_name
from venue_dedupe.duplicate_detection.similarity import (
    coarse_geographic_similarity,
    geographic_similarity,
    haversine_km,
    location_similarity,
    name_similarity,
    similarity_score,
)


def _venue(**fields) -> SimpleNamespace:
    values = {
        "id": None,
        "name": None,
        "address": None,
        "postcode": None,
        "latitude": None,
        "longitude": None,
        "place_id": None,
        "city_id": None,
    }
    values.update(fields)
    return SimpleNamespace(**values)


class NormalizationTests(unittest.TestCase):
    def test_name_drops_stopwords_and_punctuation(self) -> None:
        self.assertEqual(normalize_name("The Crown Pub & Restaurant"), "crown")
        self.assertEqual(normalize_name("Fox & Hounds"), "fox hounds")
        self.assertEqual(normalize_name("  Kings   Arms!! "), "kings arms")

    def test_stopwords_match_whole_words_only(self) -> None:
        self.assertEqual(normalize_name("Barnaby's Innings"), "barnaby s innings")

    def test_address_abbreviates_street_types(self) -> None:
        self.assertEqual(normalize_address("123 High Street, London"), "123 high st london")
        self.assertEqual(normalize_address("4 Abbey Road"), "4 abbey rd")
        self.assertEqual(normalize_address("Lane Place Avenue"), "ln pl ave")

    def test_missing_values_normalize_to_empty(self) -> None:
        self.assertEqual(normalize_name(None), "")
        self.assertEqual(normalize_name(""), "")
        self.assertEqual(normalize_address(None), "")
        self.assertEqual(normalize_name("The Pub"), "")

    def test_normalization_is_idempotent(self) -> None:
        for raw in ["The Crown Pub & Restaurant", "Ye Olde Cheshire Cheese", "O'Neill's Bar", ""]:
            once = normalize_name(raw)
            self.assertEqual(normalize_name(once), once)
        for raw in ["123 High Street, London", "Flat 2, 7 Church Lane", ""]:
            once = normalize_address(raw)
            self.assertEqual(normalize_address(once), once)


class SimilarityTests(unittest.TestCase):
    def test_name_similarity_uses_normalized_names(self) -> None:
        self.assertEqual(name_similarity("The Crown", "Crown Pub"), 1.0)
        self.assertEqual(name_similarity("The Pub", "Crown"), 0.0)
        self.assertEqual(name_similarity(None, "Crown"), 0.0)

    def test_name_similarity_is_symmetric_and_bounded(self) -> None:
        pairs = [("Red Lion", "Red Lyon"), ("Fox", "Fox & Hounds"), ("Blue Anchor", "Red Lion")]
        for left, right in pairs:
            score = name_similarity(left, right)
            self.assertAlmostEqual(score, name_similarity(right, left), places=9)
            self.assertGreaterEqual(score, 0.0)
            self.assertLessEqual(score, 1.0)
        self.assertEqual(name_similarity("Kings Arms", "Kings Arms"), 1.0)

    def test_stopword_only_names_still_match_themselves(self) -> None:
        self.assertEqual(normalize_name("The Pub"), "")
        self.assertEqual(name_similarity("The Pub", "The Pub"), 1.0)
        self.assertEqual(name_similarity("The Pub", "Pub"), 1.0)
        self.assertEqual(name_similarity("Bar & Hotel", "Bar & Hotel"), 1.0)
        self.assertEqual(name_similarity("", ""), 0.0)

    def test_haversine_distance(self) -> None:
        self.assertAlmostEqual(haversine_km(51.5074, -0.1278, 48.8566, 2.3522), 343.5, delta=2.0)
        self.assertEqual(haversine_km(51.5, -0.1, 51.5, -0.1), 0.0)

    def test_strict_geographic_curve(self) -> None:
        origin = _venue(latitude=51.5, longitude=-0.1)
        self.assertEqual(geographic_similarity(origin, _venue(latitude=51.5, longitude=-0.1)), 1.0)

        halfway = _venue(latitude=51.5 + math.degrees(0.55 / 6371.0), longitude=-0.1)
        self.assertAlmostEqual(geographic_similarity(origin, halfway), 0.5, places=6)

        far = _venue(latitude=51.52, longitude=-0.1)
        self.assertEqual(geographic_similarity(origin, far), 0.0)
        self.assertEqual(geographic_similarity(origin, _venue()), 0.0)

    def test_coarse_geographic_curve(self) -> None:
        origin = _venue(latitude=51.0, longitude=0.0)
        self.assertEqual(coarse_geographic_similarity(origin, _venue(latitude=51.0005, longitude=0.0)), 1.0)
        self.assertAlmostEqual(
            coarse_geographic_similarity(origin, _venue(latitude=51.003, longitude=0.0025)),
            0.5,
            places=6,
        )
        self.assertEqual(coarse_geographic_similarity(origin, _venue(latitude=51.02, longitude=0.0)), 0.0)

    def test_geographic_curves_differ(self) -> None:
        origin = _venue(latitude=51.0, longitude=0.0)
        nearby = _venue(latitude=51.003, longitude=0.0)
        self.assertNotAlmostEqual(
            geographic_similarity(origin, nearby),
            coarse_geographic_similarity(origin, nearby),
            places=3,
        )

    def test_location_similarity_cascade(self) -> None:
        same_postcode = location_similarity(
            _venue(postcode="SW1A1AA", address="1 Mall"),
            _venue(postcode="SW1A1AA", address="Somewhere else"),
        )
        self.assertEqual(same_postcode, 1.0)

        by_address = location_similarity(
            _venue(postcode="N1 1AA", address="12 High Street"),
            _venue(postcode="N1 1AB", address="12 High St"),
        )
        self.assertEqual(by_address, 1.0)

        by_coordinates = location_similarity(
            _venue(latitude=51.0, longitude=0.0),
            _venue(latitude=51.0, longitude=0.0, address="12 High St"),
        )
        self.assertEqual(by_coordinates, 1.0)

        self.assertEqual(location_similarity(_venue(), _venue()), 0.0)

    def test_shared_place_id_is_definitive(self) -> None:
        left = _venue(name="Crown", place_id="place-123")
        right = _venue(name="Completely Different", place_id="place-123")
        self.assertEqual(similarity_score(left, right), 1.0)
        self.assertLess(similarity_score(left, right, include_place_id_check=False), 1.0)

    def test_similarity_score_weights_name_and_location(self) -> None:
        left = _venue(name="Crown")
        right = _venue(name="The Crown")
        self.assertAlmostEqual(similarity_score(left, right), 0.7, places=9)


class DuplicateRuleTests(unittest.TestCase):
    def test_same_postcode_and_similar_name_is_duplicate(self) -> None:
        crown_pub = _venue(id=1, name="The Crown Pub", postcode="SW1A1AA", city_id=7)
        crown = _venue(id=2, name="Crown", postcode="SW1A1AA", city_id=7)

        criteria = match_criteria(crown_pub, crown)

        self.assertEqual(criteria, ["similar_name", "same_postcode", "same_city"])
        self.assertTrue(is_duplicate(crown_pub, crown))

    def test_stopword_only_names_at_same_postcode_are_duplicates(self) -> None:
        first = _venue(id=1, name="The Pub", postcode="SW1A1AA")
        second = _venue(id=2, name="The Pub", postcode="SW1A1AA")

        self.assertTrue(is_duplicate(first, second))
        self.assertEqual(match_criteria(first, second), ["similar_name", "same_postcode"])

    def test_venue_is_never_duplicate_of_itself(self) -> None:
        venue = _venue(id=3, name="Crown", postcode="SW1A1AA", place_id="p1")
        self.assertFalse(is_duplicate(venue, venue))
        self.assertFalse(is_duplicate(venue, _venue(id=3, name="Crown", postcode="SW1A1AA", place_id="p1")))

    def test_place_id_match_is_duplicate(self) -> None:
        left = _venue(id=1, name="Crown", place_id="place-9")
        right = _venue(id=2, name="Harbour View", place_id="place-9")
        self.assertTrue(is_duplicate(left, right))
        self.assertFalse(is_duplicate(left, right, DetectorOptions(include_place_id_check=False)))
        self.assertEqual(match_criteria(left, right), ["same_place_id"])

    def test_similar_name_needs_strong_location(self) -> None:
        fox = _venue(id=1, name="Fox", postcode="N1 9GU")
        hounds = _venue(id=2, name="Fox & Hounds", postcode="N1 9GU")
        self.assertTrue(is_duplicate(fox, hounds, DetectorOptions(name_threshold=0.63)))
        self.assertTrue(
            is_duplicate(
                _venue(id=1, name="Fox", latitude=51.0, longitude=0.0),
                _venue(id=2, name="Fox & Hounds", latitude=51.0, longitude=0.0),
                DetectorOptions(name_threshold=0.63),
            )
        )
        self.assertFalse(
            is_duplicate(
                _venue(id=1, name="Fox", postcode="N1 9GU"),
                _venue(id=2, name="Fox & Hounds", postcode="E2 7DG"),
                DetectorOptions(name_threshold=0.63),
            )
        )

    def test_unrelated_venues_are_not_duplicates(self) -> None:
        left = _venue(id=1, name="Red Lion", address="1 Main Street", latitude=51.0, longitude=0.0)
        right = _venue(id=2, name="Blue Anchor", address="99 Harbour Road", latitude=52.0, longitude=1.0)
        self.assertFalse(is_duplicate(left, right))
        self.assertEqual(match_criteria(left, right), [])

    def test_geographic_proximity_uses_coarse_curve(self) -> None:
        left = _venue(id=1, name="Alpha", latitude=51.0, longitude=0.0)
        right = _venue(id=2, name="Omega", latitude=51.0015, longitude=0.0)
        self.assertIn("geographic_proximity", match_criteria(left, right))


if __name__ == "__main__":
    unittest.main()
