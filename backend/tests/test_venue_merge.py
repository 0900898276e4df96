"""Service-level tests for venue merging, preview, primary selection and audit log."""

from __future__ import annotations

import unittest
from datetime import datetime, time, timedelta, timezone
from unittest import mock

from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from venue_dedupe.models.base import Base
from venue_dedupe.models.event import Event
from venue_dedupe.models.venue import Venue
from venue_dedupe.models.venue_fuzzy_duplicate import VenueFuzzyDuplicate
from venue_dedupe.models.venue_merge_log import MERGE_ACTION, NOT_DUPLICATE_ACTION, VenueMergeLog
from venue_dedupe.schemas.merge import MergeHistoryFilters, MergeOptions, MergePreview
from venue_dedupe.services import venue_merge
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
    merge_recommendation,
    merge_venues,
    preview_merge,
    rollback_merge,
    slug_score,
)


class VenueMergeServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, autocommit=False, future=True)
        Base.metadata.create_all(cls.engine)

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()

    def setUp(self) -> None:
        self.db: Session = self.SessionLocal()
        self._reset_tables()

    def tearDown(self) -> None:
        self.db.close()

    def test_merge_migrates_events_and_soft_deletes_secondary(self) -> None:
        primary, secondary = self._seed_pair()

        result = merge_venues(self.db, primary.id, secondary.id)

        self.assertEqual(result.events_migrated, 1)
        self.assertEqual(result.conflicting_events_deleted, 1)
        self.assertEqual(result.errors, [])
        self.assertIn("name", result.fields_updated)

        slots = self._slots(primary.id)
        self.assertEqual(slots, [(1, time(19, 0)), (2, time(20, 0))])
        self.assertEqual(self._slots(secondary.id), [])

        self.db.expire_all()
        merged_away = self.db.get(Venue, secondary.id)
        self.assertIsNotNone(merged_away.deleted_at)
        self.assertEqual(merged_away.merged_into_id, primary.id)
        self.assertEqual(merged_away.deleted_by, "system")
        self.assertEqual(self.db.get(Venue, primary.id).name, "The Crown Pub & Kitchen")

        log = self.db.get(VenueMergeLog, result.log_id)
        self.assertEqual(log.action_type, MERGE_ACTION)
        self.assertEqual(log.metadata_json["events_migrated"], 1)
        self.assertEqual(log.metadata_json["conflicting_events_deleted"], 1)
        self.assertEqual(log.metadata_json["metadata_strategy"], "combine")
        self.assertEqual(
            log.metadata_json["changes_made"]["field_changes"]["name"],
            {"from": "The Crown", "to": "The Crown Pub & Kitchen"},
        )

    def test_event_counts_add_up_and_slots_stay_unique(self) -> None:
        primary = self._add_venue(name="Anchor")
        secondary = self._add_venue(name="Anchor")
        for day, hour in [(1, 19), (3, 20), (5, 18)]:
            self._add_event(primary, day, hour)
        for day, hour in [(1, 19), (3, 20), (4, 19), (6, 12), (7, 15)]:
            self._add_event(secondary, day, hour)
        self.db.commit()

        result = merge_venues(self.db, primary.id, secondary.id)

        self.assertEqual(result.events_migrated + result.conflicting_events_deleted, 5)
        slots = self._slots(primary.id)
        self.assertEqual(len(slots), len(set(slots)))
        self.assertEqual(len(slots), 6)

    def test_prefer_primary_keeps_values_except_overrides(self) -> None:
        primary = self._add_venue(name="Crown", phone=None, website="crown.example")
        secondary = self._add_venue(name="The Crown Tavern", phone="020 7946 0000", website="tavern.example")
        self.db.commit()

        result = merge_venues(
            self.db,
            primary.id,
            secondary.id,
            MergeOptions(metadata_strategy="prefer_primary", field_overrides=["phone"]),
        )

        self.assertEqual(result.fields_updated, ["phone"])
        self.db.expire_all()
        kept = self.db.get(Venue, primary.id)
        self.assertEqual(kept.name, "Crown")
        self.assertEqual(kept.phone, "020 7946 0000")
        self.assertEqual(kept.website, "crown.example")

    def test_prefer_secondary_copies_present_values(self) -> None:
        primary = self._add_venue(name="Crown", website="crown.example", instagram="@crown")
        secondary = self._add_venue(name="Crown Tavern", website="tavern.example", instagram=None)
        self.db.commit()

        merge_venues(self.db, primary.id, secondary.id, MergeOptions(metadata_strategy="prefer_secondary"))

        self.db.expire_all()
        kept = self.db.get(Venue, primary.id)
        self.assertEqual(kept.name, "Crown Tavern")
        self.assertEqual(kept.website, "tavern.example")
        self.assertEqual(kept.instagram, "@crown")

    def test_combine_prefers_longer_values_unless_overridden(self) -> None:
        primary = self._add_venue(name="The Crown Tavern", address="1 High St")
        secondary = self._add_venue(name="Crown", address="1 High Street, Westminster")
        self.db.commit()

        result = merge_venues(
            self.db,
            primary.id,
            secondary.id,
            MergeOptions(field_overrides=["name"], performed_by="reviewer@example.com", notes="dupe"),
        )

        self.db.expire_all()
        kept = self.db.get(Venue, primary.id)
        self.assertEqual(kept.name, "Crown")
        self.assertEqual(kept.address, "1 High Street, Westminster")
        log = self.db.get(VenueMergeLog, result.log_id)
        self.assertEqual(log.performed_by, "reviewer@example.com")
        self.assertEqual(log.notes, "dupe")
        self.assertEqual(log.metadata_json["field_overrides"], ["name"])
        self.assertEqual(self.db.get(Venue, secondary.id).deleted_by, "reviewer@example.com")

    def test_combine_unions_images_and_picks_better_slug(self) -> None:
        primary = self._add_venue(
            name="Crown",
            slug="the-crown-2",
            google_place_images=[{"url": "https://img.example/a.jpg"}],
        )
        secondary = self._add_venue(
            name="Crown",
            slug="the-crown",
            google_place_images=[{"url": "https://img.example/a.jpg"}, {"url": "https://img.example/b.jpg"}],
        )
        self.db.commit()

        result = merge_venues(self.db, primary.id, secondary.id)

        self.assertEqual(set(result.fields_updated), {"slug", "google_place_images"})
        self.db.expire_all()
        kept = self.db.get(Venue, primary.id)
        self.assertEqual(kept.slug, "the-crown")
        self.assertEqual(
            [image["url"] for image in kept.google_place_images],
            ["https://img.example/a.jpg", "https://img.example/b.jpg"],
        )
        log = self.db.get(VenueMergeLog, result.log_id)
        self.assertEqual(
            log.metadata_json["changes_made"]["field_changes"]["google_place_images"],
            {"from": 1, "to": 2},
        )

    def test_slug_score_prefers_short_clean_slugs(self) -> None:
        self.assertGreater(slug_score("the-crown"), slug_score("the-crown-2"))
        self.assertGreater(slug_score("crown"), slug_score("the-crown-london"))
        self.assertGreater(slug_score("a-b-c-d-e-f-g"), slug_score("a-b-c-d-e-f-g-h"))
        self.assertGreater(slug_score("x"), slug_score(None))

    def test_merge_validation_errors(self) -> None:
        live = self._add_venue(name="Crown")
        deleted = self._add_venue(name="Crown", deleted_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
        self.db.commit()

        with self.assertRaises(SelfMergeError) as self_merge:
            merge_venues(self.db, live.id, live.id)
        self.assertEqual(self_merge.exception.step, "load_venues")

        with self.assertRaises(VenueNotFoundError):
            merge_venues(self.db, live.id, 999_999)

        with self.assertRaises(VenueAlreadyDeletedError):
            merge_venues(self.db, live.id, deleted.id)

        self.assertEqual(self._log_count(), 0)

    def test_failing_step_rolls_back_everything(self) -> None:
        primary, secondary = self._seed_pair()

        with mock.patch.object(
            venue_merge,
            "_soft_delete_secondary",
            side_effect=RuntimeError("disk full"),
        ):
            with self.assertRaises(MergeStepError) as failure:
                merge_venues(self.db, primary.id, secondary.id)

        self.assertEqual(failure.exception.step, "soft_delete_secondary")
        self.assertIn("disk full", failure.exception.reason)
        self.assertIsInstance(failure.exception, VenueMergeError)

        self.db.expire_all()
        self.assertEqual(len(self._slots(secondary.id)), 2)
        self.assertEqual(len(self._slots(primary.id)), 1)
        self.assertEqual(self.db.get(Venue, primary.id).name, "The Crown")
        self.assertIsNone(self.db.get(Venue, secondary.id).deleted_at)
        self.assertEqual(self._log_count(), 0)

    def test_preview_reports_without_writing(self) -> None:
        primary, secondary = self._seed_pair()

        preview = preview_merge(self.db, primary.id, secondary.id)

        self.assertEqual(preview.primary_events_count, 1)
        self.assertEqual(preview.secondary_events_count, 2)
        self.assertEqual([conflict.field for conflict in preview.metadata_conflicts], ["name"])
        self.assertEqual(preview.estimated_changes.events_to_migrate, 1)
        self.assertEqual(preview.estimated_changes.event_conflicts, 1)
        self.assertTrue(preview.estimated_changes.metadata_will_change)
        self.assertEqual(preview.estimated_changes.fields_to_update, ["name"])
        self.assertEqual(preview.recommendation, "review_conflicts")

        self.assertFalse(self.db.dirty)
        self.assertFalse(self.db.new)
        self.db.expire_all()
        self.assertEqual(self.db.get(Venue, primary.id).name, "The Crown")
        self.assertIsNone(self.db.get(Venue, secondary.id).deleted_at)
        self.assertEqual(len(self._slots(secondary.id)), 2)
        self.assertEqual(self._log_count(), 0)

    def test_dry_run_returns_preview(self) -> None:
        primary = self._add_venue(name="Crown", postcode="SW1A1AA")
        secondary = self._add_venue(name="Crown", postcode="SW1A1AA")
        self._add_event(secondary, 2, 20)
        self.db.commit()

        outcome = merge_venues(self.db, primary.id, secondary.id, MergeOptions(dry_run=True))

        self.assertIsInstance(outcome, MergePreview)
        self.assertEqual(outcome.recommendation, "safe")
        self.assertEqual(outcome.metadata_conflicts, [])
        self.assertEqual(self._log_count(), 0)
        self.assertEqual(len(self._slots(secondary.id)), 1)

    def test_recommendation_thresholds(self) -> None:
        self.assertEqual(merge_recommendation(0, 10), "safe")
        self.assertEqual(merge_recommendation(0, 11), "review_conflicts")
        self.assertEqual(merge_recommendation(3, 50), "review_conflicts")
        self.assertEqual(merge_recommendation(4, 0), "manual_review")
        self.assertEqual(merge_recommendation(0, 51), "manual_review")

    def test_determine_primary_prefers_richer_venue(self) -> None:
        sparse = self._add_venue(name="Crown")
        rich = self._add_venue(name="Crown", place_id="place-42")
        for day in range(1, 6):
            self._add_event(rich, day, 19)
        self.db.commit()

        self.assertEqual(determine_primary_venue(self.db, sparse.id, rich.id), (rich.id, sparse.id))
        self.assertEqual(determine_primary_venue(self.db, rich.id, sparse.id), (rich.id, sparse.id))

    def test_determine_primary_ties_keep_first_argument(self) -> None:
        first = self._add_venue(name="Crown")
        second = self._add_venue(name="Crown")
        self.db.commit()

        with mock.patch.object(venue_merge, "calculate_venue_score", return_value=10.0):
            self.assertEqual(determine_primary_venue(self.db, first.id, second.id), (first.id, second.id))
            self.assertEqual(determine_primary_venue(self.db, second.id, first.id), (second.id, first.id))

        with self.assertRaises(VenueNotFoundError):
            determine_primary_venue(self.db, first.id, 999_999)

    def test_determine_primary_rejects_unmergeable_pairs(self) -> None:
        live = self._add_venue(name="Crown")
        deleted = self._add_venue(
            name="Crown", place_id="place-7", deleted_at=datetime(2026, 1, 1, tzinfo=timezone.utc)
        )
        self.db.commit()

        with self.assertRaises(VenueAlreadyDeletedError) as ctx:
            determine_primary_venue(self.db, deleted.id, live.id)
        self.assertEqual(ctx.exception.step, "load_venues")
        with self.assertRaises(VenueAlreadyDeletedError):
            determine_primary_venue(self.db, live.id, deleted.id)
        with self.assertRaises(SelfMergeError):
            determine_primary_venue(self.db, live.id, live.id)

    def test_venue_score_components(self) -> None:
        venue = self._add_venue(name="Crown", address="1 High St", postcode="SW1A1AA", slug="crown-london")
        self.db.commit()
        created_at = venue.created_at.replace(tzinfo=timezone.utc)

        self.assertAlmostEqual(
            calculate_venue_score(self.db, venue, now=created_at + timedelta(days=15)),
            3 + 2.5 + 2,
        )
        self.assertAlmostEqual(
            calculate_venue_score(self.db, venue, now=created_at + timedelta(days=45)),
            3 + 2,
        )

        venue.slug = "crown-london-3"
        venue.place_id = "place-1"
        for day in range(1, 8):
            self._add_event(venue, day, 19)
            self._add_event(venue, day, 21)
        self.db.commit()

        self.assertAlmostEqual(
            calculate_venue_score(self.db, venue, now=created_at + timedelta(days=45)),
            4 + 10 + 5,
        )

    def test_rollback_is_never_supported(self) -> None:
        primary, secondary = self._seed_pair()
        result = merge_venues(self.db, primary.id, secondary.id)

        with self.assertRaises(RollbackNotSupportedError) as unsupported:
            rollback_merge(self.db, result.log_id)
        self.assertEqual(unsupported.exception.reason, "rollback not supported")

        with self.assertRaises(MergeLogNotFoundError):
            rollback_merge(self.db, 999_999)

    def test_not_duplicate_log_is_idempotent(self) -> None:
        first = self._add_venue(name="Crown")
        second = self._add_venue(name="Crown & Anchor")
        self.db.commit()

        entry = create_not_duplicate_log(self.db, first.id, second.id, performed_by="alice", notes="different")
        repeat = create_not_duplicate_log(self.db, first.id, second.id, performed_by="bob")

        self.assertEqual(entry.id, repeat.id)
        self.assertEqual(repeat.performed_by, "alice")
        history = list_merge_history(
            self.db,
            MergeHistoryFilters(venue_id=first.id, action_type=NOT_DUPLICATE_ACTION),
        )
        self.assertEqual([item.id for item in history], [entry.id])

        with self.assertRaises(SelfMergeError):
            create_not_duplicate_log(self.db, first.id, first.id)
        with self.assertRaises(VenueNotFoundError):
            create_not_duplicate_log(self.db, first.id, 999_999)

    def test_not_duplicate_log_recovers_from_insert_race(self) -> None:
        first = self._add_venue(name="Crown")
        second = self._add_venue(name="Crown & Anchor")
        self.db.commit()
        existing = create_not_duplicate_log(self.db, first.id, second.id)
        existing_id = existing.id

        real_lookup = venue_merge._find_not_duplicate_log
        calls: list[int] = []

        def lookup_missing_once(db, venue1_id, venue2_id):
            calls.append(venue1_id)
            if len(calls) == 1:
                return None
            return real_lookup(db, venue1_id, venue2_id)

        with mock.patch.object(venue_merge, "_find_not_duplicate_log", side_effect=lookup_missing_once):
            recovered = create_not_duplicate_log(self.db, first.id, second.id)

        self.assertEqual(recovered.id, existing_id)
        self.assertEqual(len(calls), 2)
        self.assertEqual(self._log_count(), 1)

    def test_merge_history_filters_and_ordering(self) -> None:
        jan = self._add_log(MERGE_ACTION, 1, 2, datetime(2026, 1, 1, tzinfo=timezone.utc))
        feb = self._add_log(NOT_DUPLICATE_ACTION, 3, 4, datetime(2026, 2, 1, tzinfo=timezone.utc))
        mar = self._add_log(MERGE_ACTION, 2, 5, datetime(2026, 3, 1, tzinfo=timezone.utc))
        self.db.commit()

        def ids(filters=None, limit=100):
            return [entry.id for entry in list_merge_history(self.db, filters, limit=limit)]

        self.assertEqual(ids(), [mar.id, feb.id, jan.id])
        self.assertEqual(ids(MergeHistoryFilters(venue_id=2)), [mar.id, jan.id])
        self.assertEqual(ids(MergeHistoryFilters(action_type="not_duplicate")), [feb.id])
        self.assertEqual(
            ids(MergeHistoryFilters(inserted_from=datetime(2026, 2, 1, tzinfo=timezone.utc))),
            [mar.id, feb.id],
        )
        self.assertEqual(
            ids(MergeHistoryFilters(inserted_to=datetime(2026, 2, 1, tzinfo=timezone.utc))),
            [feb.id, jan.id],
        )
        self.assertEqual(ids(limit=1), [mar.id])

    def _seed_pair(self) -> tuple[Venue, Venue]:
        primary = self._add_venue(name="The Crown", postcode="SW1A1AA", slug="the-crown")
        secondary = self._add_venue(name="The Crown Pub & Kitchen", postcode="SW1A1AA", slug="the-crown-pub-kitchen")
        self._add_event(primary, 1, 19)
        self._add_event(secondary, 1, 19)
        self._add_event(secondary, 2, 20)
        self.db.commit()
        return primary, secondary

    def _add_venue(self, **fields) -> Venue:
        venue = Venue(**fields)
        self.db.add(venue)
        self.db.flush()
        return venue

    def _add_event(self, venue: Venue, day_of_week: int, hour: int) -> Event:
        event = Event(venue_id=venue.id, name="Quiz night", day_of_week=day_of_week, start_time=time(hour, 0))
        self.db.add(event)
        self.db.flush()
        return event

    def _add_log(self, action_type: str, primary_id: int, secondary_id: int, inserted_at: datetime) -> VenueMergeLog:
        entry = VenueMergeLog(
            action_type=action_type,
            primary_venue_id=primary_id,
            secondary_venue_id=secondary_id,
            performed_by="system",
            metadata_json={},
            inserted_at=inserted_at,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def _slots(self, venue_id: int) -> list[tuple[int, time]]:
        rows = self.db.execute(
            select(Event.day_of_week, Event.start_time)
            .where(Event.venue_id == venue_id)
            .order_by(Event.day_of_week, Event.start_time)
        ).all()
        return [(day_of_week, start_time) for day_of_week, start_time in rows]

    def _log_count(self) -> int:
        return self.db.scalar(select(func.count(VenueMergeLog.id)))

    def _reset_tables(self) -> None:
        self.db.execute(delete(VenueFuzzyDuplicate))
        self.db.execute(delete(VenueMergeLog))
        self.db.execute(delete(Event))
        self.db.execute(delete(Venue))
        self.db.commit()


if __name__ == "__main__":
    unittest.main()
