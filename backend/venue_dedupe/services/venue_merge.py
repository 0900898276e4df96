"""Venue merge orchestration: merge, preview, primary selection and audit log."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import perf_counter
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from venue_dedupe.config import get_settings
from venue_dedupe.models.event import Event
from venue_dedupe.models.venue import Venue
from venue_dedupe.models.venue_merge_log import MERGE_ACTION, NOT_DUPLICATE_ACTION, VenueMergeLog
from venue_dedupe.schemas.merge import (
    EstimatedChanges,
    MergeHistoryFilters,
    MergeOptions,
    MergePreview,
    MergeResult,
    MetadataConflict,
)
from venue_dedupe.schemas.venue import VenueRead

logger = logging.getLogger(__name__)

MERGEABLE_FIELDS = (
    "name",
    "address",
    "postcode",
    "phone",
    "website",
    "facebook",
    "instagram",
    "slug",
    "google_place_images",
)
CONFLICT_FIELDS = ("name", "address", "postcode", "phone", "website", "facebook", "instagram")
COMPLETENESS_FIELDS = ("name", "address", "postcode", "phone", "website", "place_id")

_NUMERIC_SUFFIX_RE = re.compile(r"-\d+$")
_MAX_SLUG_HYPHENS = 6
_SLUG_NUMERIC_SUFFIX_PENALTY = 10
_SLUG_HYPHEN_PENALTY = 5
_RECENCY_WINDOW_DAYS = 30
_RECENCY_MAX_POINTS = 5.0
_PLACE_ID_BONUS = 5
_SLUG_QUALITY_BONUS = 2
_MAX_EVENT_POINTS = 10


class VenueMergeError(Exception):
    """Base error for merge operations; carries the failing step."""

    def __init__(self, step: str, reason: str) -> None:
        super().__init__(f"{step}: {reason}")
        self.step = step
        self.reason = reason


class VenueNotFoundError(VenueMergeError):
    pass


class VenueAlreadyDeletedError(VenueMergeError):
    pass


class SelfMergeError(VenueMergeError):
    pass


class MergeLogNotFoundError(VenueMergeError):
    pass


class RollbackNotSupportedError(VenueMergeError):
    pass


class MergeStepError(VenueMergeError):
    """Unexpected failure inside a merge step; the transaction was rolled back."""


@dataclass(slots=True)
class _MergeContext:
    primary_id: int
    secondary_id: int
    primary: Venue | None = None
    secondary: Venue | None = None
    events_migrated: int = 0
    conflicting_events_deleted: int = 0
    field_changes: dict[str, dict[str, Any]] = field(default_factory=dict)
    log_id: int | None = None


MergeStep = Callable[[Session, _MergeContext, MergeOptions], None]


def merge_venues(
    db: Session,
    primary_id: int,
    secondary_id: int,
    options: MergeOptions | None = None,
) -> MergeResult | MergePreview:
    """Merge ``secondary_id`` into ``primary_id`` in a single transaction.

    With ``dry_run`` set, returns the preview instead and writes nothing.
    Any failure rolls back every step and raises a ``VenueMergeError``
    naming the step that failed.
    """

    opts = options or MergeOptions()
    if opts.dry_run:
        return preview_merge(db, primary_id, secondary_id, opts)

    started = perf_counter()
    context = _MergeContext(primary_id=primary_id, secondary_id=secondary_id)
    step_name = "begin"
    try:
        for step_name, step in _merge_steps():
            step(db, context, opts)
        db.commit()
    except VenueMergeError as exc:
        db.rollback()
        logger.warning(
            "venue_merge.refused primary_id=%s secondary_id=%s step=%s reason=%s",
            primary_id,
            secondary_id,
            exc.step,
            exc.reason,
        )
        raise
    except Exception as exc:
        db.rollback()
        logger.exception(
            "venue_merge.failed primary_id=%s secondary_id=%s step=%s elapsed_ms=%.2f",
            primary_id,
            secondary_id,
            step_name,
            (perf_counter() - started) * 1000.0,
        )
        raise MergeStepError(step_name, str(exc)) from exc

    logger.info(
        (
            "venue_merge.completed primary_id=%s secondary_id=%s log_id=%s "
            "events_migrated=%d conflicting_events_deleted=%d fields_updated=%s total_ms=%.2f"
        ),
        primary_id,
        secondary_id,
        context.log_id,
        context.events_migrated,
        context.conflicting_events_deleted,
        ",".join(context.field_changes) or "-",
        (perf_counter() - started) * 1000.0,
    )
    return MergeResult(
        primary_venue_id=primary_id,
        secondary_venue_id=secondary_id,
        log_id=context.log_id,
        events_migrated=context.events_migrated,
        conflicting_events_deleted=context.conflicting_events_deleted,
        fields_updated=list(context.field_changes),
    )


def preview_merge(
    db: Session,
    primary_id: int,
    secondary_id: int,
    options: MergeOptions | None = None,
) -> MergePreview:
    """Describe what a merge would do without writing anything."""

    opts = options or MergeOptions()
    primary, secondary = _fetch_mergeable_pair(db, primary_id, secondary_id)

    primary_events_count = _event_count(db, primary.id)
    secondary_events = _venue_events(db, secondary.id)
    primary_slots = _event_slots(db, primary.id)
    event_conflicts = sum(
        1 for event in secondary_events if (event.day_of_week, event.start_time) in primary_slots
    )
    conflicts = analyze_metadata_conflicts(primary, secondary)
    updates = compute_metadata_updates(primary, secondary, opts)

    return MergePreview(
        primary_venue=VenueRead.model_validate(primary),
        secondary_venue=VenueRead.model_validate(secondary),
        primary_events_count=primary_events_count,
        secondary_events_count=len(secondary_events),
        metadata_conflicts=conflicts,
        estimated_changes=EstimatedChanges(
            events_to_migrate=len(secondary_events) - event_conflicts,
            event_conflicts=event_conflicts,
            metadata_conflicts=len(conflicts),
            metadata_will_change=bool(updates),
            fields_to_update=list(updates),
        ),
        recommendation=merge_recommendation(len(conflicts), len(secondary_events)),
    )


def rollback_merge(db: Session, log_id: int, options: MergeOptions | None = None) -> None:
    """Undoing a merge is not supported; always raises."""

    entry = db.get(VenueMergeLog, log_id)
    if entry is None:
        raise MergeLogNotFoundError("rollback_merge", f"merge log {log_id} not found")
    performed_by = (options or MergeOptions()).performed_by
    logger.warning(
        "venue_merge.rollback_refused log_id=%s action_type=%s performed_by=%s",
        log_id,
        entry.action_type,
        performed_by,
    )
    raise RollbackNotSupportedError("rollback_merge", "rollback not supported")


def determine_primary_venue(db: Session, venue1_id: int, venue2_id: int) -> tuple[int, int]:
    """Return ``(primary_id, secondary_id)``; ties keep the first argument primary."""

    venue1, venue2 = _fetch_mergeable_pair(db, venue1_id, venue2_id)
    if calculate_venue_score(db, venue1) >= calculate_venue_score(db, venue2):
        return venue1.id, venue2.id
    return venue2.id, venue1.id


def calculate_venue_score(db: Session, venue: Venue, *, now: datetime | None = None) -> float:
    """Score a venue for primary selection.

    Sums data completeness (one point per filled field), events (capped at
    10), recency (5 points fading to 0 over 30 days), a place id bonus and
    a slug quality bonus.
    """

    completeness = sum(1 for name in COMPLETENESS_FIELDS if _has_value(getattr(venue, name)))
    event_points = min(_event_count(db, venue.id), _MAX_EVENT_POINTS)

    recency = 0.0
    created_at = _as_utc(venue.created_at)
    if created_at is not None:
        days_old = ((now or datetime.now(timezone.utc)) - created_at).days
        recency = max(0, _RECENCY_WINDOW_DAYS - days_old) / _RECENCY_WINDOW_DAYS * _RECENCY_MAX_POINTS

    place_id_points = _PLACE_ID_BONUS if venue.place_id else 0
    slug_points = _SLUG_QUALITY_BONUS if _is_clean_slug(venue.slug) else 0
    return completeness + event_points + recency + place_id_points + slug_points


def create_not_duplicate_log(
    db: Session,
    venue1_id: int,
    venue2_id: int,
    performed_by: str | None = None,
    notes: str | None = None,
) -> VenueMergeLog:
    """Record that two venues are distinct; repeated calls return the same entry."""

    step = "create_not_duplicate_log"
    if venue1_id == venue2_id:
        raise SelfMergeError(step, "a venue cannot be marked as not a duplicate of itself")
    _get_venue(db, venue1_id, step)
    _get_venue(db, venue2_id, step)

    existing = _find_not_duplicate_log(db, venue1_id, venue2_id)
    if existing is not None:
        return existing

    entry = VenueMergeLog(
        action_type=NOT_DUPLICATE_ACTION,
        primary_venue_id=venue1_id,
        secondary_venue_id=venue2_id,
        performed_by=performed_by or get_settings().merge_performed_by_default,
        notes=notes,
        metadata_json={},
    )
    db.add(entry)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = _find_not_duplicate_log(db, venue1_id, venue2_id)
        if existing is None:
            raise
        logger.info(
            "venue_merge.not_duplicate_race venue1_id=%s venue2_id=%s log_id=%s",
            venue1_id,
            venue2_id,
            existing.id,
        )
        return existing
    db.refresh(entry)
    logger.info(
        "venue_merge.not_duplicate venue1_id=%s venue2_id=%s log_id=%s",
        venue1_id,
        venue2_id,
        entry.id,
    )
    return entry


def list_merge_history(
    db: Session,
    filters: MergeHistoryFilters | None = None,
    limit: int = 100,
) -> list[VenueMergeLog]:
    """Audit entries, newest first."""

    stmt = select(VenueMergeLog)
    if filters is not None:
        if filters.venue_id is not None:
            stmt = stmt.where(
                or_(
                    VenueMergeLog.primary_venue_id == filters.venue_id,
                    VenueMergeLog.secondary_venue_id == filters.venue_id,
                )
            )
        if filters.action_type is not None:
            stmt = stmt.where(VenueMergeLog.action_type == filters.action_type)
        if filters.inserted_from is not None:
            stmt = stmt.where(VenueMergeLog.inserted_at >= filters.inserted_from)
        if filters.inserted_to is not None:
            stmt = stmt.where(VenueMergeLog.inserted_at <= filters.inserted_to)
    stmt = stmt.order_by(VenueMergeLog.inserted_at.desc(), VenueMergeLog.id.desc()).limit(limit)
    return list(db.scalars(stmt).all())


def analyze_metadata_conflicts(primary: Venue, secondary: Venue) -> list[MetadataConflict]:
    """Fields where both venues have a value and the values differ."""

    conflicts: list[MetadataConflict] = []
    for name in CONFLICT_FIELDS:
        primary_value = getattr(primary, name)
        secondary_value = getattr(secondary, name)
        if primary_value is not None and secondary_value is not None and primary_value != secondary_value:
            conflicts.append(
                MetadataConflict(field=name, primary_value=primary_value, secondary_value=secondary_value)
            )
    return conflicts


def compute_metadata_updates(primary: Venue, secondary: Venue, options: MergeOptions) -> dict[str, Any]:
    """New values for primary's fields; unchanged fields are omitted."""

    overrides = set(options.field_overrides or ())
    updates: dict[str, Any] = {}
    for name in MERGEABLE_FIELDS:
        current = getattr(primary, name)
        incoming = getattr(secondary, name)
        if name in overrides and _has_value(incoming):
            candidate = incoming
        elif options.metadata_strategy == "prefer_primary":
            candidate = current
        elif options.metadata_strategy == "prefer_secondary":
            candidate = incoming if _has_value(incoming) else current
        else:
            candidate = _combine_field(name, current, incoming)
        if candidate != current:
            updates[name] = candidate
    return updates


def merge_recommendation(conflict_count: int, secondary_event_count: int) -> str:
    if conflict_count == 0 and secondary_event_count <= 10:
        return "safe"
    if conflict_count <= 3 and secondary_event_count <= 50:
        return "review_conflicts"
    return "manual_review"


def slug_score(slug: str | None) -> int:
    """Higher is better: short slugs win, numeric suffixes and long hyphen chains lose."""

    if not slug:
        return -(10**6)
    score = -len(slug)
    if _NUMERIC_SUFFIX_RE.search(slug):
        score -= _SLUG_NUMERIC_SUFFIX_PENALTY
    if slug.count("-") > _MAX_SLUG_HYPHENS:
        score -= _SLUG_HYPHEN_PENALTY
    return score


def _merge_steps() -> list[tuple[str, MergeStep]]:
    return [
        ("load_venues", _load_venues),
        ("migrate_events", _migrate_events),
        ("merge_metadata", _merge_metadata),
        ("soft_delete_secondary", _soft_delete_secondary),
        ("create_log", _create_merge_log),
    ]


def _load_venues(db: Session, context: _MergeContext, options: MergeOptions) -> None:
    context.primary, context.secondary = _fetch_mergeable_pair(
        db, context.primary_id, context.secondary_id
    )


def _migrate_events(db: Session, context: _MergeContext, options: MergeOptions) -> None:
    primary_slots = _event_slots(db, context.primary_id)
    conflicting_ids: list[int] = []
    migrating_ids: list[int] = []
    for event in _venue_events(db, context.secondary_id):
        if (event.day_of_week, event.start_time) in primary_slots:
            conflicting_ids.append(event.id)
        else:
            migrating_ids.append(event.id)

    if conflicting_ids:
        db.execute(delete(Event).where(Event.id.in_(conflicting_ids)))
    if migrating_ids:
        db.execute(
            update(Event).where(Event.id.in_(migrating_ids)).values(venue_id=context.primary_id)
        )
    context.events_migrated = len(migrating_ids)
    context.conflicting_events_deleted = len(conflicting_ids)


def _merge_metadata(db: Session, context: _MergeContext, options: MergeOptions) -> None:
    primary = context.primary
    updates = compute_metadata_updates(primary, context.secondary, options)
    for name, value in updates.items():
        context.field_changes[name] = _describe_change(name, getattr(primary, name), value)
        setattr(primary, name, value)
    db.flush()


def _soft_delete_secondary(db: Session, context: _MergeContext, options: MergeOptions) -> None:
    secondary = context.secondary
    secondary.deleted_at = datetime.now(timezone.utc)
    secondary.deleted_by = options.performed_by
    secondary.merged_into_id = context.primary_id
    db.flush()


def _create_merge_log(db: Session, context: _MergeContext, options: MergeOptions) -> None:
    entry = VenueMergeLog(
        action_type=MERGE_ACTION,
        primary_venue_id=context.primary_id,
        secondary_venue_id=context.secondary_id,
        performed_by=options.performed_by,
        notes=options.notes,
        metadata_json={
            "events_migrated": context.events_migrated,
            "conflicting_events_deleted": context.conflicting_events_deleted,
            "metadata_strategy": options.metadata_strategy,
            "event_strategy": options.event_strategy,
            "field_overrides": list(options.field_overrides or []),
            "changes_made": {
                "fields_updated": list(context.field_changes),
                "field_changes": context.field_changes,
                "metadata_updated": bool(context.field_changes),
            },
        },
    )
    db.add(entry)
    db.flush()
    context.log_id = entry.id


def _fetch_mergeable_pair(db: Session, primary_id: int, secondary_id: int) -> tuple[Venue, Venue]:
    step = "load_venues"
    if primary_id == secondary_id:
        raise SelfMergeError(step, "cannot merge a venue into itself")
    primary = _get_venue(db, primary_id, step)
    secondary = _get_venue(db, secondary_id, step)
    for venue in (primary, secondary):
        if venue.deleted_at is not None:
            raise VenueAlreadyDeletedError(step, f"venue {venue.id} is already deleted")
    return primary, secondary


def _get_venue(db: Session, venue_id: int, step: str) -> Venue:
    venue = db.get(Venue, venue_id)
    if venue is None:
        raise VenueNotFoundError(step, f"venue {venue_id} not found")
    return venue


def _find_not_duplicate_log(db: Session, venue1_id: int, venue2_id: int) -> VenueMergeLog | None:
    return db.scalar(
        select(VenueMergeLog).where(
            VenueMergeLog.action_type == NOT_DUPLICATE_ACTION,
            VenueMergeLog.primary_venue_id == venue1_id,
            VenueMergeLog.secondary_venue_id == venue2_id,
        )
    )


def _venue_events(db: Session, venue_id: int) -> list[Event]:
    return list(db.scalars(select(Event).where(Event.venue_id == venue_id).order_by(Event.id.asc())).all())


def _event_slots(db: Session, venue_id: int) -> set[tuple[int, Any]]:
    rows = db.execute(
        select(Event.day_of_week, Event.start_time).where(Event.venue_id == venue_id)
    ).all()
    return {(day_of_week, start_time) for day_of_week, start_time in rows}


def _event_count(db: Session, venue_id: int) -> int:
    return int(db.scalar(select(func.count(Event.id)).where(Event.venue_id == venue_id)) or 0)


def _combine_field(name: str, current: Any, incoming: Any) -> Any:
    if name == "google_place_images":
        return _merge_images(current, incoming)
    if name == "slug":
        if not incoming:
            return current
        return incoming if slug_score(incoming) > slug_score(current) else current
    if not _has_value(incoming):
        return current
    if not _has_value(current):
        return incoming
    return incoming if len(str(incoming)) > len(str(current)) else current


def _merge_images(current: list[Any] | None, incoming: list[Any] | None) -> list[Any]:
    merged = list(current or [])
    seen = {_image_key(image) for image in merged}
    for image in incoming or []:
        key = _image_key(image)
        if key not in seen:
            merged.append(image)
            seen.add(key)
    return merged


def _image_key(image: Any) -> str:
    if isinstance(image, dict):
        return str(image.get("url") or sorted(image.items()))
    return str(image)


def _describe_change(name: str, old: Any, new: Any) -> dict[str, Any]:
    if name == "google_place_images":
        return {"from": len(old or []), "to": len(new or [])}
    return {"from": old, "to": new}


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list, dict)):
        return len(value) > 0
    return True


def _is_clean_slug(slug: str | None) -> bool:
    return bool(slug) and not _NUMERIC_SUFFIX_RE.search(slug) and slug.count("-") <= _MAX_SLUG_HYPHENS


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
