"""Background jobs for scheduled duplicate processing."""

from __future__ import annotations

import logging
from time import perf_counter

from venue_dedupe.db.session import SessionLocal
from venue_dedupe.services.fuzzy_duplicates import (
    ProcessingOptions,
    process_all_venues,
    sync_with_merge_logs,
)

logger = logging.getLogger(__name__)


def run_fuzzy_duplicate_processing_job(options: ProcessingOptions | None = None) -> dict[str, int]:
    """Run a full duplicate scan in its own DB session."""

    total_started = perf_counter()
    opts = options or ProcessingOptions.from_settings()
    db = SessionLocal()
    try:
        summary = process_all_venues(db, opts)
        logger.info(
            (
                "dedupe.processing_job_timing processed=%d duplicates_found=%d "
                "duplicates_stored=%d total_ms=%.2f"
            ),
            summary["processed"],
            summary["duplicates_found"],
            summary["duplicates_stored"],
            (perf_counter() - total_started) * 1000.0,
        )
        return summary
    except Exception:
        db.rollback()
        logger.exception(
            "dedupe.processing_job_failed elapsed_ms=%.2f",
            (perf_counter() - total_started) * 1000.0,
        )
        raise
    finally:
        db.close()


def run_merge_log_sync_job() -> dict[str, int]:
    """Reconcile candidate statuses with the merge audit log."""

    total_started = perf_counter()
    db = SessionLocal()
    try:
        result = sync_with_merge_logs(db)
        logger.info(
            "dedupe.sync_job_timing merged=%d rejected=%d total_ms=%.2f",
            result["merged"],
            result["rejected"],
            (perf_counter() - total_started) * 1000.0,
        )
        return result
    except Exception:
        db.rollback()
        logger.exception(
            "dedupe.sync_job_failed elapsed_ms=%.2f",
            (perf_counter() - total_started) * 1000.0,
        )
        raise
    finally:
        db.close()
