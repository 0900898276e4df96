"""Scan all live venues for fuzzy duplicates and store candidate pairs.

Usage (from repository root):
    python backend/scripts/process_fuzzy_duplicates.py

Usage (from backend directory):
    python scripts/process_fuzzy_duplicates.py --clear --min-confidence 0.8
    # or
    python -m scripts.process_fuzzy_duplicates --sync
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Make `venue_dedupe` imports work whether the script is run from repo root or backend/.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from venue_dedupe.db.session import SessionLocal
from venue_dedupe.services.fuzzy_duplicates import (
    BatchProgress,
    ProcessingOptions,
    get_statistics,
    process_all_venues,
    sync_with_merge_logs,
)


def parse_args() -> argparse.Namespace:
    """Parse script CLI arguments."""

    parser = argparse.ArgumentParser(description="Detect fuzzy duplicate venues and store candidate pairs.")
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Delete all stored candidate pairs before scanning.",
    )
    parser.add_argument(
        "--min-confidence",
        type=float,
        default=None,
        help="Minimum confidence score for a pair to be stored (default: from settings).",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Venues processed per committed batch (default: from settings).",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress per-batch progress output.",
    )
    parser.add_argument(
        "--sync",
        action="store_true",
        help="Only reconcile pending pairs with the merge log; skip scanning.",
    )
    return parser.parse_args()


def print_progress(progress: BatchProgress) -> None:
    print(
        f"batch {progress.batch}/{progress.total_batches} "
        f"venues={progress.venues_processed}/{progress.total_venues} "
        f"found={progress.duplicates_found} stored={progress.duplicates_stored}"
    )


def print_statistics(stats: dict) -> None:
    print()
    print("Statistics:")
    print(f"  total={stats['total']}")
    print(
        f"  high={stats['high_confidence']} medium={stats['medium_confidence']} low={stats['low_confidence']}"
    )
    for status, count in stats["by_status"].items():
        print(f"  {status}={count}")
    if stats["average_confidence"] is not None:
        print(f"  average_confidence={stats['average_confidence']:.3f}")


def main() -> None:
    """Run the scan (or sync) and print a short summary."""

    args = parse_args()
    logging.basicConfig(level=logging.WARNING if args.quiet else logging.INFO)

    with SessionLocal() as db:
        if args.sync:
            result = sync_with_merge_logs(db)
            print("Sync complete")
            print(f"merged={result['merged']}")
            print(f"rejected={result['rejected']}")
            print_statistics(get_statistics(db))
            return

        options = ProcessingOptions.from_settings(
            batch_size=args.batch_size,
            min_confidence=args.min_confidence,
            clear_existing=True if args.clear else None,
            progress_callback=None if args.quiet else print_progress,
        )
        summary = process_all_venues(db, options)
        stats = get_statistics(db)

    print("Processing complete")
    print(f"processed={summary['processed']}")
    print(f"duplicates_found={summary['duplicates_found']}")
    print(f"duplicates_stored={summary['duplicates_stored']}")
    print_statistics(stats)


if __name__ == "__main__":
    main()
