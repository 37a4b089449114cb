#!/usr/bin/env python3
"""
Run the trash expiry sweep once, outside the Airflow schedule.

Usage:
    python -m vault.scripts.run_trash_sweep
    python -m vault.scripts.run_trash_sweep --as-of 2025-06-01T03:00:00+00:00 --batch-size 50
"""
import argparse
import sys
from datetime import datetime, timezone

from vault.core.config import settings
from vault.core.logging import configure_logging
from vault.db import SessionLocal
from vault.lifecycle import ExpirySweeper, LifecycleEngine
from vault.storage import create_blob_store


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Permanently delete expired trash entries")
    parser.add_argument(
        "--as-of",
        type=datetime.fromisoformat,
        default=None,
        help="Reference time (ISO 8601); defaults to now",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.SWEEP_BATCH_SIZE,
        help="Entries loaded per batch",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    as_of = args.as_of
    if as_of is not None and as_of.tzinfo is None:
        as_of = as_of.replace(tzinfo=timezone.utc)

    engine = LifecycleEngine(SessionLocal, create_blob_store())
    try:
        report = ExpirySweeper(engine, SessionLocal, batch_size=args.batch_size).run(
            now=as_of, trigger="manual"
        )
    finally:
        engine.close()

    print("=" * 60)
    print("TRASH SWEEP")
    print("=" * 60)
    print(f"Scanned: {report.scanned}")
    print(f"Purged:  {report.purged}")
    print(f"Skipped: {report.skipped}")
    print(f"Failed:  {report.failed}")
    print(f"Duration: {report.duration_seconds:.2f}s")
    for error in report.errors:
        print(f"  ! {error}")

    return 0 if report.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
