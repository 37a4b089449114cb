"""
Trash Expiry Sweeper

Finds trash entries past their retention deadline and purges them.
Implements:
- Batched, keyset-paginated scan of expired entries
- Per-item failure isolation (a failed purge is retried on the next run)
- Aggregate run reporting for the scheduler and operators
- Refusal of overlapping runs within one process
"""
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from vault.core.config import settings
from vault.core.logging import get_logger
from vault.lifecycle.engine import Clock, LifecycleEngine, SessionFactory
from vault.lifecycle.results import Conflict, NotFound
from vault.metrics import record_sweep
from vault.storage.trash import ExpiryCursor, TrashStore

logger = get_logger(__name__, with_context=True)


@dataclass
class SweepReport:
    """
    Outcome of one sweeper run
    """
    trigger: str
    started_at: datetime
    scanned: int = 0
    purged: int = 0
    failed: int = 0
    skipped: int = 0
    batches: int = 0
    duration_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)
    skipped_run: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.skipped_run and self.failed == 0 and not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trigger': self.trigger,
            'started_at': self.started_at.isoformat(),
            'scanned': self.scanned,
            'purged': self.purged,
            'failed': self.failed,
            'skipped': self.skipped,
            'batches': self.batches,
            'duration_seconds': round(self.duration_seconds, 2),
            'errors': self.errors,
            'skipped_run': self.skipped_run,
        }


class ExpirySweeper:
    """
    Periodic purge of expired trash entries.

    Each entry is purged in its own transaction through the lifecycle
    engine, so a restore racing the sweep either wins cleanly or loses with
    a conflict; the sweeper counts the latter as skipped.
    """

    def __init__(
        self,
        engine: LifecycleEngine,
        session_factory: SessionFactory,
        clock: Optional[Clock] = None,
        batch_size: Optional[int] = None,
    ):
        self.engine = engine
        self.session_factory = session_factory
        self.clock = clock or engine.clock
        self.batch_size = batch_size or settings.SWEEP_BATCH_SIZE
        self._run_lock = threading.Lock()

    def _next_batch(self, now: datetime, after: Optional[ExpiryCursor]) -> List[tuple]:
        with self.session_factory() as session:
            entries = TrashStore(session).find_expired(now, self.batch_size, after=after)
            return [(entry.id, entry.permanent_delete_at) for entry in entries]

    def run(self, now: Optional[datetime] = None, trigger: str = "scheduled") -> SweepReport:
        """
        Purge every entry whose permanent_delete_at <= now.

        Args:
            now: Reference time, defaults to the clock
            trigger: "scheduled" for the daily job, "manual" for operator runs

        Returns:
            SweepReport with aggregate counts
        """
        now = now or self.clock()
        report = SweepReport(trigger=trigger, started_at=now)

        if not self._run_lock.acquire(blocking=False):
            logger.warning(f"Trash sweep ({trigger}) skipped: another run is in progress")
            report.skipped_run = True
            return report

        start_time = time.monotonic()
        logger.set_context(sweep_run_id=uuid.uuid4().hex[:12], trigger=trigger)

        try:
            logger.info(f"Starting trash sweep for entries due by {now.isoformat()}")
            cursor: Optional[ExpiryCursor] = None

            while True:
                try:
                    batch = self._next_batch(now, cursor)
                except SQLAlchemyError as e:
                    logger.exception("Failed to load expired trash entries")
                    report.errors.append(f"scan: {e}")
                    break

                if not batch:
                    break

                report.batches += 1
                report.scanned += len(batch)

                for entry_id, permanent_delete_at in batch:
                    result = self.engine.purge(entry_id)
                    if result.ok:
                        report.purged += 1
                    elif isinstance(result, (NotFound, Conflict)):
                        # Resolved by a restore or another purge meanwhile
                        report.skipped += 1
                    else:
                        report.failed += 1
                        report.errors.append(f"entry {entry_id}: {result.kind.value}: {result.message}")

                    cursor = (permanent_delete_at, entry_id)

                if len(batch) < self.batch_size:
                    break

            report.duration_seconds = time.monotonic() - start_time

            if report.failed or report.errors:
                logger.warning(
                    f"Trash sweep finished with failures: scanned={report.scanned}, "
                    f"purged={report.purged}, failed={report.failed}, skipped={report.skipped}"
                )
            else:
                logger.info(
                    f"Trash sweep finished: scanned={report.scanned}, purged={report.purged}, "
                    f"skipped={report.skipped} in {report.duration_seconds:.2f}s"
                )

            record_sweep(report)
            return report

        finally:
            logger.clear_context()
            self._run_lock.release()
