"""Startup catch-up: one consolidated pass covering ticks missed during downtime"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from oar_engine.domain.models import CatchUpResult
from oar_engine.domain.ports import BillStore
from oar_engine.services.clock import Clock
from oar_engine.services.scheduler import SchedulerRunner

logger = logging.getLogger(__name__)


class CatchUpReconciler:
    """
    Replays missed scheduler work once, before the ticker starts.

    Instead of N ticks it runs a single tick at "now": the sweep and auto-pay
    only compare due dates with the reference time, so one pass reaches the
    same state, except that each bill advances at most one cycle. Bills left
    behind are listed in `reprocess` and picked up by the regular ticks.
    """

    def __init__(self, runner: SchedulerRunner, store: BillStore, clock: Clock, interval_seconds: float):
        self.runner = runner
        self.store = store
        self.clock = clock
        self.interval_seconds = interval_seconds
        self._executed = False

    async def run(self, now: Optional[datetime] = None) -> CatchUpResult:
        """
        Run the catch-up pass; never raises.

        Failures are logged and reported with failed=True so process startup
        continues and the next regular tick self-corrects.
        """
        if self._executed:
            logger.info("Catch-up already executed, skipping")
            return CatchUpResult(skipped=True, completed_at=self.clock.now())
        self._executed = True

        now = now or self.clock.now()
        result = CatchUpResult(reference_time=now)

        try:
            floor = self.store.read_watermark()
            if floor is None:
                # First start: nothing can have been missed before the oldest bill existed
                floor = self.store.earliest_bill_created_at()
            result.watermark_floor = floor

            if floor is not None:
                result.gap = max(now - floor, timedelta(0))
                if self.interval_seconds > 0:
                    result.missed_ticks = int(result.gap.total_seconds() // self.interval_seconds)

            logger.info(
                "Starting catch-up",
                extra={
                    "watermark_floor": floor.isoformat() if floor else None,
                    "gap_seconds": result.gap.total_seconds() if result.gap is not None else None,
                    "missed_ticks": result.missed_ticks,
                },
            )

            tick = await self.runner.run_tick(now, source="catch_up")
            result.overdue_updated = tick.overdue_updated
            result.due_updated = tick.due_updated
            result.autopay_processed = tick.autopay_processed
            result.errors = tick.errors
            result.reprocess = tick.reprocess
            result.aborted = tick.aborted
            result.failed = tick.aborted
        except Exception:
            # Availability over a clean boot: the next tick retries the same window
            logger.exception("Catch-up failed, continuing startup")
            result.failed = True

        result.completed_at = self.clock.now()
        return result
