"""Recurring scheduler: overdue sweep + auto-pay on a fixed interval"""

import asyncio
import contextlib
import logging
import time
from datetime import datetime
from typing import Optional

from oar_engine.domain.exceptions import StoreError, StoreUnavailable
from oar_engine.domain.models import TickResult
from oar_engine.domain.ports import BillStore
from oar_engine.infrastructure.observability.logging import log_tick_result
from oar_engine.infrastructure.observability.metrics import record_tick, record_watermark
from oar_engine.services.clock import Clock
from oar_engine.services.lifecycle import BillLifecycleService

logger = logging.getLogger(__name__)


class SchedulerRunner:
    """
    Owns the ticker task.

    Each tick runs the overdue sweep, then auto-pay, then moves the
    watermark to the tick's reference time. The watermark is only written
    after both passes committed, so an aborted tick is replayed later.
    Stopping happens between ticks; a tick that started always finishes.
    """

    def __init__(
        self,
        lifecycle: BillLifecycleService,
        store: BillStore,
        clock: Clock,
        interval_seconds: float,
    ):
        self.lifecycle = lifecycle
        self.store = store
        self.clock = clock
        self.interval_seconds = interval_seconds
        self.last_result: Optional[TickResult] = None
        self.ticks_completed = 0
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._stopping = False
        self._sleeping = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_tick(self, now: Optional[datetime] = None, source: str = "tick") -> TickResult:
        """
        Evaluate all active bills at reference instant `now`.

        Per-bill failures are collected in the result. A store failure outside
        a single bill (unreachable store, failed watermark write) aborts the
        tick and leaves the watermark where it was.
        """
        async with self._lock:
            now = now or self.clock.now()
            started = time.perf_counter()
            result = TickResult(reference_time=now)

            try:
                sweep = self.lifecycle.sweep_overdue(now)
                result.overdue_updated = sweep.updated
                result.due_updated = sweep.due_updated
                result.errors.extend(sweep.errors)

                autopay = self.lifecycle.execute_autopay(now)
                result.autopay_processed = autopay.updated
                result.errors.extend(autopay.errors)
                result.reprocess.extend(autopay.reprocess)

                self.store.write_watermark(now)
                record_watermark(now)
            except StoreError as e:
                # Includes StoreUnavailable; a partial tick must not move the watermark
                result.aborted = True
                logger.error(
                    f"Store failure, {source} abandoned: {e}",
                    extra={"reference_time": now.isoformat(), "unavailable": isinstance(e, StoreUnavailable)},
                )

            duration = time.perf_counter() - started
            record_tick(source, result, duration)
            log_tick_result(source, result, duration * 1000)

            self.last_result = result
            if not result.aborted:
                self.ticks_completed += 1
            return result

    def start(self) -> None:
        """Spawn the ticker task on the running event loop"""
        if self.is_running:
            logger.info("Scheduler already running, skipping")
            return
        self._stopping = False
        self._task = asyncio.get_running_loop().create_task(self._run_forever(), name="oar-scheduler")

    async def stop(self) -> None:
        """Stop between ticks; waits for an in-flight tick to finish"""
        if self._task is None:
            logger.info("Scheduler not running, nothing to stop")
            return

        logger.info("Scheduler shutting down")
        self._stopping = True
        if self._sleeping:
            self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Scheduler shutdown complete")

    async def _run_forever(self) -> None:
        logger.info("Scheduler started", extra={"interval_seconds": self.interval_seconds})
        while not self._stopping:
            self._sleeping = True
            try:
                await self.clock.sleep(self.interval_seconds)
            finally:
                self._sleeping = False
            if self._stopping:
                break

            try:
                await self.run_tick()
            except Exception:
                # Keep ticking; the next run sees the same unresolved bills
                logger.exception("Scheduler tick failed")
