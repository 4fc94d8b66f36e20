"""BillEngine - explicitly constructed engine owning scheduler, catch-up and projections"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from oar_engine.config import Settings, settings as default_settings
from oar_engine.domain.forecast import ForecastProjector, ForecastWindow
from oar_engine.domain.models import (
    Bill,
    CatchUpResult,
    Forecast,
    MonthlyForecastTotal,
    PaymentReceipt,
    TickResult,
    Transaction,
)
from oar_engine.domain.ports import BillStore, Notifier
from oar_engine.services.catch_up import CatchUpReconciler
from oar_engine.services.clock import Clock, SystemClock
from oar_engine.services.lifecycle import BillLifecycleService
from oar_engine.services.scheduler import SchedulerRunner

logger = logging.getLogger(__name__)


class BillEngine:
    """
    Process-wide engine instance.

    `start()` runs catch-up to completion and only then starts the ticker,
    so the two never overlap. Whether the scheduler runs at all is decided
    once, from configuration, when the engine is built.
    """

    def __init__(
        self,
        store: BillStore,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
        config: Optional[Settings] = None,
        projector: Optional[ForecastProjector] = None,
    ):
        config = config or default_settings
        self.store = store
        self.clock = clock or SystemClock()
        self.scheduler_enabled = config.scheduler_enabled

        self.lifecycle = BillLifecycleService(
            store,
            clock=self.clock,
            notifier=notifier,
            strict_frequency=config.strict_frequency,
            auto_pay_note=config.auto_pay_note,
        )
        self.runner = SchedulerRunner(self.lifecycle, store, self.clock, config.scheduler_interval_seconds)
        self.reconciler = CatchUpReconciler(self.runner, store, self.clock, config.scheduler_interval_seconds)
        self.projector = projector or ForecastProjector(max_months=config.forecast_max_months)
        self.last_catch_up: Optional[CatchUpResult] = None

    async def start(self) -> None:
        if not self.scheduler_enabled:
            logger.info("Scheduler disabled by configuration, skipping catch-up and ticker")
            return
        self.last_catch_up = await self.catch_up()
        self.runner.start()

    async def stop(self) -> None:
        await self.runner.stop()
        await self.lifecycle.drain()

    @property
    def is_running(self) -> bool:
        return self.runner.is_running

    # Scheduler

    async def run_tick(self, now: Optional[datetime] = None) -> TickResult:
        return await self.runner.run_tick(now)

    async def catch_up(self, now: Optional[datetime] = None) -> CatchUpResult:
        return await self.reconciler.run(now)

    def last_run_at(self) -> Optional[datetime]:
        return self.store.read_watermark()

    # Payments

    def record_payment(
        self,
        bill_id: str,
        amount_cents: int,
        paid_at: Optional[datetime] = None,
        notes: Optional[str] = None,
        update_due_date: bool = True,
    ) -> PaymentReceipt:
        return self.lifecycle.record_payment(bill_id, amount_cents, paid_at, notes, update_due_date)

    def reverse_payment(self, transaction_id: str, notes: Optional[str] = None) -> PaymentReceipt:
        return self.lifecycle.reverse_payment(transaction_id, notes)

    # Forecast

    def project(
        self,
        bills: Optional[Iterable[Bill]],
        window: ForecastWindow,
        include_archived: bool = False,
        tag: Optional[str] = None,
    ) -> Forecast:
        """Project `bills` (all stored bills when None) over `window`"""
        bills = self._forecast_bills(bills, include_archived)
        return self.projector.project(
            bills,
            window,
            include_archived=include_archived,
            tag=tag,
            history=self._variable_history(bills),
        )

    def project_month(self, month: str, include_archived: bool = False, tag: Optional[str] = None) -> Forecast:
        return self.project(None, ForecastWindow.for_month(month), include_archived=include_archived, tag=tag)

    def project_months(
        self,
        start_month: str,
        count: int = 12,
        include_archived: bool = False,
        tag: Optional[str] = None,
    ) -> List[MonthlyForecastTotal]:
        bills = self._forecast_bills(None, include_archived)
        return self.projector.project_months(
            bills,
            start_month,
            count,
            include_archived=include_archived,
            tag=tag,
            history=self._variable_history(bills),
        )

    def _forecast_bills(self, bills: Optional[Iterable[Bill]], include_archived: bool) -> List[Bill]:
        if bills is None:
            return self.store.list_bills(include_archived=include_archived)
        return list(bills)

    def _variable_history(self, bills: Sequence[Bill]) -> Dict[str, List[Transaction]]:
        return {b.id: self.store.list_transactions(b.id) for b in bills if b.is_variable}
