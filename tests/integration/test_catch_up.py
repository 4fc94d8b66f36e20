"""Integration tests for startup catch-up after downtime"""

import pytest
from datetime import date, datetime, timedelta, timezone

from oar_engine.domain.exceptions import StoreUnavailable
from oar_engine.domain.models import BillStatus
from oar_engine.services.catch_up import CatchUpReconciler
from oar_engine.services.lifecycle import BillLifecycleService
from oar_engine.services.scheduler import SchedulerRunner

pytestmark = pytest.mark.integration

LAST_RUN = datetime(2025, 1, 1, 0, 5, tzinfo=timezone.utc)
RESTART = datetime(2025, 1, 11, 9, 0, tzinfo=timezone.utc)


class WatermarkFailureStore:
    def __init__(self, inner, error):
        self.inner = inner
        self.error = error

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def read_watermark(self):
        raise self.error


class UnavailableDuringTickStore(WatermarkFailureStore):
    def read_watermark(self):
        return self.inner.read_watermark()

    def find_active_bills(self, as_of):
        raise self.error


def _reconciler(store, clock, interval=300):
    runner = SchedulerRunner(BillLifecycleService(store, clock=clock), store, clock, interval)
    return CatchUpReconciler(runner, store, clock, interval)


async def test_outage_advances_weekly_bill_one_cycle(store, bill_engine, clock):
    """Test a 10-day outage pays a weekly bill once and flags it for reprocessing"""
    clock.current = RESTART
    store.write_watermark(LAST_RUN)
    bill = store.add_bill(
        "Cleaner",
        8000,
        date(2025, 1, 1),
        frequency="weekly",
        auto_pay=True,
        created_at=datetime(2024, 12, 1, tzinfo=timezone.utc),
    )

    result = await bill_engine.catch_up()

    assert result.watermark_floor == LAST_RUN
    assert result.gap == RESTART - LAST_RUN
    assert result.missed_ticks == int((RESTART - LAST_RUN).total_seconds() // 300)
    assert result.overdue_updated == 1
    assert result.autopay_processed == 1
    assert result.reprocess == [bill.id]
    assert result.failed is False
    assert result.completed_at == RESTART
    assert store.get_bill(bill.id).due_date == date(2025, 1, 8)
    assert len(store.list_transactions(bill.id)) == 1
    assert store.read_watermark() == RESTART


async def test_regular_tick_continues_after_catch_up(store, bill_engine, clock):
    clock.current = RESTART
    store.write_watermark(LAST_RUN)
    bill = store.add_bill("Cleaner", 8000, date(2025, 1, 1), frequency="weekly", auto_pay=True)
    await bill_engine.catch_up()

    tick = await bill_engine.run_tick(clock.advance(seconds=300))

    updated = store.get_bill(bill.id)
    assert tick.autopay_processed == 1
    assert tick.reprocess == []
    assert updated.due_date == date(2025, 1, 15)
    assert updated.status == BillStatus.PENDING
    assert len(store.list_transactions(bill.id)) == 2


async def test_first_start_uses_oldest_bill_as_floor(store, clock):
    created = datetime(2025, 1, 9, 9, 0, tzinfo=timezone.utc)
    store.add_bill("Rent", 150000, date(2025, 2, 1), created_at=created)

    result = await _reconciler(store, clock).run()

    assert result.watermark_floor == created
    assert result.gap == timedelta(days=1)
    assert result.missed_ticks == 288


async def test_empty_store_has_no_gap(store, clock):
    result = await _reconciler(store, clock).run()

    assert result.watermark_floor is None
    assert result.gap is None
    assert result.missed_ticks == 0
    assert result.failed is False
    assert store.read_watermark() == clock.now()


async def test_catch_up_runs_once(store, clock):
    store.add_bill("Rent", 150000, date(2025, 1, 5))
    reconciler = _reconciler(store, clock)

    first = await reconciler.run()
    second = await reconciler.run()

    assert first.skipped is False
    assert first.overdue_updated == 1
    assert second.skipped is True
    assert second.overdue_updated == 0


async def test_catch_up_failure_does_not_raise(store, clock):
    result = await _reconciler(WatermarkFailureStore(store, RuntimeError("corrupt row")), clock).run()

    assert result.failed is True
    assert result.completed_at == clock.now()


async def test_catch_up_with_unreachable_store_reports_failure(store, clock):
    store.write_watermark(LAST_RUN)
    broken = UnavailableDuringTickStore(store, StoreUnavailable("connection refused"))

    result = await _reconciler(broken, clock).run()

    assert result.failed is True
    assert result.aborted is True
    assert store.read_watermark() == LAST_RUN
