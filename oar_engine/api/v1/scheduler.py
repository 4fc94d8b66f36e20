"""Scheduler control: manual tick and status"""

from fastapi import APIRouter, Depends

from oar_engine.api.dependencies import get_bill_engine
from oar_engine.api.v1.schemas import BillErrorSchema, SchedulerStatusResponse, TickResponse
from oar_engine.services.engine import BillEngine

router = APIRouter()


@router.post("/scheduler/tick", response_model=TickResponse)
async def trigger_tick(engine: BillEngine = Depends(get_bill_engine)):
    """Run one scheduler tick now (serialized with the background ticker)"""
    result = await engine.run_tick()
    return TickResponse(
        reference_time=result.reference_time,
        overdue_updated=result.overdue_updated,
        due_updated=result.due_updated,
        autopay_processed=result.autopay_processed,
        errors=[BillErrorSchema(bill_id=e.bill_id, reason=e.reason) for e in result.errors],
        reprocess=result.reprocess,
        aborted=result.aborted,
    )


@router.get("/scheduler/status", response_model=SchedulerStatusResponse)
def scheduler_status(engine: BillEngine = Depends(get_bill_engine)):
    return SchedulerStatusResponse(
        enabled=engine.scheduler_enabled,
        running=engine.is_running,
        interval_seconds=engine.runner.interval_seconds,
        ticks_completed=engine.runner.ticks_completed,
        last_run_at=engine.last_run_at(),
    )
