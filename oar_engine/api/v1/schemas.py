"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PaymentRequest(BaseModel):
    """Request body for POST /v1/bills/{bill_id}/payments"""

    amount_cents: int = Field(..., gt=0, description="Payment amount in minor units")
    paid_at: Optional[datetime] = Field(None, description="Payment instant (UTC); defaults to now")
    notes: Optional[str] = Field(None, max_length=500)
    update_due_date: bool = Field(True, description="Advance the bill to its next cycle")


class PaymentResponse(BaseModel):
    """Response for payment and reversal endpoints"""

    transaction_id: str
    historical: bool


class ReversalRequest(BaseModel):
    """Request body for POST /v1/transactions/{transaction_id}/reversal"""

    notes: Optional[str] = Field(None, max_length=500)


class OccurrenceSchema(BaseModel):
    """Single projected bill occurrence"""

    bill_id: str
    title: str
    category_id: Optional[str] = None
    projected_due_date: date
    amount_cents: int
    display_amount_cents: int
    is_estimated: bool
    frequency: str
    amortized_monthly_cents: Optional[int] = None


class SummarySchema(BaseModel):
    """Aggregated forecast totals"""

    total_due_cents: int
    total_to_save_cents: int
    grand_total_cents: int
    count: int
    by_category: Dict[str, int]


class ForecastResponse(BaseModel):
    """Response for GET /v1/forecast and /v1/forecast/window"""

    start: date
    end: date
    occurrences: List[OccurrenceSchema]
    summary: SummarySchema


class MonthlyTotalSchema(BaseModel):
    """Totals for one month of a range"""

    month: str
    month_label: str
    total_due_cents: int
    total_to_save_cents: int
    grand_total_cents: int


class ForecastRangeResponse(BaseModel):
    """Response for GET /v1/forecast/months"""

    months: List[MonthlyTotalSchema]


class BillErrorSchema(BaseModel):
    bill_id: str
    reason: str


class TickResponse(BaseModel):
    """Response for POST /v1/scheduler/tick"""

    reference_time: datetime
    overdue_updated: int
    due_updated: int
    autopay_processed: int
    errors: List[BillErrorSchema]
    reprocess: List[str]
    aborted: bool


class SchedulerStatusResponse(BaseModel):
    """Response for GET /v1/scheduler/status"""

    enabled: bool
    running: bool
    interval_seconds: float
    ticks_completed: int
    last_run_at: Optional[datetime] = None
