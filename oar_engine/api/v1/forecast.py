"""GET /v1/forecast - projected bills and cash flow"""

from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from oar_engine.api.dependencies import get_bill_engine
from oar_engine.api.v1.schemas import (
    ForecastRangeResponse,
    ForecastResponse,
    MonthlyTotalSchema,
    OccurrenceSchema,
    SummarySchema,
)
from oar_engine.domain.exceptions import StoreUnavailable, ValidationError
from oar_engine.domain.forecast import ForecastWindow
from oar_engine.domain.models import Forecast
from oar_engine.services.engine import BillEngine

router = APIRouter()

MAX_WINDOW_DAYS = 732


def _forecast_response(window: ForecastWindow, forecast: Forecast) -> ForecastResponse:
    return ForecastResponse(
        start=window.start,
        end=window.end,
        occurrences=[OccurrenceSchema(**asdict(o)) for o in forecast.occurrences],
        summary=SummarySchema(**asdict(forecast.summary)),
    )


@router.get("/forecast", response_model=ForecastResponse)
def get_month_forecast(
    month: str = Query(..., description="Month in YYYY-MM format"),
    tag: Optional[str] = Query(None, description="Only bills with this tag slug"),
    include_archived: bool = Query(False),
    engine: BillEngine = Depends(get_bill_engine),
):
    """Bills projected into one calendar month, with amortization totals"""
    try:
        window = ForecastWindow.for_month(month)
        forecast = engine.project(None, window, include_archived=include_archived, tag=tag)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Store unavailable")

    return _forecast_response(window, forecast)


@router.get("/forecast/window", response_model=ForecastResponse)
def get_window_forecast(
    start: date = Query(..., description="First day of the window"),
    end: date = Query(..., description="Last day of the window (inclusive)"),
    tag: Optional[str] = Query(None),
    include_archived: bool = Query(False),
    engine: BillEngine = Depends(get_bill_engine),
):
    """
    Bills projected into an arbitrary inclusive date range.

    An inverted range returns an empty forecast.
    """
    if (end - start).days > MAX_WINDOW_DAYS:
        raise HTTPException(status_code=422, detail=f"Window longer than {MAX_WINDOW_DAYS} days")

    window = ForecastWindow(start=start, end=end)
    try:
        forecast = engine.project(None, window, include_archived=include_archived, tag=tag)
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Store unavailable")

    return _forecast_response(window, forecast)


@router.get("/forecast/months", response_model=ForecastRangeResponse)
def get_forecast_range(
    start: str = Query(..., description="First month in YYYY-MM format"),
    count: int = Query(12, description="Number of months"),
    tag: Optional[str] = Query(None),
    include_archived: bool = Query(False),
    engine: BillEngine = Depends(get_bill_engine),
):
    """Monthly totals for charting"""
    try:
        totals = engine.project_months(start, count, include_archived=include_archived, tag=tag)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Store unavailable")

    return ForecastRangeResponse(months=[MonthlyTotalSchema(**asdict(t)) for t in totals])
