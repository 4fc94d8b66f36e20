"""Forecast projection - expand bills over a date window and summarize cash flow"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from oar_engine.domain.billing_cycle import frequency_in_months, next_due_date
from oar_engine.domain.estimation import EstimationService, round_half_up
from oar_engine.domain.exceptions import ValidationError
from oar_engine.domain.models import (
    Bill,
    BillStatus,
    Forecast,
    ForecastOccurrence,
    ForecastSummary,
    Frequency,
    MonthlyForecastTotal,
    Transaction,
)
from oar_engine.utils.date_utils import add_months, format_month, month_bounds, month_label, parse_month

UNCATEGORIZED = "uncategorized"


@dataclass(frozen=True)
class ForecastWindow:
    """Inclusive date range [start, end]; empty when end < start"""

    start: date
    end: date

    @classmethod
    def of_length(cls, start: date, days: int) -> "ForecastWindow":
        return cls(start=start, end=start + timedelta(days=days - 1))

    @classmethod
    def for_month(cls, month: str) -> "ForecastWindow":
        start, end = month_bounds(parse_month(month))
        return cls(start=start, end=end)

    @property
    def is_empty(self) -> bool:
        return self.end < self.start

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def amortized_monthly_amount(amount_cents: int, frequency: str) -> Optional[int]:
    """
    Monthly share to set aside for bills recurring less often than monthly.

    Returns None when the period is a month or shorter.
    """
    months = frequency_in_months(frequency)
    if months <= 1:
        return None
    return round_half_up(amount_cents, int(months))


def projected_due_dates(bill: Bill, window: ForecastWindow) -> Iterator[date]:
    """
    Due dates of `bill` falling inside `window`.

    Recurring bills step forward one period at a time from the current due
    date, the same way paying a cycle advances it; one-time bills yield their
    single due date when still unpaid.
    """
    if window.is_empty:
        return

    if bill.frequency == Frequency.ONCE:
        if bill.status != BillStatus.PAID and window.contains(bill.due_date):
            yield bill.due_date
        return

    last = window.end if bill.end_date is None else min(window.end, bill.end_date)
    current = bill.due_date
    while current <= last:
        if current >= window.start:
            yield current
        current = next_due_date(current, bill.frequency)


class ForecastProjector:
    """Read-only projection of bills into future occurrences"""

    def __init__(self, estimation: Optional[EstimationService] = None, max_months: int = 24):
        self.estimation = estimation or EstimationService()
        self.max_months = max_months

    def project(
        self,
        bills: Iterable[Bill],
        window: ForecastWindow,
        include_archived: bool = False,
        tag: Optional[str] = None,
        history: Optional[Mapping[str, Sequence[Transaction]]] = None,
    ) -> Forecast:
        """
        Expand bills into occurrences inside `window` with a summary.

        Args:
            bills: Candidate bills (never mutated)
            window: Inclusive date range
            include_archived: Include archived bills (excluded by default)
            tag: Only project bills carrying this tag slug
            history: Payment history per bill id, used to estimate variable bills
        """
        occurrences: List[ForecastOccurrence] = []
        if window.is_empty:
            return Forecast(occurrences=occurrences, summary=ForecastSummary())

        for bill in bills:
            if bill.archived and not include_archived:
                continue
            if tag is not None and tag not in bill.tag_slugs:
                continue

            for due in projected_due_dates(bill, window):
                occurrences.append(self._occurrence(bill, due, history))

        occurrences.sort(key=lambda o: (o.projected_due_date, o.title, o.bill_id))
        return Forecast(occurrences=occurrences, summary=self.summarize(occurrences))

    def _occurrence(
        self,
        bill: Bill,
        due: date,
        history: Optional[Mapping[str, Sequence[Transaction]]],
    ) -> ForecastOccurrence:
        display_amount = bill.amount_cents
        if bill.is_variable:
            display_amount = self.estimation.estimate(bill, (history or {}).get(bill.id, ()), due)

        return ForecastOccurrence(
            bill_id=bill.id,
            title=bill.title,
            category_id=bill.category_id,
            projected_due_date=due,
            amount_cents=bill.amount_cents,
            display_amount_cents=display_amount,
            is_estimated=bill.is_variable,
            frequency=str(getattr(bill.frequency, "value", bill.frequency)),
            amortized_monthly_cents=amortized_monthly_amount(bill.amount_cents, bill.frequency),
        )

    @staticmethod
    def summarize(occurrences: Sequence[ForecastOccurrence]) -> ForecastSummary:
        total_due = sum(o.display_amount_cents for o in occurrences)
        total_to_save = sum(o.amortized_monthly_cents or 0 for o in occurrences)

        by_category: Dict[str, int] = {}
        for o in occurrences:
            key = o.category_id or UNCATEGORIZED
            by_category[key] = by_category.get(key, 0) + o.display_amount_cents

        return ForecastSummary(
            total_due_cents=total_due,
            total_to_save_cents=total_to_save,
            grand_total_cents=total_due + total_to_save,
            count=len(occurrences),
            by_category=by_category,
        )

    def project_month(self, bills: Iterable[Bill], month: str, **kwargs) -> Forecast:
        """Projection for one calendar month given as YYYY-MM"""
        return self.project(bills, ForecastWindow.for_month(month), **kwargs)

    def project_months(
        self,
        bills: Iterable[Bill],
        start_month: str,
        count: int = 12,
        **kwargs,
    ) -> List[MonthlyForecastTotal]:
        """
        Monthly totals for `count` consecutive months starting at `start_month`.

        Raises:
            ValidationError: count outside 1..max_months or malformed month
        """
        if count < 1 or count > self.max_months:
            raise ValidationError(f"count must be between 1 and {self.max_months}")

        bills = list(bills)
        first = parse_month(start_month)
        totals = []
        for i in range(count):
            month_start = add_months(first, i)
            summary = self.project_month(bills, format_month(month_start), **kwargs).summary
            totals.append(
                MonthlyForecastTotal(
                    month=format_month(month_start),
                    month_label=month_label(month_start),
                    total_due_cents=summary.total_due_cents,
                    total_to_save_cents=summary.total_to_save_cents,
                    grand_total_cents=summary.grand_total_cents,
                )
            )
        return totals
