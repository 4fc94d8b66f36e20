"""Billing cycle arithmetic - pure functions over (due date, frequency)"""

from datetime import date, datetime, timezone
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from oar_engine.domain.exceptions import ValidationError
from oar_engine.domain.models import BillStatus, CycleWindow, Frequency

FrequencyLike = Union[Frequency, str]

# Keyed by value: str-mixin enums hash by member name, not by value
_PERIODS = {
    Frequency.WEEKLY.value: relativedelta(weeks=1),
    Frequency.BIWEEKLY.value: relativedelta(weeks=2),
    Frequency.TWICEMONTHLY.value: relativedelta(weeks=2),
    Frequency.MONTHLY.value: relativedelta(months=1),
    Frequency.BIMONTHLY.value: relativedelta(months=2),
    Frequency.QUARTERLY.value: relativedelta(months=3),
    Frequency.YEARLY.value: relativedelta(years=1),
}

# Unknown frequencies are treated as monthly
_FALLBACK_PERIOD = relativedelta(months=1)

_MONTHS_PER_PERIOD = {
    Frequency.ONCE.value: 0,
    Frequency.WEEKLY.value: 0.25,  # ~4 weeks per month
    Frequency.BIWEEKLY.value: 0.5,
    Frequency.TWICEMONTHLY.value: 1,
    Frequency.MONTHLY.value: 1,
    Frequency.BIMONTHLY.value: 2,
    Frequency.QUARTERLY.value: 3,
    Frequency.YEARLY.value: 12,
}


def _value(frequency: FrequencyLike) -> str:
    return frequency.value if isinstance(frequency, Frequency) else str(frequency)


def resolve_frequency(value: Optional[str], strict: bool = False) -> FrequencyLike:
    """
    Convert a stored frequency string to Frequency.

    Permissive mode keeps unknown strings as-is so cycle math falls back to
    monthly; strict mode rejects them.

    Raises:
        ValidationError: Missing frequency, or unknown frequency in strict mode
    """
    if not value:
        raise ValidationError("Bill has no frequency")
    try:
        return Frequency(value)
    except ValueError:
        if strict:
            raise ValidationError(f"Unknown frequency: {value!r}")
        return value


def period(frequency: FrequencyLike) -> Optional[relativedelta]:
    """Length of one cycle, or None for one-time bills"""
    key = _value(frequency)
    if key == Frequency.ONCE.value:
        return None
    return _PERIODS.get(key, _FALLBACK_PERIOD)


def cycle_start(due_date: date, frequency: FrequencyLike) -> Optional[date]:
    """
    Date the current billing cycle started.

    Subtracts one period from the due date: weekly -7d, biweekly and
    twicemonthly -14d, monthly -1 month, bimonthly -2 months, quarterly
    -3 months, yearly -1 year. Month arithmetic clamps to month end
    (Mar 31 - 1 month = Feb 28).

    Returns:
        Start of the cycle, or None for one-time bills
    """
    delta = period(frequency)
    if delta is None:
        return None
    return due_date - delta


def next_due_date(due_date: date, frequency: FrequencyLike) -> Optional[date]:
    """Due date of the following cycle, or None for one-time bills"""
    delta = period(frequency)
    if delta is None:
        return None
    return due_date + delta


def cycle_window(due_date: date, frequency: FrequencyLike) -> Optional[CycleWindow]:
    """Current cycle as (start, due date); None for one-time bills"""
    start = cycle_start(due_date, frequency)
    if start is None:
        return None
    return CycleWindow(cycle_start=start, cycle_end=due_date)


def to_utc_day(moment: Union[date, datetime]) -> date:
    """Calendar day of an instant in UTC; naive datetimes are taken as UTC"""
    if isinstance(moment, datetime):
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc)
        return moment.date()
    return moment


def is_historical(bill, paid_at: Union[date, datetime]) -> bool:
    """
    Whether a payment belongs to a cycle before the bill's current one.

    One-time bills have no prior cycle, so their payments are never
    historical. For recurring bills the comparison is at day granularity:
    historical iff the payment day is strictly before the cycle start day.

    Args:
        bill: Anything with due_date and frequency attributes
        paid_at: Payment instant (or date)
    """
    start = cycle_start(bill.due_date, bill.frequency)
    if start is None:
        return False
    return to_utc_day(paid_at) < start


def derive_status(due_date: date, today: date) -> BillStatus:
    """Status an unpaid bill should have on a given day"""
    if due_date < today:
        return BillStatus.OVERDUE
    if due_date == today:
        return BillStatus.DUE
    return BillStatus.PENDING


def frequency_in_months(frequency: FrequencyLike) -> float:
    """Approximate number of months covered by one period (0 for one-time)"""
    return _MONTHS_PER_PERIOD.get(_value(frequency), 1)
