"""Amount estimation for variable bills based on payment history"""

from datetime import date
from typing import List, Optional, Sequence

from oar_engine.domain.billing_cycle import to_utc_day
from oar_engine.domain.models import Bill, Transaction


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounding .5 away from zero (minor units stay integers)"""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    sign = -1 if numerator < 0 else 1
    return sign * ((2 * abs(numerator) + denominator) // (2 * denominator))


def _payments(history: Sequence[Transaction]) -> List[Transaction]:
    """Real payments, most recent first (reversals and reversed payments dropped)"""
    reversed_ids = {t.reverses_id for t in history if t.reverses_id}
    payments = [t for t in history if t.reverses_id is None and t.id not in reversed_ids]
    return sorted(payments, key=lambda t: t.paid_at, reverse=True)


class AverageLastThreePaymentsStrategy:
    """Average of the three most recent payments"""

    name = "AverageLastThreePayments"

    def calculate(self, history: Sequence[Transaction], target: date) -> Optional[int]:
        recent = _payments(history)[:3]
        if not recent:
            return None
        return round_half_up(sum(t.amount_cents for t in recent), len(recent))


class HistoricalMonthStrategy:
    """Most recent payment from the same month one year earlier (seasonal bills)"""

    name = "HistoricalMonth"

    def calculate(self, history: Sequence[Transaction], target: date) -> Optional[int]:
        for txn in _payments(history):
            day = to_utc_day(txn.paid_at)
            if day.year == target.year - 1 and day.month == target.month:
                return txn.amount_cents
        return None


class EstimationService:
    """
    Estimate a variable bill's amount for a target month.

    Strategy order:
    1. HistoricalMonthStrategy (most accurate for seasonal bills)
    2. AverageLastThreePaymentsStrategy
    3. The bill's own amount when there is no history
    """

    def __init__(self, strategies=None):
        self.strategies = strategies or [HistoricalMonthStrategy(), AverageLastThreePaymentsStrategy()]

    def estimate(self, bill: Bill, history: Sequence[Transaction], target: date) -> int:
        for strategy in self.strategies:
            estimate = strategy.calculate(history, target)
            if estimate is not None:
                return estimate
        return bill.amount_cents
