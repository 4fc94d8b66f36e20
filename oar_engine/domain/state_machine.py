"""Bill state machine - decides the next state of a single bill"""

from datetime import date, datetime
from typing import Optional

from oar_engine.domain.billing_cycle import (
    derive_status,
    is_historical,
    next_due_date,
    resolve_frequency,
    to_utc_day,
)
from oar_engine.domain.exceptions import ValidationError
from oar_engine.domain.models import Bill, BillState, BillStatus, Transaction, Transition

# Sweep only ever escalates; payments are what reset a cycle
_ESCALATION = {
    BillStatus.PENDING: 0,
    BillStatus.DUE: 1,
    BillStatus.OVERDUE: 2,
}


def validate_bill(bill: Bill, strict_frequency: bool = False) -> None:
    """
    Reject bills whose stored data cannot drive cycle math.

    Raises:
        ValidationError: Missing/invalid due date, negative amount, unknown status, or bad frequency
    """
    try:
        BillStatus(bill.status)
    except ValueError:
        raise ValidationError(f"Bill {bill.id} has an unknown status: {bill.status!r}")
    if not isinstance(bill.due_date, date):
        raise ValidationError(f"Bill {bill.id} has an invalid due date: {bill.due_date!r}")
    if bill.amount_cents is None or bill.amount_cents < 0:
        raise ValidationError(f"Bill {bill.id} has an invalid amount: {bill.amount_cents!r}")
    resolve_frequency(bill.frequency, strict=strict_frequency)


def current_state(bill: Bill) -> BillState:
    return BillState(
        status=BillStatus(bill.status),
        due_date=bill.due_date,
        last_processed_at=bill.last_processed_at,
    )


def advanced_state(bill: Bill, processed_at: Optional[datetime]) -> BillState:
    """
    State after the current cycle is paid.

    Recurring bills move one period forward and restart as pending;
    one-time bills stay paid permanently.
    """
    next_due = next_due_date(bill.due_date, bill.frequency)
    if next_due is None:
        return BillState(status=BillStatus.PAID, due_date=bill.due_date, last_processed_at=processed_at)
    return BillState(status=BillStatus.PENDING, due_date=next_due, last_processed_at=processed_at)


def status_transition(bill: Bill, today: date) -> Optional[Transition]:
    """
    Overdue sweep decision for one bill.

    Returns None when nothing changes, which makes repeated sweeps with the
    same reference day no-ops.
    """
    if bill.archived or bill.status == BillStatus.PAID:
        return None

    target = derive_status(bill.due_date, today)
    if _ESCALATION[target] <= _ESCALATION.get(BillStatus(bill.status), 0):
        return None

    return Transition(
        kind=target.value,
        new_state=BillState(status=target, due_date=bill.due_date, last_processed_at=bill.last_processed_at),
    )


def autopay_transition(bill: Bill, now: datetime, note: Optional[str] = None) -> Optional[Transition]:
    """
    Auto-pay decision for one bill at reference instant `now`.

    Eligible bills (auto_pay, unpaid, due on or before today, not already
    processed at or after `now`) get one transaction dated `now` and are
    advanced by exactly one cycle.
    """
    if not bill.auto_pay or bill.archived or bill.status == BillStatus.PAID:
        return None
    if bill.due_date > to_utc_day(now):
        return None
    if bill.last_processed_at is not None and bill.last_processed_at >= now:
        return None

    transaction = Transaction(
        bill_id=bill.id,
        amount_cents=bill.amount_cents,
        paid_at=now,
        notes=note,
        historical=False,
    )
    return Transition(kind="autopay", new_state=advanced_state(bill, now), transaction=transaction)


def payment_transition(
    bill: Bill,
    amount_cents: int,
    paid_at: datetime,
    notes: Optional[str] = None,
    update_due_date: bool = True,
) -> Transition:
    """
    Manual payment decision.

    A payment dated before the current cycle is recorded as historical and
    leaves the live cycle untouched. Otherwise the bill advances exactly as
    auto-pay would, unless the caller asked to keep the due date.

    Raises:
        ValidationError: Non-positive amount
    """
    if amount_cents is None or amount_cents <= 0:
        raise ValidationError("Payment amount must be positive")

    historical = is_historical(bill, paid_at)
    transaction = Transaction(
        bill_id=bill.id,
        amount_cents=amount_cents,
        paid_at=paid_at,
        notes=notes,
        historical=historical,
    )

    if historical or not update_due_date:
        new_state = current_state(bill)
    else:
        new_state = advanced_state(bill, bill.last_processed_at)

    return Transition(kind="payment", new_state=new_state, transaction=transaction)


def reversal_transition(bill: Bill, original: Transaction, at: datetime, notes: Optional[str] = None) -> Transition:
    """
    Reverse a payment with an offsetting negative transaction.

    Bill state is left alone; a corrected payment is recorded separately.

    Raises:
        ValidationError: Original is itself a reversal or belongs to another bill
    """
    if original.bill_id != bill.id:
        raise ValidationError(f"Transaction {original.id} does not belong to bill {bill.id}")
    if original.reverses_id is not None:
        raise ValidationError(f"Transaction {original.id} is a reversal and cannot be reversed")

    transaction = Transaction(
        bill_id=bill.id,
        amount_cents=-original.amount_cents,
        paid_at=at,
        notes=notes or f"Reversal of {original.id}",
        historical=original.historical,
        reverses_id=original.id,
    )
    return Transition(kind="reversal", new_state=current_state(bill), transaction=transaction)
