"""Unit tests for bill state transitions"""

import pytest
from datetime import date, datetime, timedelta, timezone

from oar_engine.domain.exceptions import ValidationError
from oar_engine.domain.models import BillStatus, Transaction
from oar_engine.domain.state_machine import (
    autopay_transition,
    payment_transition,
    reversal_transition,
    status_transition,
    validate_bill,
)

NOW = datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)
TODAY = date(2025, 1, 10)


# Overdue sweep


def test_past_due_pending_bill_becomes_overdue(make_bill):
    bill = make_bill(due_date=date(2025, 1, 5))
    transition = status_transition(bill, TODAY)

    assert transition.kind == "overdue"
    assert transition.new_state.status == BillStatus.OVERDUE
    assert transition.new_state.due_date == date(2025, 1, 5)
    assert transition.transaction is None


def test_bill_due_today_becomes_due(make_bill):
    transition = status_transition(make_bill(due_date=TODAY), TODAY)

    assert transition.kind == "due"
    assert transition.new_state.status == BillStatus.DUE


def test_due_bill_escalates_to_overdue(make_bill):
    bill = make_bill(due_date=date(2025, 1, 9), status=BillStatus.DUE)
    assert status_transition(bill, TODAY).new_state.status == BillStatus.OVERDUE


@pytest.mark.parametrize(
    "overrides",
    [
        {"due_date": date(2025, 1, 5), "status": BillStatus.OVERDUE},
        {"due_date": date(2025, 1, 20)},
        {"due_date": date(2025, 1, 5), "status": BillStatus.PAID},
        {"due_date": date(2025, 1, 5), "archived": True},
        {"due_date": TODAY, "status": BillStatus.DUE},
    ],
)
def test_sweep_leaves_bill_alone(make_bill, overrides):
    """Test sweep returns no transition when nothing changes"""
    assert status_transition(make_bill(**overrides), TODAY) is None


def test_sweep_never_downgrades_status(make_bill):
    """Test an overdue bill is not set back to due"""
    bill = make_bill(due_date=TODAY, status=BillStatus.OVERDUE)
    assert status_transition(bill, TODAY) is None


# Auto-pay


def test_autopay_monthly_bill_advances_one_cycle(make_bill):
    bill = make_bill(due_date=TODAY, auto_pay=True, amount_cents=4999)
    transition = autopay_transition(bill, NOW, note="Logged by Oar")

    assert transition.kind == "autopay"
    assert transition.new_state.due_date == date(2025, 2, 10)
    assert transition.new_state.status == BillStatus.PENDING
    assert transition.new_state.last_processed_at == NOW
    assert transition.transaction.amount_cents == 4999
    assert transition.transaction.paid_at == NOW
    assert transition.transaction.notes == "Logged by Oar"
    assert transition.transaction.historical is False


def test_autopay_overdue_bill_resets_to_pending(make_bill):
    bill = make_bill(due_date=date(2025, 1, 3), status=BillStatus.OVERDUE, auto_pay=True, frequency="weekly")
    transition = autopay_transition(bill, NOW)

    assert transition.new_state.due_date == TODAY
    assert transition.new_state.status == BillStatus.PENDING


def test_autopay_one_time_bill_is_paid_permanently(make_bill):
    bill = make_bill(due_date=TODAY, auto_pay=True, frequency="once")
    transition = autopay_transition(bill, NOW)

    assert transition.new_state.status == BillStatus.PAID
    assert transition.new_state.due_date == TODAY

    paid = make_bill(
        due_date=TODAY,
        auto_pay=True,
        frequency="once",
        status=BillStatus.PAID,
        last_processed_at=NOW,
    )
    assert autopay_transition(paid, NOW + timedelta(days=1)) is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"auto_pay": False},
        {"due_date": date(2025, 1, 11)},
        {"archived": True},
        {"last_processed_at": NOW},
        {"last_processed_at": NOW + timedelta(minutes=1)},
    ],
)
def test_autopay_not_eligible(make_bill, overrides):
    values = {"due_date": TODAY, "auto_pay": True}
    values.update(overrides)
    assert autopay_transition(make_bill(**values), NOW) is None


def test_autopay_runs_again_at_later_reference_time(make_bill):
    """Test a bill processed earlier is eligible again once `now` moves past it"""
    bill = make_bill(
        due_date=date(2025, 1, 3),
        frequency="weekly",
        auto_pay=True,
        last_processed_at=NOW - timedelta(hours=1),
    )
    assert autopay_transition(bill, NOW) is not None


# Manual payments


def test_payment_in_current_cycle_advances_bill(make_bill):
    bill = make_bill(due_date=date(2025, 3, 15), status=BillStatus.OVERDUE)
    transition = payment_transition(bill, 150000, datetime(2025, 2, 20, tzinfo=timezone.utc))

    assert transition.kind == "payment"
    assert transition.transaction.historical is False
    assert transition.new_state.due_date == date(2025, 4, 15)
    assert transition.new_state.status == BillStatus.PENDING


def test_historical_payment_keeps_bill_state(make_bill):
    bill = make_bill(due_date=date(2025, 3, 15), status=BillStatus.DUE)
    transition = payment_transition(bill, 150000, datetime(2025, 2, 1, tzinfo=timezone.utc))

    assert transition.transaction.historical is True
    assert transition.new_state.due_date == date(2025, 3, 15)
    assert transition.new_state.status == BillStatus.DUE


def test_payment_without_due_date_update(make_bill):
    bill = make_bill(due_date=date(2025, 3, 15))
    transition = payment_transition(
        bill, 150000, datetime(2025, 3, 1, tzinfo=timezone.utc), update_due_date=False
    )

    assert transition.transaction.historical is False
    assert transition.new_state.due_date == date(2025, 3, 15)


def test_payment_on_one_time_bill_marks_paid(make_bill):
    bill = make_bill(due_date=date(2025, 3, 15), frequency="once")
    transition = payment_transition(bill, 150000, datetime(2020, 1, 1, tzinfo=timezone.utc))

    assert transition.transaction.historical is False
    assert transition.new_state.status == BillStatus.PAID


@pytest.mark.parametrize("amount", [0, -100])
def test_payment_rejects_non_positive_amount(make_bill, amount):
    with pytest.raises(ValidationError):
        payment_transition(make_bill(), amount, NOW)


# Reversals


def test_reversal_offsets_original(make_bill):
    bill = make_bill(due_date=date(2025, 2, 10))
    original = Transaction(bill_id=bill.id, amount_cents=150000, paid_at=NOW)
    transition = reversal_transition(bill, original, NOW + timedelta(days=1))

    assert transition.kind == "reversal"
    assert transition.transaction.amount_cents == -150000
    assert transition.transaction.reverses_id == original.id
    assert transition.new_state.due_date == date(2025, 2, 10)


def test_reversal_of_reversal_rejected(make_bill):
    bill = make_bill()
    reversal = Transaction(bill_id=bill.id, amount_cents=-100, paid_at=NOW, reverses_id="txn-1")

    with pytest.raises(ValidationError):
        reversal_transition(bill, reversal, NOW)


def test_reversal_of_other_bill_rejected(make_bill):
    original = Transaction(bill_id="other", amount_cents=100, paid_at=NOW)

    with pytest.raises(ValidationError):
        reversal_transition(make_bill(), original, NOW)


# Validation


def test_validate_bill_strict_rejects_unknown_frequency(make_bill):
    bill = make_bill(frequency="fortnightly")

    validate_bill(bill)
    with pytest.raises(ValidationError):
        validate_bill(bill, strict_frequency=True)


@pytest.mark.parametrize(
    "overrides",
    [{"amount_cents": -1}, {"due_date": None}, {"frequency": ""}, {"status": "closed"}],
)
def test_validate_bill_rejects_bad_data(make_bill, overrides):
    with pytest.raises(ValidationError):
        validate_bill(make_bill(**overrides))
