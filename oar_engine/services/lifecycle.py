"""Bill lifecycle service - applies state machine decisions to the store"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional, Set, Tuple

from oar_engine.domain.billing_cycle import to_utc_day
from oar_engine.domain.exceptions import (
    BillNotFoundError,
    ConflictError,
    DomainException,
    NotificationFailure,
    StoreUnavailable,
    TransactionNotFoundError,
    ValidationError,
)
from oar_engine.domain.models import (
    Bill,
    BillError,
    BillEvent,
    BillStatus,
    CommitOutcome,
    PassResult,
    PaymentReceipt,
    Transition,
)
from oar_engine.domain.ports import BillStore, Notifier
from oar_engine.domain.state_machine import (
    autopay_transition,
    payment_transition,
    reversal_transition,
    status_transition,
    validate_bill,
)
from oar_engine.infrastructure.observability.metrics import bill_error_counter, bill_transition_counter
from oar_engine.services.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

Decision = Callable[[Bill], Optional[Transition]]


def _error_reason(error: DomainException) -> str:
    if isinstance(error, ValidationError):
        return "validation"
    if isinstance(error, ConflictError):
        return "conflict"
    return "store"


class BillLifecycleService:
    """
    Runs the overdue sweep, auto-pay and manual payments against the store.

    Each bill is written with an optimistic version check. A lost race is
    retried once against a fresh read; a second loss leaves the bill for the
    next tick. One bill failing never stops the rest of a pass.
    """

    def __init__(
        self,
        store: BillStore,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
        strict_frequency: bool = False,
        auto_pay_note: Optional[str] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.notifier = notifier
        self.strict_frequency = strict_frequency
        self.auto_pay_note = auto_pay_note
        self._pending: Set[asyncio.Task] = set()

    # Scheduler passes

    def sweep_overdue(self, now: datetime) -> PassResult:
        """Flag unpaid bills as due/overdue; repeated runs at the same `now` change nothing"""
        today = to_utc_day(now)
        committed, errors = self._run_pass(now, lambda bill: status_transition(bill, today))

        result = PassResult(errors=errors)
        for _, transition in committed:
            if transition.new_state.status == BillStatus.OVERDUE:
                result.updated += 1
            else:
                result.due_updated += 1
        return result

    def execute_autopay(self, now: datetime) -> PassResult:
        """Pay and advance every eligible auto-pay bill by one cycle"""
        today = to_utc_day(now)
        committed, errors = self._run_pass(now, lambda bill: autopay_transition(bill, now, self.auto_pay_note))

        result = PassResult(updated=len(committed), errors=errors)
        for bill, transition in committed:
            state = transition.new_state
            # Long outages leave recurring bills behind; later ticks advance them further
            if state.status != BillStatus.PAID and state.due_date <= today:
                result.reprocess.append(bill.id)
        return result

    def _run_pass(self, now: datetime, decide: Decision) -> Tuple[List[Tuple[Bill, Transition]], List[BillError]]:
        bills = self.store.find_active_bills(now)

        committed: List[Tuple[Bill, Transition]] = []
        errors: List[BillError] = []
        for bill in bills:
            try:
                validate_bill(bill, strict_frequency=self.strict_frequency)
                applied = self._apply(bill, decide, now)
            except StoreUnavailable:
                raise
            except DomainException as e:
                reason = _error_reason(e)
                bill_error_counter.labels(reason=reason).inc()
                logger.warning(
                    f"Bill transition failed: {e}",
                    extra={"bill_id": bill.id, "reason": reason},
                )
                errors.append(BillError(bill_id=bill.id, reason=f"{reason}: {e}"))
            else:
                if applied is not None:
                    committed.append(applied)
        return committed, errors

    def _apply(self, bill: Bill, decide: Decision, now: datetime) -> Optional[Tuple[Bill, Transition]]:
        """
        Decide and commit one bill's transition.

        Raises:
            ConflictError: The bill changed again between re-read and retry
            BillNotFoundError: The bill disappeared during the retry
        """
        transition = decide(bill)
        if transition is None:
            return None

        if self._commit(bill, transition) is CommitOutcome.CONFLICT:
            logger.info("Bill write conflict, retrying", extra={"bill_id": bill.id, "version": bill.version})
            fresh = self.store.get_bill(bill.id)
            if fresh is None:
                raise BillNotFoundError(f"Bill {bill.id} no longer exists")
            bill = fresh
            transition = decide(bill)
            if transition is None:
                return None
            if self._commit(bill, transition) is CommitOutcome.CONFLICT:
                raise ConflictError(f"Bill {bill.id} write conflict after retry; left for the next tick")

        bill_transition_counter.labels(kind=transition.kind).inc()
        self._notify(bill, transition, now)
        return bill, transition

    def _commit(self, bill: Bill, transition: Transition) -> CommitOutcome:
        return self.store.commit_transition(
            bill.id,
            bill.version,
            transition.new_state,
            transition.transaction,
        )

    # Caller-initiated operations

    def record_payment(
        self,
        bill_id: str,
        amount_cents: int,
        paid_at: Optional[datetime] = None,
        notes: Optional[str] = None,
        update_due_date: bool = True,
    ) -> PaymentReceipt:
        """
        Record a manual payment.

        Payments dated before the current cycle are stored as historical and
        do not touch the bill's due date or status.

        Raises:
            BillNotFoundError: Unknown bill
            ValidationError: Invalid amount or bill data
            ConflictError: Lost two consecutive write races
        """
        bill = self._require_bill(bill_id)
        validate_bill(bill, strict_frequency=self.strict_frequency)
        now = self.clock.now()
        paid_at = paid_at or now

        applied = self._apply(
            bill,
            lambda b: payment_transition(b, amount_cents, paid_at, notes, update_due_date),
            now,
        )
        _, transition = applied
        transaction = transition.transaction

        logger.info(
            "Payment recorded",
            extra={
                "bill_id": bill_id,
                "transaction_id": transaction.id,
                "amount_cents": amount_cents,
                "historical": transaction.historical,
                "next_due_date": transition.new_state.due_date.isoformat(),
            },
        )
        return PaymentReceipt(transaction_id=transaction.id, historical=transaction.historical)

    def reverse_payment(
        self,
        transaction_id: str,
        notes: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> PaymentReceipt:
        """
        Offset a payment with a negative transaction; the bill's cycle is unchanged.

        Raises:
            TransactionNotFoundError: Unknown transaction
            ValidationError: Already reversed, or the transaction is a reversal
        """
        original = self.store.get_transaction(transaction_id)
        if original is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        if any(t.reverses_id == original.id for t in self.store.list_transactions(original.bill_id)):
            raise ValidationError(f"Transaction {transaction_id} is already reversed")

        bill = self._require_bill(original.bill_id)
        validate_bill(bill, strict_frequency=self.strict_frequency)
        now = self.clock.now()
        applied = self._apply(bill, lambda b: reversal_transition(b, original, at or now, notes), now)
        reversal = applied[1].transaction

        logger.info(
            "Payment reversed",
            extra={"bill_id": bill.id, "transaction_id": reversal.id, "reverses_id": original.id},
        )
        return PaymentReceipt(transaction_id=reversal.id, historical=reversal.historical)

    def _require_bill(self, bill_id: str) -> Bill:
        bill = self.store.get_bill(bill_id)
        if bill is None:
            raise BillNotFoundError(f"Bill {bill_id} not found")
        return bill

    # Notifications

    def _notify(self, bill: Bill, transition: Transition, now: datetime) -> None:
        """Schedule delivery without waiting for it"""
        if self.notifier is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, notification skipped", extra={"bill_id": bill.id})
            return

        event = BillEvent(
            kind=transition.kind,
            bill_id=bill.id,
            title=bill.title,
            amount_cents=bill.amount_cents,
            due_date=bill.due_date,
            occurred_at=now,
        )
        task = loop.create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: BillEvent) -> None:
        try:
            await self.notifier.send(event)
        except NotificationFailure as e:
            logger.warning(f"Notification failed: {e}", extra={"bill_id": event.bill_id, "kind": event.kind})
        except Exception:
            logger.exception("Notifier raised unexpectedly", extra={"bill_id": event.bill_id, "kind": event.kind})

    async def drain(self) -> None:
        """Wait for in-flight notifications"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
