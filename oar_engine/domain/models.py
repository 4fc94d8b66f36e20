"""Domain models - pure Python dataclasses representing business entities"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Frequency(str, Enum):
    """How often a bill recurs"""

    ONCE = "once"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    TWICEMONTHLY = "twicemonthly"
    MONTHLY = "monthly"
    BIMONTHLY = "bimonthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class BillStatus(str, Enum):
    """Position of a bill within its current cycle"""

    PENDING = "pending"
    DUE = "due"
    OVERDUE = "overdue"
    PAID = "paid"


class CommitOutcome(str, Enum):
    """Result of a conditional bill write"""

    OK = "ok"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class Tag:
    """Free-form label attached to bills"""

    id: str
    name: str
    slug: str


@dataclass
class Bill:
    """Recurring or one-time obligation as currently persisted"""

    id: str
    title: str
    amount_cents: int
    frequency: str  # Frequency value; unknown strings survive in permissive mode
    due_date: date
    status: BillStatus = BillStatus.PENDING  # unknown stored values stay raw strings until validated
    auto_pay: bool = False
    category_id: Optional[str] = None
    tags: Tuple[Tag, ...] = ()
    archived: bool = False
    last_processed_at: Optional[datetime] = None
    version: int = 1
    created_at: Optional[datetime] = None
    is_variable: bool = False
    end_date: Optional[date] = None

    @property
    def is_recurring(self) -> bool:
        return self.frequency != Frequency.ONCE

    @property
    def tag_slugs(self) -> frozenset:
        return frozenset(t.slug for t in self.tags)


@dataclass(frozen=True)
class BillState:
    """Mutable portion of a bill written by a transition"""

    status: BillStatus
    due_date: date
    last_processed_at: Optional[datetime] = None


@dataclass(frozen=True)
class Transaction:
    """Payment record; immutable once created"""

    bill_id: str
    amount_cents: int
    paid_at: datetime
    notes: Optional[str] = None
    historical: bool = False
    reverses_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass(frozen=True)
class CycleWindow:
    """Boundaries of a bill's current cycle (not persisted)"""

    cycle_start: date
    cycle_end: date

    def contains(self, day: date) -> bool:
        return self.cycle_start <= day <= self.cycle_end


@dataclass(frozen=True)
class Transition:
    """Decision produced by the state machine for one bill"""

    kind: str  # "due" | "overdue" | "autopay" | "payment" | "reversal"
    new_state: BillState
    transaction: Optional[Transaction] = None


@dataclass(frozen=True)
class BillEvent:
    """Notification payload emitted after a committed transition"""

    kind: str
    bill_id: str
    title: str
    amount_cents: int
    due_date: date
    occurred_at: datetime

    def to_payload(self) -> Dict[str, object]:
        return {
            "event": f"BILL_{self.kind.upper()}",
            "bill_id": self.bill_id,
            "title": self.title,
            "amount_cents": self.amount_cents,
            "due_date": self.due_date.isoformat(),
            "occurred_at": self.occurred_at.isoformat(),
        }


@dataclass(frozen=True)
class BillError:
    """Per-bill failure collected during a pass"""

    bill_id: str
    reason: str


@dataclass
class PassResult:
    """Outcome of one sweep over the active bills"""

    updated: int = 0
    due_updated: int = 0
    errors: List[BillError] = field(default_factory=list)
    reprocess: List[str] = field(default_factory=list)


@dataclass
class TickResult:
    """Outcome of a scheduler tick"""

    reference_time: Optional[datetime] = None
    overdue_updated: int = 0
    due_updated: int = 0
    autopay_processed: int = 0
    errors: List[BillError] = field(default_factory=list)
    reprocess: List[str] = field(default_factory=list)
    aborted: bool = False


@dataclass
class CatchUpResult(TickResult):
    """Outcome of the startup catch-up pass"""

    watermark_floor: Optional[datetime] = None
    gap: Optional[timedelta] = None
    missed_ticks: int = 0
    completed_at: Optional[datetime] = None
    skipped: bool = False
    failed: bool = False


@dataclass(frozen=True)
class PaymentReceipt:
    """Returned to callers recording a payment"""

    transaction_id: str
    historical: bool


@dataclass(frozen=True)
class ForecastOccurrence:
    """Projected due date of a bill inside a forecast window"""

    bill_id: str
    title: str
    category_id: Optional[str]
    projected_due_date: date
    amount_cents: int
    display_amount_cents: int
    is_estimated: bool
    frequency: str
    amortized_monthly_cents: Optional[int] = None


@dataclass
class ForecastSummary:
    """Aggregated projected cash flow"""

    total_due_cents: int = 0
    total_to_save_cents: int = 0
    grand_total_cents: int = 0
    count: int = 0
    by_category: Dict[str, int] = field(default_factory=dict)


@dataclass
class Forecast:
    """Projection result"""

    occurrences: List[ForecastOccurrence]
    summary: ForecastSummary


@dataclass(frozen=True)
class MonthlyForecastTotal:
    """Per-month totals used for charting a multi-month range"""

    month: str  # YYYY-MM
    month_label: str  # e.g. "Mar"
    total_due_cents: int
    total_to_save_cents: int
    grand_total_cents: int
