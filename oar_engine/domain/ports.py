"""Collaborator interfaces the engine depends on"""

from datetime import datetime
from typing import List, Optional, Protocol

from oar_engine.domain.models import Bill, BillEvent, BillState, CommitOutcome, Transaction


class BillStore(Protocol):
    """Transactional store for bills, transactions and the scheduler watermark"""

    def find_active_bills(self, as_of: datetime) -> List[Bill]:
        """Unarchived, unpaid bills due on or before the UTC day of `as_of`"""
        ...

    def list_bills(self, include_archived: bool = False) -> List[Bill]:
        ...

    def get_bill(self, bill_id: str) -> Optional[Bill]:
        ...

    def commit_transition(
        self,
        bill_id: str,
        expected_version: int,
        new_state: BillState,
        transaction: Optional[Transaction] = None,
    ) -> CommitOutcome:
        """Write state (and transaction) only if the bill is still at `expected_version`"""
        ...

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        ...

    def list_transactions(self, bill_id: str) -> List[Transaction]:
        ...

    def read_watermark(self) -> Optional[datetime]:
        ...

    def write_watermark(self, last_run_at: datetime) -> None:
        ...

    def earliest_bill_created_at(self) -> Optional[datetime]:
        ...


class Notifier(Protocol):
    """Best-effort delivery of bill events"""

    async def send(self, event: BillEvent) -> None:
        ...
