"""Data access layer for bills, transactions and the scheduler watermark"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Iterable, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from oar_engine.domain.billing_cycle import to_utc_day
from oar_engine.domain.exceptions import StoreError, StoreUnavailable
from oar_engine.domain.models import Bill, BillState, BillStatus, CommitOutcome, Tag, Transaction
from oar_engine.infrastructure.database.models import (
    BillCategoryRecord,
    BillRecord,
    SchedulerStateRecord,
    TagRecord,
    TransactionRecord,
)

logger = logging.getLogger(__name__)

WATERMARK_ROW_ID = 1


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize to aware UTC; naive values coming back from the database are UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _status(value: str):
    """BillStatus for known values; unknown strings are kept so validation can reject the bill"""
    try:
        return BillStatus(value)
    except ValueError:
        return value


def to_bill(record: BillRecord) -> Bill:
    return Bill(
        id=record.id,
        title=record.title,
        amount_cents=record.amount_cents,
        frequency=record.frequency,
        due_date=record.due_date,
        status=_status(record.status),
        auto_pay=record.auto_pay,
        category_id=record.category_id,
        tags=tuple(Tag(id=t.id, name=t.name, slug=t.slug) for t in record.tags),
        archived=record.archived,
        last_processed_at=as_utc(record.last_processed_at),
        version=record.version,
        created_at=as_utc(record.created_at),
        is_variable=record.is_variable,
        end_date=record.end_date,
    )


def to_transaction(record: TransactionRecord) -> Transaction:
    return Transaction(
        id=record.id,
        bill_id=record.bill_id,
        amount_cents=record.amount_cents,
        paid_at=as_utc(record.paid_at),
        notes=record.notes,
        historical=record.historical,
        reverses_id=record.reverses_id,
    )


class SqlBillStore:
    """
    Bill store backed by SQLAlchemy.

    Every engine write is a conditional UPDATE on (id, version); the
    transaction row, if any, is inserted in the same database transaction.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """Open a session, translating driver failures into domain errors"""
        try:
            with self.session_factory() as session:
                yield session
        except OperationalError as e:
            raise StoreUnavailable(f"Database unavailable: {e.orig}") from e
        except DBAPIError as e:
            if e.connection_invalidated:
                raise StoreUnavailable(f"Database connection lost: {e.orig}") from e
            raise StoreError(f"Database error: {e.orig}") from e
        except SQLAlchemyError as e:
            raise StoreError(f"Database error: {e}") from e

    # Reads

    def find_active_bills(self, as_of: datetime) -> List[Bill]:
        """Unarchived, unpaid bills due on or before the UTC day of `as_of`"""
        today = to_utc_day(as_of)
        with self._session() as session:
            records = (
                session.query(BillRecord)
                .filter(
                    BillRecord.archived.is_(False),
                    BillRecord.status != BillStatus.PAID.value,
                    BillRecord.due_date <= today,
                )
                .order_by(BillRecord.due_date, BillRecord.id)
                .all()
            )
            return [to_bill(r) for r in records]

    def list_bills(self, include_archived: bool = False) -> List[Bill]:
        with self._session() as session:
            query = session.query(BillRecord)
            if not include_archived:
                query = query.filter(BillRecord.archived.is_(False))
            return [to_bill(r) for r in query.order_by(BillRecord.due_date, BillRecord.id).all()]

    def get_bill(self, bill_id: str) -> Optional[Bill]:
        with self._session() as session:
            record = session.get(BillRecord, bill_id)
            return to_bill(record) if record else None

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        with self._session() as session:
            record = session.get(TransactionRecord, transaction_id)
            return to_transaction(record) if record else None

    def list_transactions(self, bill_id: str) -> List[Transaction]:
        with self._session() as session:
            records = (
                session.query(TransactionRecord)
                .filter(TransactionRecord.bill_id == bill_id)
                .order_by(TransactionRecord.paid_at, TransactionRecord.created_at)
                .all()
            )
            return [to_transaction(r) for r in records]

    def earliest_bill_created_at(self) -> Optional[datetime]:
        with self._session() as session:
            return as_utc(session.query(func.min(BillRecord.created_at)).scalar())

    # Writes

    def commit_transition(
        self,
        bill_id: str,
        expected_version: int,
        new_state: BillState,
        transaction: Optional[Transaction] = None,
    ) -> CommitOutcome:
        """
        Apply a transition if nobody else wrote the bill since it was read.

        Returns:
            CommitOutcome.CONFLICT when the version no longer matches
        """
        with self._session() as session:
            with session.begin():
                updated = (
                    session.query(BillRecord)
                    .filter(BillRecord.id == bill_id, BillRecord.version == expected_version)
                    .update(
                        {
                            BillRecord.status: BillStatus(new_state.status).value,
                            BillRecord.due_date: new_state.due_date,
                            BillRecord.last_processed_at: as_utc(new_state.last_processed_at),
                            BillRecord.version: BillRecord.version + 1,
                        },
                        synchronize_session=False,
                    )
                )
                if updated == 0:
                    return CommitOutcome.CONFLICT

                if transaction is not None:
                    session.add(
                        TransactionRecord(
                            id=transaction.id,
                            bill_id=bill_id,
                            amount_cents=transaction.amount_cents,
                            paid_at=as_utc(transaction.paid_at),
                            notes=transaction.notes,
                            historical=transaction.historical,
                            reverses_id=transaction.reverses_id,
                        )
                    )
        return CommitOutcome.OK

    def read_watermark(self) -> Optional[datetime]:
        with self._session() as session:
            state = session.get(SchedulerStateRecord, WATERMARK_ROW_ID)
            return as_utc(state.last_run_at) if state else None

    def write_watermark(self, last_run_at: datetime) -> None:
        """Advance the watermark; older values never overwrite newer ones"""
        last_run_at = as_utc(last_run_at)
        with self._session() as session:
            with session.begin():
                state = session.get(SchedulerStateRecord, WATERMARK_ROW_ID)
                if state is None:
                    session.add(SchedulerStateRecord(id=WATERMARK_ROW_ID, last_run_at=last_run_at))
                elif state.last_run_at is None or as_utc(state.last_run_at) < last_run_at:
                    state.last_run_at = last_run_at

    # Seeding

    def add_category(self, name: str, icon: Optional[str] = None) -> str:
        with self._session() as session:
            with session.begin():
                category = BillCategoryRecord(name=name, icon=icon)
                session.add(category)
                session.flush()
                return category.id

    def add_bill(
        self,
        title: str,
        amount_cents: int,
        due_date: date,
        frequency: str = "monthly",
        status: str = "pending",
        auto_pay: bool = False,
        category_id: Optional[str] = None,
        tags: Iterable[str] = (),
        archived: bool = False,
        is_variable: bool = False,
        end_date: Optional[date] = None,
        created_at: Optional[datetime] = None,
        last_processed_at: Optional[datetime] = None,
    ) -> Bill:
        """Insert a bill; tags are slugs, created on first use"""
        with self._session() as session:
            with session.begin():
                record = BillRecord(
                    title=title,
                    amount_cents=amount_cents,
                    frequency=getattr(frequency, "value", frequency),
                    due_date=due_date,
                    status=getattr(status, "value", status),
                    auto_pay=auto_pay,
                    category_id=category_id,
                    archived=archived,
                    is_variable=is_variable,
                    end_date=end_date,
                    created_at=as_utc(created_at) or datetime.now(timezone.utc),
                    last_processed_at=as_utc(last_processed_at),
                    version=1,
                )
                record.tags = [self._get_or_create_tag(session, slug) for slug in tags]
                session.add(record)
                session.flush()
                bill = to_bill(record)
        logger.info("Bill created", extra={"bill_id": bill.id, "frequency": bill.frequency})
        return bill

    @staticmethod
    def _get_or_create_tag(session: Session, slug: str) -> TagRecord:
        tag = session.query(TagRecord).filter(TagRecord.slug == slug).first()
        if tag is None:
            tag = TagRecord(name=slug.replace("-", " ").title(), slug=slug)
            session.add(tag)
            session.flush()
        return tag
