"""SQLAlchemy ORM models for bills, payments and scheduler state"""

import uuid

from sqlalchemy import BigInteger, Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Table, Text
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


bills_to_tags = Table(
    "bills_to_tags",
    Base.metadata,
    Column("bill_id", String(36), ForeignKey("bills.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class BillCategoryRecord(Base):
    """Category a bill belongs to"""

    __tablename__ = "bill_categories"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    icon = Column(Text, nullable=True)


class TagRecord(Base):
    """User-defined tag"""

    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class BillRecord(Base):
    """Bill row; `version` guards every engine write"""

    __tablename__ = "bills"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(Text, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    frequency = Column(Text, nullable=False, default="monthly")
    due_date = Column(Date, nullable=False, index=True)
    status = Column(Text, nullable=False, default="pending", index=True)
    auto_pay = Column(Boolean, nullable=False, default=False)
    is_variable = Column(Boolean, nullable=False, default=False)
    end_date = Column(Date, nullable=True)
    category_id = Column(String(36), ForeignKey("bill_categories.id"), nullable=True)
    archived = Column(Boolean, nullable=False, default=False)
    last_processed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    category = relationship("BillCategoryRecord")
    tags = relationship("TagRecord", secondary=bills_to_tags, lazy="selectin", order_by="TagRecord.name")
    transactions = relationship("TransactionRecord", back_populates="bill", cascade="all, delete-orphan")


class TransactionRecord(Base):
    """Payment against a bill; rows are never updated"""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=_new_id)
    bill_id = Column(String(36), ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True)
    amount_cents = Column(BigInteger, nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=False)
    notes = Column(Text, nullable=True)
    historical = Column(Boolean, nullable=False, default=False)
    reverses_id = Column(String(36), ForeignKey("transactions.id"), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    bill = relationship("BillRecord", back_populates="transactions")


class SchedulerStateRecord(Base):
    """Process-wide singleton row holding the scheduler watermark"""

    __tablename__ = "scheduler_state"

    id = Column(Integer, primary_key=True, default=1)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
