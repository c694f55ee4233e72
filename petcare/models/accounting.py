# FILE: petcare/models/accounting.py
from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Numeric, ForeignKey,
    Text, Enum, CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from petcare.db.base import Base

Money = Numeric(14, 2)


# -------------------------
# Enums
# -------------------------
class AccountType(str, enum.Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


class NormalBalance(str, enum.Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class JournalStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    POSTED = "POSTED"
    VOIDED = "VOIDED"


class SourceType(str, enum.Enum):
    SALE = "SALE"
    PURCHASE = "PURCHASE"
    CLINIC = "CLINIC"
    HOTEL = "HOTEL"
    PAYMENT = "PAYMENT"
    EXPENSE = "EXPENSE"
    ADJUSTMENT = "ADJUSTMENT"
    INITIAL_STOCK = "INITIAL_STOCK"
    BANK = "BANK"
    SUPPLIER_PAYMENT = "SUPPLIER_PAYMENT"
    OPENING_BALANCE = "OPENING_BALANCE"
    MANUAL = "MANUAL"
    YEAR_END_CLOSE = "YEAR_END_CLOSE"


class PeriodStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    LOCKED = "LOCKED"


# -------------------------
# Chart of accounts
# -------------------------
class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        Index("ix_accounts_type", "account_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    account_type = Column(Enum(AccountType, name="account_type"), nullable=False)
    normal_balance = Column(Enum(NormalBalance, name="normal_balance"), nullable=False)

    # Header accounts aggregate children and never take journal lines
    is_header = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    parent_id = Column(Integer, ForeignKey("accounts.id"), nullable=True, index=True)
    level = Column(Integer, nullable=False, default=1)
    description = Column(String(500), default="")

    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    parent = relationship("Account", remote_side=[id], back_populates="children")
    children = relationship("Account", back_populates="parent")
    lines = relationship("JournalEntryLine", back_populates="account")


# -------------------------
# Journal
# -------------------------
class JournalEntry(Base):
    __tablename__ = "journal_entries"
    __table_args__ = (
        UniqueConstraint("journal_number", name="uq_journal_entries_number"),
        Index("ix_journal_source", "source_type", "source_id"),
        Index("ix_journal_status_date", "status", "journal_date"),
    )

    id = Column(Integer, primary_key=True)
    journal_number = Column(String(50), nullable=False, index=True)
    journal_date = Column(Date, nullable=False, index=True)
    description = Column(String(500), nullable=False, default="")

    source_type = Column(Enum(SourceType, name="journal_source_type"), nullable=False, default=SourceType.MANUAL)
    source_id = Column(Integer, nullable=True)

    status = Column(Enum(JournalStatus, name="journal_status"), nullable=False, default=JournalStatus.DRAFT)

    total_debit = Column(Money, nullable=False, default=Decimal("0.00"))
    total_credit = Column(Money, nullable=False, default=Decimal("0.00"))

    posted_at = Column(DateTime, nullable=True)
    voided_at = Column(DateTime, nullable=True)
    void_reason = Column(String(500), nullable=True)

    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    lines = relationship(
        "JournalEntryLine",
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="JournalEntryLine.sort_order",
    )


class JournalEntryLine(Base):
    __tablename__ = "journal_entry_lines"
    __table_args__ = (
        CheckConstraint("debit_amount >= 0 AND credit_amount >= 0", name="ck_journal_line_non_negative"),
        Index("ix_journal_lines_account", "account_id"),
    )

    id = Column(Integer, primary_key=True)
    journal_entry_id = Column(
        Integer, ForeignKey("journal_entries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)

    description = Column(String(500), nullable=False, default="")
    debit_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    credit_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    sort_order = Column(Integer, nullable=False, default=1)

    entry = relationship("JournalEntry", back_populates="lines")
    account = relationship("Account", back_populates="lines")


# -------------------------
# Periods
# -------------------------
class AccountingPeriod(Base):
    __tablename__ = "accounting_periods"
    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_accounting_period_year_month"),
    )

    id = Column(Integer, primary_key=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    period_name = Column(String(50), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    status = Column(Enum(PeriodStatus, name="accounting_period_status"), nullable=False, default=PeriodStatus.OPEN)
    closed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    balances = relationship("PeriodBalance", back_populates="period", cascade="all, delete-orphan")


class PeriodBalance(Base):
    """
    Snapshot taken when a period is closed.
    branch_id NULL = consolidated row.
    """
    __tablename__ = "period_balances"
    __table_args__ = (
        Index("ix_period_balances_period_account", "period_id", "account_id"),
    )

    id = Column(Integer, primary_key=True)
    period_id = Column(Integer, ForeignKey("accounting_periods.id", ondelete="CASCADE"), nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)

    opening_balance = Column(Money, nullable=False, default=Decimal("0.00"))
    debit_total = Column(Money, nullable=False, default=Decimal("0.00"))
    credit_total = Column(Money, nullable=False, default=Decimal("0.00"))
    closing_balance = Column(Money, nullable=False, default=Decimal("0.00"))

    period = relationship("AccountingPeriod", back_populates="balances")
    account = relationship("Account")
