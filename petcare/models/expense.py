# FILE: petcare/models/expense.py
from __future__ import annotations

import enum
from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Numeric, ForeignKey, Text, Enum,
    UniqueConstraint, Index
)
from sqlalchemy.orm import relationship

from petcare.db.base import Base

Money = Numeric(14, 2)


class ExpenseStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PAID = "PAID"


class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (
        UniqueConstraint("expense_number", name="uq_expenses_number"),
        Index("ix_expenses_branch_date", "branch_id", "expense_date"),
    )

    id = Column(Integer, primary_key=True)
    expense_number = Column(String(50), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False)
    # Postable EXPENSE account debited when paid
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)

    expense_date = Column(Date, nullable=False, default=date.today)
    amount = Column(Money, nullable=False, default=Decimal("0.00"))
    vendor = Column(String(255), nullable=True)
    description = Column(String(500), nullable=False, default="")

    status = Column(Enum(ExpenseStatus, name="expense_status"), nullable=False, default=ExpenseStatus.DRAFT)
    payment_method = Column(String(30), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)

    notes = Column(Text, nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    account = relationship("Account")
    journal_entry = relationship("JournalEntry")
