from __future__ import annotations

import enum
from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Numeric, ForeignKey, Text, Enum,
    Index
)
from sqlalchemy.orm import relationship

from petcare.db.base import Base

Money = Numeric(14, 2)


class BankTransactionType(str, enum.Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    FEE = "FEE"
    INTEREST = "INTEREST"


# Money coming into the account; everything else goes out
INFLOW_TYPES = frozenset({
    BankTransactionType.DEPOSIT,
    BankTransactionType.TRANSFER_IN,
    BankTransactionType.INTEREST,
})


class ReconciliationStatus(str, enum.Enum):
    UNRECONCILED = "UNRECONCILED"
    RECONCILED = "RECONCILED"
    VOID = "VOID"


class BankAccount(Base):
    __tablename__ = "bank_accounts"
    __table_args__ = (
        Index("ix_bank_accounts_number", "account_number"),
    )

    id = Column(Integer, primary_key=True)
    account_name = Column(String(255), nullable=False)
    bank_name = Column(String(100), nullable=False)
    account_number = Column(String(50), nullable=False)
    branch_name = Column(String(255), nullable=True)

    # Postable asset account in the chart (e.g. 1-111 Bank BCA)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)

    initial_balance = Column(Money, nullable=False, default=Decimal("0.00"))
    current_balance = Column(Money, nullable=False, default=Decimal("0.00"))
    currency = Column(String(3), nullable=False, default="IDR")

    # Comma separated non-cash methods received into this account (QRIS,DEBIT_CARD)
    payment_methods = Column(String(100), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    account = relationship("Account")
    transactions = relationship(
        "BankTransaction",
        back_populates="bank_account",
        order_by="BankTransaction.id",
    )

    @property
    def method_list(self):
        return [m.strip().upper() for m in (self.payment_methods or "").split(",") if m.strip()]


class BankTransaction(Base):
    __tablename__ = "bank_transactions"
    __table_args__ = (
        Index("ix_bank_tx_account_date", "bank_account_id", "transaction_date"),
        Index("ix_bank_tx_status", "reconciliation_status"),
    )

    id = Column(Integer, primary_key=True)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=False)

    transaction_date = Column(Date, nullable=False, default=date.today)
    transaction_type = Column(Enum(BankTransactionType, name="bank_transaction_type"), nullable=False)
    amount = Column(Money, nullable=False)
    reference_number = Column(String(100), nullable=True)
    description = Column(String(500), nullable=False, default="")

    # Other side of the journal; defaults per transaction type
    counter_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)
    # Set when the withdrawal settles a supplier invoice
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=True, index=True)

    reconciliation_status = Column(
        Enum(ReconciliationStatus, name="reconciliation_status"),
        nullable=False,
        default=ReconciliationStatus.UNRECONCILED,
    )
    reconciled_at = Column(DateTime, nullable=True)
    bank_statement_date = Column(Date, nullable=True)
    void_reason = Column(String(255), nullable=True)

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    bank_account = relationship("BankAccount", back_populates="transactions")
    counter_account = relationship("Account")
    journal_entry = relationship("JournalEntry")

    @property
    def is_inflow(self) -> bool:
        return self.transaction_type in INFLOW_TYPES

    @property
    def signed_amount(self) -> Decimal:
        amount = Decimal(self.amount or 0)
        return amount if self.is_inflow else -amount
