# FILE: petcare/schemas/bank.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from petcare.models.bank import BankTransactionType, ReconciliationStatus
from petcare.models.sales import PaymentMethod


class BankAccountCreate(BaseModel):
    account_name: str = Field(..., min_length=1)
    bank_name: str = Field(..., min_length=1)
    account_number: str = Field(..., min_length=1)
    # One of the two identifies the linked asset account
    account_id: Optional[int] = None
    account_code: Optional[str] = None
    branch_name: Optional[str] = None
    initial_balance: Decimal = Field(Decimal("0"), ge=0)
    currency: str = "IDR"
    payment_methods: Optional[List[PaymentMethod]] = None
    opening_date: Optional[date] = None
    notes: Optional[str] = None


class BankAccountUpdate(BaseModel):
    account_name: Optional[str] = None
    branch_name: Optional[str] = None
    is_active: Optional[bool] = None
    payment_methods: Optional[List[PaymentMethod]] = None
    notes: Optional[str] = None


class BankAccountOut(BaseModel):
    id: int
    account_name: str
    bank_name: str
    account_number: str
    branch_name: Optional[str] = None
    account_id: int
    initial_balance: Decimal
    current_balance: Decimal
    currency: str
    method_list: List[str] = []
    is_active: bool
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BankTransactionIn(BaseModel):
    bank_account_id: int
    transaction_type: BankTransactionType
    amount: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    transaction_date: Optional[date] = None
    reference_number: Optional[str] = None
    counter_account_id: Optional[int] = None
    counter_account_code: Optional[str] = None
    bank_statement_date: Optional[date] = None
    notes: Optional[str] = None
    auto_journal: bool = True


class BankTransactionOut(BaseModel):
    id: int
    bank_account_id: int
    transaction_date: date
    transaction_type: BankTransactionType
    amount: Decimal
    reference_number: Optional[str] = None
    description: str
    counter_account_id: Optional[int] = None
    journal_entry_id: Optional[int] = None
    purchase_order_id: Optional[int] = None
    reconciliation_status: ReconciliationStatus
    reconciled_at: Optional[datetime] = None
    bank_statement_date: Optional[date] = None
    void_reason: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ReconcileIn(BaseModel):
    bank_statement_date: Optional[date] = None


class BulkReconcileIn(BaseModel):
    transaction_ids: List[int] = Field(..., min_length=1)
    bank_statement_date: date


class VoidIn(BaseModel):
    reason: str = "Bank transaction voided"


class SupplierPaymentIn(BaseModel):
    # Empty amount settles everything still owed
    amount: Optional[Decimal] = Field(None, gt=0)
    bank_account_id: Optional[int] = None
    payment_date: Optional[date] = None
    reference_number: Optional[str] = None
