# FILE: petcare/schemas/expense.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from petcare.models.expense import ExpenseStatus
from petcare.models.sales import PaymentMethod


class ExpenseCreate(BaseModel):
    branch_id: int
    amount: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    account_id: Optional[int] = None
    account_code: Optional[str] = None
    expense_date: Optional[date] = None
    vendor: Optional[str] = None
    expense_number: Optional[str] = None
    notes: Optional[str] = None


class ExpensePayIn(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_date: Optional[date] = None


class ExpenseOut(BaseModel):
    id: int
    expense_number: str
    branch_id: int
    account_id: int
    expense_date: date
    amount: Decimal
    vendor: Optional[str] = None
    description: str
    status: ExpenseStatus
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    journal_entry_id: Optional[int] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
