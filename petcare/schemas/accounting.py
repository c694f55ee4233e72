# FILE: petcare/schemas/accounting.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from petcare.models.accounting import AccountType, JournalStatus, NormalBalance, PeriodStatus, SourceType


# -------------------------
# Chart of accounts
# -------------------------
class AccountCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=255)
    account_type: AccountType
    parent_id: Optional[int] = None
    is_header: bool = False
    normal_balance: Optional[NormalBalance] = None
    description: str = ""


class AccountUpdate(BaseModel):
    name: Optional[str] = None
    is_active: Optional[bool] = None
    is_header: Optional[bool] = None
    description: Optional[str] = None


class AccountOut(BaseModel):
    id: int
    code: str
    name: str
    account_type: AccountType
    normal_balance: NormalBalance
    is_header: bool
    is_active: bool
    parent_id: Optional[int] = None
    level: int
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# -------------------------
# Journal
# -------------------------
class JournalLineIn(BaseModel):
    account_id: Optional[int] = None
    account_code: Optional[str] = None
    debit_amount: Decimal = Field(Decimal("0"), ge=0)
    credit_amount: Decimal = Field(Decimal("0"), ge=0)
    description: str = ""
    branch_id: Optional[int] = None


class JournalEntryCreate(BaseModel):
    journal_date: date
    description: str = Field(..., min_length=1)
    journal_number: Optional[str] = None
    lines: List[JournalLineIn] = Field(..., min_length=2)


class JournalEntryUpdate(BaseModel):
    journal_date: Optional[date] = None
    description: Optional[str] = None
    lines: Optional[List[JournalLineIn]] = None


class VoidIn(BaseModel):
    reason: str = Field(..., min_length=1)


class JournalLineOut(BaseModel):
    id: int
    account_id: int
    branch_id: Optional[int] = None
    description: str
    debit_amount: Decimal
    credit_amount: Decimal
    sort_order: int

    model_config = ConfigDict(from_attributes=True)


class JournalEntryOut(BaseModel):
    id: int
    journal_number: str
    journal_date: date
    description: str
    source_type: SourceType
    source_id: Optional[int] = None
    status: JournalStatus
    total_debit: Decimal
    total_credit: Decimal
    posted_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None
    void_reason: Optional[str] = None
    lines: List[JournalLineOut] = []

    model_config = ConfigDict(from_attributes=True)


# -------------------------
# Periods
# -------------------------
class PeriodCreate(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    notes: Optional[str] = None


class YearEndCloseIn(BaseModel):
    year: int = Field(..., ge=2000, le=2100)


class PeriodOut(BaseModel):
    id: int
    year: int
    month: int
    period_name: str
    start_date: date
    end_date: date
    status: PeriodStatus
    closed_at: Optional[datetime] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PeriodBalanceOut(BaseModel):
    id: int
    period_id: int
    account_id: int
    branch_id: Optional[int] = None
    opening_balance: Decimal
    debit_total: Decimal
    credit_total: Decimal
    closing_balance: Decimal

    model_config = ConfigDict(from_attributes=True)
