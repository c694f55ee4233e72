# FILE: petcare/services/periods.py
from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from petcare.models.accounting import (
    Account,
    AccountingPeriod,
    AccountType,
    JournalEntry,
    JournalEntryLine,
    JournalStatus,
    NormalBalance,
    PeriodBalance,
    PeriodStatus,
    SourceType,
)
from petcare.services.account_codes import ACCOUNTS
from petcare.services.errors import (
    ConflictStateError,
    DuplicateEntryError,
    NotFoundError,
    ValidationError,
)
from petcare.services.line_calc import money2
from petcare.utils.timezone import now_local

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
)

ZERO = Decimal("0.00")


# -------------------------
# Guards used by the journal engine
# -------------------------
def get_period_for_date(db: Session, d: date) -> Optional[AccountingPeriod]:
    return (
        db.query(AccountingPeriod)
        .filter(AccountingPeriod.year == d.year, AccountingPeriod.month == d.month)
        .first()
    )


def assert_postable(db: Session, d: date) -> None:
    period = get_period_for_date(db, d)
    if period and period.status in (PeriodStatus.CLOSED, PeriodStatus.LOCKED):
        raise ConflictStateError(
            f"Cannot post to {period.status.value.lower()} period {period.period_name}"
        )


def assert_voidable(db: Session, d: date) -> None:
    period = get_period_for_date(db, d)
    if period and period.status == PeriodStatus.LOCKED:
        raise ConflictStateError(f"Cannot void entries in locked period {period.period_name}")


# -------------------------
# Lifecycle
# -------------------------
def create_period(db: Session, year: int, month: int, notes: Optional[str] = None) -> AccountingPeriod:
    if month < 1 or month > 12:
        raise ValidationError("Month must be between 1 and 12")
    if year < 1900:
        raise ValidationError("Invalid year")

    exists = (
        db.query(AccountingPeriod.id)
        .filter(AccountingPeriod.year == year, AccountingPeriod.month == month)
        .first()
    )
    if exists:
        raise DuplicateEntryError(f"Period {year}-{month:02d} already exists")

    last_day = calendar.monthrange(year, month)[1]
    period = AccountingPeriod(
        year=year,
        month=month,
        period_name=f"{MONTH_NAMES[month - 1]} {year}",
        start_date=date(year, month, 1),
        end_date=date(year, month, last_day),
        status=PeriodStatus.OPEN,
        notes=notes,
    )
    db.add(period)
    db.flush()
    return period


def get_period(db: Session, period_id: int, for_update: bool = False) -> AccountingPeriod:
    q = db.query(AccountingPeriod).filter(AccountingPeriod.id == period_id)
    if for_update:
        q = q.with_for_update()
    period = q.first()
    if not period:
        raise NotFoundError("Period not found")
    return period


def list_periods(db: Session, year: Optional[int] = None) -> List[AccountingPeriod]:
    q = db.query(AccountingPeriod)
    if year:
        q = q.filter(AccountingPeriod.year == year)
    return q.order_by(AccountingPeriod.year.desc(), AccountingPeriod.month.desc()).all()


def _previous(db: Session, period: AccountingPeriod) -> Optional[AccountingPeriod]:
    y, m = (period.year, period.month - 1) if period.month > 1 else (period.year - 1, 12)
    return (
        db.query(AccountingPeriod)
        .filter(AccountingPeriod.year == y, AccountingPeriod.month == m)
        .first()
    )


def _signed(normal: NormalBalance, debit_total: Decimal, credit_total: Decimal) -> Decimal:
    if normal == NormalBalance.DEBIT:
        return debit_total - credit_total
    return credit_total - debit_total


def _period_activity(db: Session, start: date, end: date) -> Dict[Tuple[int, Optional[int]], Tuple[Decimal, Decimal]]:
    """(account_id, branch_id) -> (debit, credit) for posted lines in range."""
    rows = (
        db.query(
            JournalEntryLine.account_id,
            JournalEntryLine.branch_id,
            func.coalesce(func.sum(JournalEntryLine.debit_amount), 0),
            func.coalesce(func.sum(JournalEntryLine.credit_amount), 0),
        )
        .join(JournalEntry, JournalEntry.id == JournalEntryLine.journal_entry_id)
        .filter(
            JournalEntry.status == JournalStatus.POSTED,
            JournalEntry.deleted_at.is_(None),
            JournalEntry.journal_date >= start,
            JournalEntry.journal_date <= end,
        )
        .group_by(JournalEntryLine.account_id, JournalEntryLine.branch_id)
        .all()
    )
    return {(acc_id, branch_id): (money2(dr), money2(cr)) for acc_id, branch_id, dr, cr in rows}


def _write_snapshots(db: Session, period: AccountingPeriod) -> int:
    prev = _previous(db, period)
    openings: Dict[Tuple[int, Optional[int]], Decimal] = {}
    if prev:
        for b in db.query(PeriodBalance).filter(PeriodBalance.period_id == prev.id).all():
            openings[(b.account_id, b.branch_id)] = money2(b.closing_balance)

    activity = _period_activity(db, period.start_date, period.end_date)

    consolidated: Dict[int, List[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
    for (acc_id, _branch), (dr, cr) in activity.items():
        consolidated[acc_id][0] += dr
        consolidated[acc_id][1] += cr

    accounts = (
        db.query(Account)
        .filter(Account.deleted_at.is_(None), Account.is_header.is_(False))
        .all()
    )

    written = 0
    for acc in accounts:
        dr, cr = consolidated.get(acc.id, (ZERO, ZERO))
        opening = openings.get((acc.id, None), ZERO)
        db.add(PeriodBalance(
            period_id=period.id,
            account_id=acc.id,
            branch_id=None,
            opening_balance=opening,
            debit_total=dr,
            credit_total=cr,
            closing_balance=money2(opening + _signed(acc.normal_balance, dr, cr)),
        ))
        written += 1

        branch_ids = {
            branch_id for (a_id, branch_id) in list(activity) + list(openings)
            if a_id == acc.id and branch_id is not None
        }
        for branch_id in sorted(branch_ids):
            b_dr, b_cr = activity.get((acc.id, branch_id), (ZERO, ZERO))
            b_open = openings.get((acc.id, branch_id), ZERO)
            if b_dr == 0 and b_cr == 0 and b_open == 0:
                continue
            db.add(PeriodBalance(
                period_id=period.id,
                account_id=acc.id,
                branch_id=branch_id,
                opening_balance=b_open,
                debit_total=b_dr,
                credit_total=b_cr,
                closing_balance=money2(b_open + _signed(acc.normal_balance, b_dr, b_cr)),
            ))
            written += 1

    db.flush()
    return written


def close_period(db: Session, period_id: int) -> AccountingPeriod:
    period = get_period(db, period_id, for_update=True)
    if period.status == PeriodStatus.CLOSED:
        raise ConflictStateError("Period already closed")
    if period.status == PeriodStatus.LOCKED:
        raise ConflictStateError("Period is locked. Cannot close.")

    drafts = (
        db.query(func.count(JournalEntry.id))
        .filter(
            JournalEntry.status == JournalStatus.DRAFT,
            JournalEntry.deleted_at.is_(None),
            JournalEntry.journal_date >= period.start_date,
            JournalEntry.journal_date <= period.end_date,
        )
        .scalar()
    )
    if drafts:
        raise ConflictStateError(
            f"Cannot close period with {drafts} draft journal entries. Post or delete them first."
        )

    # A previous close/reopen cycle may have left rows behind
    db.query(PeriodBalance).filter(PeriodBalance.period_id == period.id).delete(synchronize_session=False)
    written = _write_snapshots(db, period)

    period.status = PeriodStatus.CLOSED
    period.closed_at = now_local()
    db.flush()
    logger.info("Period %s closed (%s balance rows)", period.period_name, written)
    return period


def lock_period(db: Session, period_id: int) -> AccountingPeriod:
    period = get_period(db, period_id, for_update=True)
    if period.status != PeriodStatus.CLOSED:
        raise ConflictStateError("Period must be closed before locking")
    period.status = PeriodStatus.LOCKED
    db.flush()
    logger.info("Period %s locked", period.period_name)
    return period


def reopen_period(db: Session, period_id: int) -> AccountingPeriod:
    period = get_period(db, period_id, for_update=True)
    if period.status == PeriodStatus.OPEN:
        raise ConflictStateError("Period is already open")

    later_closed = (
        db.query(AccountingPeriod.id)
        .filter(
            (AccountingPeriod.year > period.year)
            | ((AccountingPeriod.year == period.year) & (AccountingPeriod.month > period.month)),
            AccountingPeriod.status.in_([PeriodStatus.CLOSED, PeriodStatus.LOCKED]),
        )
        .first()
    )
    if later_closed:
        raise ConflictStateError(
            "Cannot reopen period while future periods are closed. Reopen them in reverse order."
        )

    db.query(PeriodBalance).filter(PeriodBalance.period_id == period.id).delete(synchronize_session=False)
    period.status = PeriodStatus.OPEN
    period.closed_at = None
    db.flush()
    db.expire(period, ["balances"])
    logger.info("Period %s reopened", period.period_name)
    return period


def get_period_balances(db: Session, period_id: int, branch_id: Optional[int] = None) -> List[PeriodBalance]:
    get_period(db, period_id)
    q = db.query(PeriodBalance).filter(PeriodBalance.period_id == period_id)
    if branch_id:
        q = q.filter(PeriodBalance.branch_id == branch_id)
    else:
        q = q.filter(PeriodBalance.branch_id.is_(None))
    return q.order_by(PeriodBalance.account_id.asc()).all()


# -------------------------
# Year end
# -------------------------
def year_end_close(db: Session, year: int) -> dict:
    """
    Closes every revenue and expense account balance of the year into
    retained earnings with one posted YEC-<year> entry.
    """
    from petcare.services.journal_engine import JournalLine, create_system_entry

    december = (
        db.query(AccountingPeriod)
        .filter(AccountingPeriod.year == year, AccountingPeriod.month == 12)
        .first()
    )
    if not december:
        raise NotFoundError(f"December {year} period not found")
    if december.status not in (PeriodStatus.CLOSED, PeriodStatus.LOCKED):
        raise ConflictStateError(f"December {year} must be closed first")

    number = f"YEC-{year}"
    exists = (
        db.query(JournalEntry.id)
        .filter(JournalEntry.journal_number == number, JournalEntry.deleted_at.is_(None))
        .first()
    )
    if exists:
        raise DuplicateEntryError(f"Year-end closing for {year} already completed")

    start, end = date(year, 1, 1), date(year, 12, 31)
    totals = (
        db.query(
            Account,
            func.coalesce(func.sum(JournalEntryLine.debit_amount), 0),
            func.coalesce(func.sum(JournalEntryLine.credit_amount), 0),
        )
        .join(JournalEntryLine, JournalEntryLine.account_id == Account.id)
        .join(JournalEntry, JournalEntry.id == JournalEntryLine.journal_entry_id)
        .filter(
            Account.account_type.in_([AccountType.REVENUE, AccountType.EXPENSE]),
            Account.is_header.is_(False),
            JournalEntry.status == JournalStatus.POSTED,
            JournalEntry.deleted_at.is_(None),
            JournalEntry.journal_date >= start,
            JournalEntry.journal_date <= end,
        )
        .group_by(Account.id)
        .order_by(Account.code.asc())
        .all()
    )

    lines: List[JournalLine] = []
    total_revenue = ZERO
    total_expense = ZERO
    for acc, dr, cr in totals:
        balance = money2(_signed(acc.normal_balance, money2(dr), money2(cr)))
        if balance == 0:
            continue
        desc = f"Close {acc.name} to retained earnings"
        if acc.account_type == AccountType.REVENUE:
            total_revenue += balance
            # Revenue sits on the credit side; debit it back to zero
            if balance > 0:
                lines.append(JournalLine(account_id=acc.id, debit=balance, description=desc))
            else:
                lines.append(JournalLine(account_id=acc.id, credit=-balance, description=desc))
        else:
            total_expense += balance
            if balance > 0:
                lines.append(JournalLine(account_id=acc.id, credit=balance, description=desc))
            else:
                lines.append(JournalLine(account_id=acc.id, debit=-balance, description=desc))

    if not lines:
        raise ValidationError(f"No revenue or expense activity to close for {year}")

    net_income = money2(total_revenue - total_expense)
    if net_income > 0:
        lines.append(JournalLine(
            account_code=ACCOUNTS.RETAINED_EARNINGS_ACCOUNT, credit=net_income,
            description=f"Net income for {year}",
        ))
    elif net_income < 0:
        lines.append(JournalLine(
            account_code=ACCOUNTS.RETAINED_EARNINGS_ACCOUNT, debit=-net_income,
            description=f"Net loss for {year}",
        ))

    entry = create_system_entry(
        db,
        source_type=SourceType.YEAR_END_CLOSE,
        source_id=None,
        description=f"Year-end closing {year} - Transfer net income to retained earnings",
        lines=lines,
        journal_date=end,
        journal_number=number,
    )
    logger.info("Year-end close %s net_income=%s", year, net_income)
    return {"journal_entry": entry, "net_income": net_income}
