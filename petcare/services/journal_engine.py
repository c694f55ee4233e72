# FILE: petcare/services/journal_engine.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from petcare.core.config import settings
from petcare.models.accounting import (
    Account,
    JournalEntry,
    JournalEntryLine,
    JournalStatus,
    NormalBalance,
    SourceType,
)
from petcare.services.accounts import AccountRepository
from petcare.services.errors import (
    DuplicateEntryError,
    NotFoundError,
    StatusConflictError,
    UnbalancedJournalError,
    ValidationError,
)
from petcare.services.line_calc import D, money2
from petcare.services.numbering import generate_number, number_exists
from petcare.services.periods import assert_postable, assert_voidable
from petcare.utils.timezone import now_local, today_local

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class JournalLine:
    """
    One debit-or-credit row before it is persisted.
    Either account_code (system postings) or account_id (manual entries).
    """
    account_code: Optional[str] = None
    account_id: Optional[int] = None
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str = ""
    branch_id: Optional[int] = None


def debit(code: str, amount, description: str = "", branch_id: Optional[int] = None) -> JournalLine:
    return JournalLine(account_code=code, debit=money2(amount), description=description, branch_id=branch_id)


def credit(code: str, amount, description: str = "", branch_id: Optional[int] = None) -> JournalLine:
    return JournalLine(account_code=code, credit=money2(amount), description=description, branch_id=branch_id)


# -------------------------
# Validation
# -------------------------
def _resolve(repo: AccountRepository, line: JournalLine) -> Account:
    if line.account_code:
        return repo.find_by_code(line.account_code)
    if line.account_id:
        return repo.get(int(line.account_id))
    raise ValidationError("Journal line requires an account")


def validate_lines(
    repo: AccountRepository,
    lines: Sequence[JournalLine],
) -> Tuple[List[Tuple[Account, JournalLine]], Decimal, Decimal]:
    """
    Rules:
      - at least two lines
      - amounts non-negative, debit XOR credit, one of them non-zero
      - account exists, is postable (not header) and active
      - |total debit - total credit| <= tolerance
    """
    if len(lines) < 2:
        raise ValidationError("Journal entry requires at least two lines")

    resolved: List[Tuple[Account, JournalLine]] = []
    total_debit = ZERO
    total_credit = ZERO

    for idx, ln in enumerate(lines, start=1):
        dr = money2(ln.debit)
        cr = money2(ln.credit)
        if dr < 0 or cr < 0:
            raise ValidationError(f"Line {idx}: amounts cannot be negative")
        if dr > 0 and cr > 0:
            raise ValidationError(f"Line {idx}: debit and credit cannot both be filled")
        if dr == 0 and cr == 0:
            raise ValidationError(f"Line {idx}: debit or credit is required")

        acc = _resolve(repo, ln)
        if acc.is_header:
            raise ValidationError(f"Account {acc.code} is a header account and cannot be posted to")
        if not acc.is_active:
            raise ValidationError(f"Account {acc.code} is inactive")

        ln.debit, ln.credit = dr, cr
        resolved.append((acc, ln))
        total_debit += dr
        total_credit += cr

    if abs(total_debit - total_credit) > D(settings.JOURNAL_BALANCE_TOLERANCE):
        raise UnbalancedJournalError(total_debit, total_credit)

    return resolved, total_debit, total_credit


def _build_entry(
    db: Session,
    *,
    journal_number: str,
    journal_date: date,
    description: str,
    source_type: SourceType,
    source_id: Optional[int],
    status: JournalStatus,
    resolved: List[Tuple[Account, JournalLine]],
    total_debit: Decimal,
    total_credit: Decimal,
) -> JournalEntry:
    entry = JournalEntry(
        journal_number=journal_number,
        journal_date=journal_date,
        description=description or "",
        source_type=source_type,
        source_id=source_id,
        status=status,
        total_debit=total_debit,
        total_credit=total_credit,
        posted_at=now_local() if status == JournalStatus.POSTED else None,
    )
    for order, (acc, ln) in enumerate(resolved, start=1):
        entry.lines.append(JournalEntryLine(
            account_id=acc.id,
            branch_id=ln.branch_id,
            description=ln.description or "",
            debit_amount=ln.debit,
            credit_amount=ln.credit,
            sort_order=order,
        ))
    db.add(entry)
    db.flush()
    return entry


# -------------------------
# System entries
# -------------------------
def create_system_entry(
    db: Session,
    *,
    source_type: SourceType,
    source_id: Optional[int],
    description: str,
    lines: Iterable[JournalLine],
    journal_date: Optional[date] = None,
    journal_number: Optional[str] = None,
    repo: Optional[AccountRepository] = None,
) -> Optional[JournalEntry]:
    """
    Auto-posted entry for a domain event.
    Zero lines are dropped; when nothing is left no entry is created.
    """
    kept = [ln for ln in lines if money2(ln.debit) != 0 or money2(ln.credit) != 0]
    if not kept:
        return None

    repo = repo or AccountRepository(db)
    resolved, total_debit, total_credit = validate_lines(repo, kept)

    entry = _build_entry(
        db,
        journal_number=journal_number or generate_number(db, "journal"),
        journal_date=journal_date or today_local(),
        description=description,
        source_type=source_type,
        source_id=source_id,
        status=JournalStatus.POSTED,
        resolved=resolved,
        total_debit=total_debit,
        total_credit=total_credit,
    )
    logger.info(
        "Posted journal %s source=%s:%s debit=%s credit=%s",
        entry.journal_number, source_type.value, source_id, total_debit, total_credit,
    )
    return entry


# -------------------------
# Manual bookkeeping
# -------------------------
def _manual_lines(lines: Iterable) -> List[JournalLine]:
    out: List[JournalLine] = []
    for ln in lines or []:
        if isinstance(ln, JournalLine):
            out.append(ln)
            continue
        data = ln if isinstance(ln, dict) else ln.model_dump()
        out.append(JournalLine(
            account_code=data.get("account_code"),
            account_id=data.get("account_id"),
            debit=D(data.get("debit_amount", data.get("debit"))),
            credit=D(data.get("credit_amount", data.get("credit"))),
            description=data.get("description") or "",
            branch_id=data.get("branch_id"),
        ))
    return out


def create_manual_entry(
    db: Session,
    *,
    journal_date: date,
    description: str,
    lines: Iterable,
    journal_number: Optional[str] = None,
) -> JournalEntry:
    if not (description or "").strip():
        raise ValidationError("Description is required")

    resolved, total_debit, total_credit = validate_lines(AccountRepository(db), _manual_lines(lines))

    number = (journal_number or "").strip()
    if number:
        if number_exists(db, "journal", number):
            raise DuplicateEntryError(f"Journal number {number} already exists")
    else:
        number = generate_number(db, "journal")

    entry = _build_entry(
        db,
        journal_number=number,
        journal_date=journal_date,
        description=description.strip(),
        source_type=SourceType.MANUAL,
        source_id=None,
        status=JournalStatus.DRAFT,
        resolved=resolved,
        total_debit=total_debit,
        total_credit=total_credit,
    )
    logger.info("Draft journal %s created", entry.journal_number)
    return entry


def update_manual_entry(
    db: Session,
    entry_id: int,
    *,
    journal_date: Optional[date] = None,
    description: Optional[str] = None,
    lines: Optional[Iterable] = None,
) -> JournalEntry:
    """DRAFT entries only; lines are replaced as a whole."""
    entry = get_entry(db, entry_id, for_update=True)
    if entry.status != JournalStatus.DRAFT:
        raise StatusConflictError("Only draft journal entries can be edited")

    if journal_date is not None:
        entry.journal_date = journal_date
    if description is not None:
        if not description.strip():
            raise ValidationError("Description is required")
        entry.description = description.strip()

    if lines is not None:
        resolved, total_debit, total_credit = validate_lines(AccountRepository(db), _manual_lines(lines))
        entry.lines.clear()
        db.flush()
        for order, (acc, ln) in enumerate(resolved, start=1):
            entry.lines.append(JournalEntryLine(
                account_id=acc.id,
                branch_id=ln.branch_id,
                description=ln.description or "",
                debit_amount=ln.debit,
                credit_amount=ln.credit,
                sort_order=order,
            ))
        entry.total_debit = total_debit
        entry.total_credit = total_credit

    db.flush()
    return entry


def post_entry(db: Session, entry_id: int) -> JournalEntry:
    entry = get_entry(db, entry_id, for_update=True)
    if entry.status != JournalStatus.DRAFT:
        raise StatusConflictError("Only draft journal entries can be posted")

    assert_postable(db, entry.journal_date)

    # Re-check balance against the stored lines
    total_debit = sum((money2(ln.debit_amount) for ln in entry.lines), ZERO)
    total_credit = sum((money2(ln.credit_amount) for ln in entry.lines), ZERO)
    if abs(total_debit - total_credit) > D(settings.JOURNAL_BALANCE_TOLERANCE):
        raise UnbalancedJournalError(total_debit, total_credit)

    entry.status = JournalStatus.POSTED
    entry.posted_at = now_local()
    db.flush()
    logger.info("Journal %s posted", entry.journal_number)
    return entry


def void_entry(db: Session, entry_id: int, reason: str) -> JournalEntry:
    entry = get_entry(db, entry_id, for_update=True)
    if entry.status != JournalStatus.POSTED:
        raise StatusConflictError("Only posted journal entries can be voided")
    if not (reason or "").strip():
        raise ValidationError("Void reason is required")

    assert_voidable(db, entry.journal_date)

    entry.status = JournalStatus.VOIDED
    entry.voided_at = now_local()
    entry.void_reason = reason.strip()
    db.flush()
    logger.info("Journal %s voided: %s", entry.journal_number, entry.void_reason)
    return entry


def delete_entry(db: Session, entry_id: int) -> JournalEntry:
    entry = get_entry(db, entry_id, for_update=True)
    if entry.status != JournalStatus.DRAFT:
        raise StatusConflictError("Only draft journal entries can be deleted")
    entry.deleted_at = now_local()
    db.flush()
    return entry


# -------------------------
# Queries
# -------------------------
def get_entry(db: Session, entry_id: int, for_update: bool = False) -> JournalEntry:
    q = db.query(JournalEntry).filter(JournalEntry.id == entry_id, JournalEntry.deleted_at.is_(None))
    if for_update:
        q = q.with_for_update()
    else:
        q = q.options(selectinload(JournalEntry.lines).selectinload(JournalEntryLine.account))
    entry = q.first()
    if not entry:
        raise NotFoundError("Journal entry not found")
    return entry


def list_entries(
    db: Session,
    *,
    status=None,
    source_type=None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    q: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[JournalEntry]:
    query = db.query(JournalEntry).filter(JournalEntry.deleted_at.is_(None))
    if status:
        query = query.filter(JournalEntry.status == JournalStatus(status))
    if source_type:
        query = query.filter(JournalEntry.source_type == SourceType(source_type))
    if date_from:
        query = query.filter(JournalEntry.journal_date >= date_from)
    if date_to:
        query = query.filter(JournalEntry.journal_date <= date_to)
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(JournalEntry.journal_number.like(like) | JournalEntry.description.like(like))

    return (
        query.order_by(JournalEntry.journal_date.desc(), JournalEntry.id.desc())
        .offset(max(0, offset))
        .limit(min(max(1, limit), 500))
        .all()
    )


def get_by_source(db: Session, source_type, source_id: int) -> List[JournalEntry]:
    return (
        db.query(JournalEntry)
        .filter(
            JournalEntry.source_type == SourceType(source_type),
            JournalEntry.source_id == source_id,
            JournalEntry.deleted_at.is_(None),
        )
        .order_by(JournalEntry.id.asc())
        .all()
    )


def trial_balance(db: Session, as_of: Optional[date] = None, branch_id: Optional[int] = None) -> dict:
    q = (
        db.query(
            Account,
            func.coalesce(func.sum(JournalEntryLine.debit_amount), 0),
            func.coalesce(func.sum(JournalEntryLine.credit_amount), 0),
        )
        .join(JournalEntryLine, JournalEntryLine.account_id == Account.id)
        .join(JournalEntry, JournalEntry.id == JournalEntryLine.journal_entry_id)
        .filter(
            JournalEntry.status == JournalStatus.POSTED,
            JournalEntry.deleted_at.is_(None),
        )
    )
    if as_of:
        q = q.filter(JournalEntry.journal_date <= as_of)
    if branch_id:
        q = q.filter(JournalEntryLine.branch_id == branch_id)

    rows = []
    total_debit = ZERO
    total_credit = ZERO
    for acc, dr, cr in q.group_by(Account.id).order_by(Account.code.asc()).all():
        net = money2(dr) - money2(cr)
        debit_balance = net if net > 0 else ZERO
        credit_balance = -net if net < 0 else ZERO
        if debit_balance == 0 and credit_balance == 0:
            continue
        rows.append({
            "account_id": acc.id,
            "code": acc.code,
            "name": acc.name,
            "account_type": acc.account_type,
            "normal_balance": acc.normal_balance,
            "debit": money2(debit_balance),
            "credit": money2(credit_balance),
        })
        total_debit += debit_balance
        total_credit += credit_balance

    return {
        "as_of": as_of,
        "rows": rows,
        "total_debit": money2(total_debit),
        "total_credit": money2(total_credit),
        "is_balanced": abs(total_debit - total_credit) <= D(settings.JOURNAL_BALANCE_TOLERANCE),
    }


def signed_balance(normal_balance: NormalBalance, debit_total, credit_total) -> Decimal:
    if normal_balance == NormalBalance.DEBIT:
        return money2(D(debit_total) - D(credit_total))
    return money2(D(credit_total) - D(debit_total))
