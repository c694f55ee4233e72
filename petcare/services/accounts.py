# FILE: petcare/services/accounts.py
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from petcare.models.accounting import (
    Account,
    AccountType,
    JournalEntry,
    JournalEntryLine,
    JournalStatus,
    NormalBalance,
)
from petcare.services.account_codes import DEFAULT_CHART, normal_balance_for
from petcare.services.errors import (
    ConflictStateError,
    DuplicateEntryError,
    NotFoundError,
    ValidationError,
)
from petcare.services.line_calc import money2
from petcare.utils.timezone import now_local

logger = logging.getLogger(__name__)


class AccountRepository:
    """
    Code -> Account lookup used by the posting rules.
    Resolved accounts are cached for the lifetime of the repository
    (one operation / one session).
    """

    def __init__(self, db: Session):
        self.db = db
        self._cache: Dict[str, Account] = {}

    def find_by_code(self, code: str) -> Account:
        acc = self._cache.get(code)
        if acc is not None:
            return acc
        acc = (
            self.db.query(Account)
            .filter(Account.code == code, Account.deleted_at.is_(None))
            .first()
        )
        if not acc:
            raise NotFoundError(f"Account {code} not found")
        self._cache[code] = acc
        return acc

    def get(self, account_id: int) -> Account:
        acc = self.db.get(Account, account_id)
        if not acc or acc.deleted_at is not None:
            raise NotFoundError("Account not found")
        return acc


def _account_type(value) -> AccountType:
    try:
        return AccountType(value)
    except ValueError:
        raise ValidationError(f"Invalid account type: {value}")


def create_account(
    db: Session,
    *,
    code: str,
    name: str,
    account_type,
    parent_id: Optional[int] = None,
    is_header: bool = False,
    normal_balance=None,
    description: str = "",
) -> Account:
    code = (code or "").strip()
    name = (name or "").strip()
    if not code or not name:
        raise ValidationError("Account code and name are required")

    exists = db.query(Account.id).filter(Account.code == code).first()
    if exists:
        raise DuplicateEntryError(f"Account code {code} already exists")

    atype = _account_type(account_type)
    level = 1
    if parent_id:
        parent = db.get(Account, parent_id)
        if not parent or parent.deleted_at is not None:
            raise NotFoundError("Parent account not found")
        if not parent.is_header:
            raise ValidationError("Parent account must be a header account")
        level = int(parent.level or 1) + 1

    acc = Account(
        code=code,
        name=name,
        account_type=atype,
        normal_balance=NormalBalance(normal_balance) if normal_balance else normal_balance_for(atype),
        is_header=bool(is_header),
        is_active=True,
        parent_id=parent_id,
        level=level,
        description=description or "",
    )
    db.add(acc)
    db.flush()
    return acc


def update_account(
    db: Session,
    account_id: int,
    *,
    name: Optional[str] = None,
    is_active: Optional[bool] = None,
    is_header: Optional[bool] = None,
    description: Optional[str] = None,
) -> Account:
    acc = AccountRepository(db).get(account_id)

    if name is not None:
        if not name.strip():
            raise ValidationError("Account name is required")
        acc.name = name.strip()
    if is_active is not None:
        acc.is_active = bool(is_active)
    if is_header is not None and bool(is_header) != bool(acc.is_header):
        if is_header and _has_lines(db, acc.id):
            raise ConflictStateError("Account with journal lines cannot become a header")
        acc.is_header = bool(is_header)
    if description is not None:
        acc.description = description

    db.flush()
    return acc


def _has_lines(db: Session, account_id: int) -> bool:
    return db.query(JournalEntryLine.id).filter(JournalEntryLine.account_id == account_id).first() is not None


def delete_account(db: Session, account_id: int) -> Account:
    """Soft delete; only for accounts nothing refers to."""
    acc = AccountRepository(db).get(account_id)

    if _has_lines(db, acc.id):
        raise ConflictStateError("Cannot delete account with journal entries")

    child = (
        db.query(Account.id)
        .filter(Account.parent_id == acc.id, Account.deleted_at.is_(None))
        .first()
    )
    if child:
        raise ConflictStateError("Cannot delete account with child accounts")

    acc.deleted_at = now_local()
    acc.is_active = False
    db.flush()
    logger.info("Account %s soft-deleted", acc.code)
    return acc


def list_accounts(db: Session, *, account_type=None, include_inactive: bool = False) -> List[Account]:
    q = db.query(Account).filter(Account.deleted_at.is_(None))
    if account_type:
        q = q.filter(Account.account_type == _account_type(account_type))
    if not include_inactive:
        q = q.filter(Account.is_active.is_(True))
    return q.order_by(Account.code.asc()).all()


def account_tree(db: Session) -> List[dict]:
    accounts = list_accounts(db, include_inactive=True)
    nodes = {
        a.id: {
            "id": a.id,
            "code": a.code,
            "name": a.name,
            "account_type": a.account_type,
            "is_header": a.is_header,
            "is_active": a.is_active,
            "level": a.level,
            "children": [],
        }
        for a in accounts
    }
    roots: List[dict] = []
    for a in accounts:
        node = nodes[a.id]
        if a.parent_id and a.parent_id in nodes:
            nodes[a.parent_id]["children"].append(node)
        else:
            roots.append(node)
    return roots


def get_account_balance(
    db: Session,
    account_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    branch_id: Optional[int] = None,
) -> Dict[str, Decimal]:
    """
    Posted lines only. Balance is signed by the account's normal side:
    DEBIT accounts = debit - credit, CREDIT accounts = credit - debit.
    """
    acc = AccountRepository(db).get(account_id)

    q = (
        db.query(
            func.coalesce(func.sum(JournalEntryLine.debit_amount), 0),
            func.coalesce(func.sum(JournalEntryLine.credit_amount), 0),
        )
        .join(JournalEntry, JournalEntry.id == JournalEntryLine.journal_entry_id)
        .filter(
            JournalEntryLine.account_id == acc.id,
            JournalEntry.status == JournalStatus.POSTED,
            JournalEntry.deleted_at.is_(None),
        )
    )
    if start_date:
        q = q.filter(JournalEntry.journal_date >= start_date)
    if end_date:
        q = q.filter(JournalEntry.journal_date <= end_date)
    if branch_id:
        q = q.filter(JournalEntryLine.branch_id == branch_id)

    debit, credit = q.one()
    debit, credit = money2(debit), money2(credit)
    if acc.normal_balance == NormalBalance.DEBIT:
        balance = debit - credit
    else:
        balance = credit - debit

    return {
        "account_id": acc.id,
        "code": acc.code,
        "debit": debit,
        "credit": credit,
        "balance": money2(balance),
    }


def seed_default_chart(db: Session) -> int:
    """Idempotent: inserts missing accounts only. Returns how many were added."""
    existing = {code for (code,) in db.query(Account.code).all()}
    by_code: Dict[str, Account] = {}
    added = 0

    for code, name, atype, parent_code, is_header in DEFAULT_CHART:
        if code in existing:
            continue
        parent = None
        if parent_code:
            parent = by_code.get(parent_code) or db.query(Account).filter(Account.code == parent_code).first()
        acc = Account(
            code=code,
            name=name,
            account_type=atype,
            normal_balance=normal_balance_for(atype),
            is_header=is_header,
            is_active=True,
            parent_id=parent.id if parent else None,
            level=(int(parent.level or 1) + 1) if parent else 1,
        )
        db.add(acc)
        db.flush()
        by_code[code] = acc
        added += 1

    if added:
        logger.info("Seeded %s chart-of-accounts rows", added)
    return added
