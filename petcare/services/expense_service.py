# FILE: petcare/services/expense_service.py
from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

from petcare.models.accounting import AccountType
from petcare.models.expense import Expense, ExpenseStatus
from petcare.models.master import Branch
from petcare.services.accounts import AccountRepository
from petcare.services.errors import NotFoundError, StatusConflictError, ValidationError
from petcare.services.journal_posting import post_expense_journal
from petcare.services.line_calc import money2
from petcare.services.numbering import get_or_generate_number
from petcare.services.transactions import payment_method_of
from petcare.utils.timezone import now_local, today_local

logger = logging.getLogger(__name__)


def get_expense(db: Session, expense_id: int, for_update: bool = False) -> Expense:
    q = db.query(Expense).options(selectinload(Expense.account)).filter(
        Expense.id == expense_id, Expense.deleted_at.is_(None)
    )
    if for_update:
        q = q.with_for_update()
    exp = q.first()
    if not exp:
        raise NotFoundError("Expense not found")
    return exp


def list_expenses(
    db: Session,
    *,
    branch_id: Optional[int] = None,
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[Expense]:
    q = db.query(Expense).options(selectinload(Expense.account)).filter(Expense.deleted_at.is_(None))
    if branch_id:
        q = q.filter(Expense.branch_id == branch_id)
    if status:
        q = q.filter(Expense.status == ExpenseStatus(status))
    if date_from:
        q = q.filter(Expense.expense_date >= date_from)
    if date_to:
        q = q.filter(Expense.expense_date <= date_to)
    return q.order_by(Expense.expense_date.desc(), Expense.id.desc()).offset(max(0, offset)).limit(min(max(1, limit), 500)).all()


def create_expense(
    db: Session,
    *,
    branch_id: int,
    amount,
    description: str,
    account_id: Optional[int] = None,
    account_code: Optional[str] = None,
    expense_date: Optional[date] = None,
    vendor: Optional[str] = None,
    expense_number: Optional[str] = None,
    notes: Optional[str] = None,
) -> Expense:
    if not db.get(Branch, branch_id):
        raise NotFoundError("Branch not found")

    repo = AccountRepository(db)
    if account_id:
        account = repo.get(account_id)
    elif account_code:
        account = repo.find_by_code(account_code)
    else:
        raise ValidationError("Expense account is required")
    if account.account_type != AccountType.EXPENSE or account.is_header or not account.is_active:
        raise ValidationError(f"Account {account.code} is not an active expense account")

    amount = money2(amount)
    if amount <= 0:
        raise ValidationError("Expense amount must be greater than 0")
    if not (description or "").strip():
        raise ValidationError("Description is required")

    d = expense_date or today_local()
    exp = Expense(
        expense_number=get_or_generate_number(db, "expense", expense_number, d),
        branch_id=branch_id,
        account_id=account.id,
        expense_date=d,
        amount=amount,
        vendor=vendor,
        description=description.strip(),
        status=ExpenseStatus.DRAFT,
        notes=notes,
    )
    db.add(exp)
    db.flush()
    return exp


def pay_expense(
    db: Session,
    expense_id: int,
    *,
    payment_method: str = "CASH",
    payment_date: Optional[date] = None,
) -> Expense:
    """DRAFT -> PAID and posts DR expense / CR cash-or-bank."""
    exp = get_expense(db, expense_id, for_update=True)
    if exp.status != ExpenseStatus.DRAFT:
        raise StatusConflictError("Expense is already paid")

    method = payment_method_of(payment_method)
    paid_on = payment_date or today_local()
    entry = post_expense_journal(
        db,
        expense_id=exp.id,
        expense_number=exp.expense_number,
        expense_account_id=exp.account_id,
        amount=exp.amount,
        payment_method=method,
        branch_id=exp.branch_id,
        description=exp.description,
        payment_date=paid_on,
    )
    exp.status = ExpenseStatus.PAID
    exp.payment_method = method
    exp.paid_at = now_local()
    exp.journal_entry_id = entry.id if entry else None
    db.flush()
    logger.info("Expense %s paid amount=%s via %s", exp.expense_number, exp.amount, method)
    return exp


def delete_expense(db: Session, expense_id: int) -> Expense:
    exp = get_expense(db, expense_id, for_update=True)
    if exp.status == ExpenseStatus.PAID:
        raise StatusConflictError("Paid expenses cannot be deleted; void the journal entry instead")
    exp.deleted_at = now_local()
    db.flush()
    return exp
