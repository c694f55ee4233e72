from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from petcare.models.accounting import Account, AccountType
from petcare.models.bank import (
    INFLOW_TYPES,
    BankAccount,
    BankTransaction,
    BankTransactionType,
    ReconciliationStatus,
)
from petcare.models.purchasing import PurchaseOrder
from petcare.models.sales import PaymentMethod
from petcare.services.account_codes import BANK_CONTRA_ACCOUNTS
from petcare.services.accounts import AccountRepository
from petcare.services.errors import (
    ConflictStateError,
    DuplicateEntryError,
    NotFoundError,
    StatusConflictError,
    ValidationError,
)
from petcare.services.journal_engine import void_entry
from petcare.services.journal_posting import post_bank_opening_journal, post_bank_transaction_journal
from petcare.services.line_calc import D, money2
from petcare.services.transactions import payment_method_of
from petcare.utils.timezone import now_local, today_local

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


# -------------------------
# Bank accounts
# -------------------------
def get_bank_account(db: Session, bank_account_id: int, for_update: bool = False) -> BankAccount:
    q = db.query(BankAccount).options(selectinload(BankAccount.account)).filter(
        BankAccount.id == bank_account_id, BankAccount.deleted_at.is_(None)
    )
    if for_update:
        q = q.with_for_update()
    ba = q.first()
    if not ba:
        raise NotFoundError("Bank account not found")
    return ba


def list_bank_accounts(db: Session, include_inactive: bool = False) -> List[BankAccount]:
    q = db.query(BankAccount).options(selectinload(BankAccount.account)).filter(BankAccount.deleted_at.is_(None))
    if not include_inactive:
        q = q.filter(BankAccount.is_active.is_(True))
    return q.order_by(BankAccount.bank_name.asc(), BankAccount.account_name.asc()).all()


def _live_transactions(db: Session, bank_account_id: int):
    return db.query(BankTransaction).filter(
        BankTransaction.bank_account_id == bank_account_id,
        BankTransaction.deleted_at.is_(None),
    )


def reconciliation_summary(db: Session, bank_account_id: int) -> dict:
    rows = (
        _live_transactions(db, bank_account_id)
        .with_entities(BankTransaction.reconciliation_status, func.count(BankTransaction.id))
        .group_by(BankTransaction.reconciliation_status)
        .all()
    )
    counts = {status: int(n) for status, n in rows}
    return {
        "total_transactions": sum(counts.values()),
        "reconciled": counts.get(ReconciliationStatus.RECONCILED, 0),
        "unreconciled": counts.get(ReconciliationStatus.UNRECONCILED, 0),
        "voided": counts.get(ReconciliationStatus.VOID, 0),
    }


def _linked_account(db: Session, account_id: Optional[int], account_code: Optional[str]) -> Account:
    repo = AccountRepository(db)
    if account_id:
        account = repo.get(account_id)
    elif account_code:
        account = repo.find_by_code(account_code)
    else:
        raise ValidationError("Linked chart of account is required")
    if account.account_type != AccountType.ASSET or account.is_header or not account.is_active:
        raise ValidationError(f"Account {account.code} is not an active asset account")
    return account


def _methods_csv(db: Session, methods, exclude_id: Optional[int] = None) -> Optional[str]:
    if methods is None:
        return None
    raw = methods.split(",") if isinstance(methods, str) else list(methods)
    picked: List[str] = []
    for m in raw:
        if not str(getattr(m, "value", m) or "").strip():
            continue
        method = payment_method_of(m)
        if method == PaymentMethod.CASH.value:
            raise ValidationError("Cash is not received into a bank account")
        if method not in picked:
            picked.append(method)
    if not picked:
        return None

    others = db.query(BankAccount).filter(
        BankAccount.deleted_at.is_(None),
        BankAccount.is_active.is_(True),
        BankAccount.payment_methods.isnot(None),
    )
    if exclude_id:
        others = others.filter(BankAccount.id != exclude_id)
    for other in others.all():
        taken = set(picked) & set(other.method_list)
        if taken:
            raise ConflictStateError(
                f"{', '.join(sorted(taken))} already routed to {other.bank_name} {other.account_number}"
            )
    return ",".join(picked)


def create_bank_account(
    db: Session,
    *,
    account_name: str,
    bank_name: str,
    account_number: str,
    account_id: Optional[int] = None,
    account_code: Optional[str] = None,
    branch_name: Optional[str] = None,
    initial_balance=0,
    currency: str = "IDR",
    payment_methods=None,
    opening_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> BankAccount:
    """
    A non-zero initial balance is booked against opening equity so the
    linked ledger account and the bank register start from the same figure.
    """
    if not (account_name or "").strip() or not (bank_name or "").strip():
        raise ValidationError("Account name and bank name are required")
    number = (account_number or "").strip()
    if not number:
        raise ValidationError("Account number is required")

    linked = _linked_account(db, account_id, account_code)

    exists = db.query(BankAccount.id).filter(
        BankAccount.account_number == number, BankAccount.deleted_at.is_(None)
    ).first()
    if exists:
        raise DuplicateEntryError(f"Bank account number {number} already exists")

    opening = money2(initial_balance)
    if opening < 0:
        raise ValidationError("Initial balance cannot be negative")

    ba = BankAccount(
        account_name=account_name.strip(),
        bank_name=bank_name.strip(),
        account_number=number,
        branch_name=branch_name,
        account_id=linked.id,
        initial_balance=opening,
        current_balance=opening,
        currency=(currency or "IDR").upper(),
        payment_methods=_methods_csv(db, payment_methods),
        is_active=True,
        notes=notes,
    )
    ba.account = linked
    db.add(ba)
    db.flush()

    if opening > 0:
        post_bank_opening_journal(
            db,
            bank_account_id=ba.id,
            linked_account_id=linked.id,
            amount=opening,
            label=f"{ba.bank_name} {ba.account_number}",
            opening_date=opening_date,
        )
    logger.info("Bank account %s %s created (linked %s)", ba.bank_name, ba.account_number, linked.code)
    return ba


def update_bank_account(
    db: Session,
    bank_account_id: int,
    *,
    account_name: Optional[str] = None,
    branch_name: Optional[str] = None,
    is_active: Optional[bool] = None,
    payment_methods=None,
    notes: Optional[str] = None,
) -> BankAccount:
    ba = get_bank_account(db, bank_account_id, for_update=True)
    if account_name is not None:
        if not account_name.strip():
            raise ValidationError("Account name cannot be empty")
        ba.account_name = account_name.strip()
    if branch_name is not None:
        ba.branch_name = branch_name
    if notes is not None:
        ba.notes = notes
    if is_active is not None:
        ba.is_active = bool(is_active)
    if payment_methods is not None:
        ba.payment_methods = _methods_csv(db, payment_methods, exclude_id=ba.id)
    elif is_active and ba.payment_methods:
        # Reactivation must not steal methods claimed meanwhile
        _methods_csv(db, ba.payment_methods, exclude_id=ba.id)
    db.flush()
    return ba


def remove_bank_account(db: Session, bank_account_id: int) -> BankAccount:
    ba = get_bank_account(db, bank_account_id, for_update=True)
    pending = _live_transactions(db, ba.id).filter(
        BankTransaction.reconciliation_status == ReconciliationStatus.UNRECONCILED
    ).first()
    if pending:
        raise ConflictStateError("Cannot delete bank account with unreconciled transactions")
    ba.deleted_at = now_local()
    ba.is_active = False
    db.flush()
    logger.info("Bank account %s %s removed", ba.bank_name, ba.account_number)
    return ba


# -------------------------
# Balances
# -------------------------
def _movement_sum(db: Session, bank_account_id: int, *filters) -> Decimal:
    """Signed sum of non-void transactions matching the filters."""
    rows = (
        _live_transactions(db, bank_account_id)
        .filter(BankTransaction.reconciliation_status != ReconciliationStatus.VOID, *filters)
        .with_entities(BankTransaction.transaction_type, func.coalesce(func.sum(BankTransaction.amount), 0))
        .group_by(BankTransaction.transaction_type)
        .all()
    )
    total = ZERO
    for tx_type, amount in rows:
        total += D(amount) if tx_type in INFLOW_TYPES else -D(amount)
    return money2(total)


def balance_at(db: Session, bank_account_id: int, as_of: date) -> Decimal:
    ba = get_bank_account(db, bank_account_id)
    return money2(D(ba.initial_balance) + _movement_sum(db, ba.id, BankTransaction.transaction_date <= as_of))


def get_statement(
    db: Session,
    bank_account_id: int,
    *,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[str] = None,
) -> dict:
    """
    Register with a running balance. Voided rows are listed but never move
    the balance.
    """
    ba = get_bank_account(db, bank_account_id)

    opening = D(ba.initial_balance)
    if date_from:
        opening += _movement_sum(db, ba.id, BankTransaction.transaction_date < date_from)
    opening = money2(opening)

    q = _live_transactions(db, ba.id)
    if date_from:
        q = q.filter(BankTransaction.transaction_date >= date_from)
    if date_to:
        q = q.filter(BankTransaction.transaction_date <= date_to)
    if status:
        q = q.filter(BankTransaction.reconciliation_status == _status(status))

    running = opening
    deposits = ZERO
    withdrawals = ZERO
    rows = []
    for tx in q.order_by(BankTransaction.transaction_date.asc(), BankTransaction.id.asc()).all():
        if tx.reconciliation_status != ReconciliationStatus.VOID:
            running += tx.signed_amount
            if tx.is_inflow:
                deposits += D(tx.amount)
            else:
                withdrawals += D(tx.amount)
        rows.append({"transaction": tx, "balance": money2(running)})

    return {
        "bank_account": ba,
        "opening_balance": opening,
        "transactions": rows,
        "closing_balance": money2(running),
        "total_deposits": money2(deposits),
        "total_withdrawals": money2(withdrawals),
    }


def balance_summary(db: Session) -> dict:
    by_bank: dict = {}
    by_currency: dict = {}
    total = ZERO
    for ba in list_bank_accounts(db):
        bal = money2(ba.current_balance)
        total += bal
        row = by_bank.setdefault(ba.bank_name, {"bank_name": ba.bank_name, "account_count": 0, "total_balance": ZERO})
        row["account_count"] += 1
        row["total_balance"] += bal
        by_currency[ba.currency] = by_currency.get(ba.currency, ZERO) + bal
    return {
        "total_balance": money2(total),
        "by_bank": list(by_bank.values()),
        "by_currency": [{"currency": c, "total_balance": v} for c, v in by_currency.items()],
    }


# -------------------------
# Transactions
# -------------------------
def _tx_type(value) -> BankTransactionType:
    raw = str(getattr(value, "value", value) or "").strip().upper()
    try:
        return BankTransactionType(raw)
    except ValueError:
        raise ValidationError(f"Unknown transaction type: {value}")


def _status(value) -> ReconciliationStatus:
    raw = str(getattr(value, "value", value) or "").strip().upper()
    try:
        return ReconciliationStatus(raw)
    except ValueError:
        raise ValidationError(f"Unknown reconciliation status: {value}")


def get_transaction(db: Session, transaction_id: int, for_update: bool = False) -> BankTransaction:
    q = db.query(BankTransaction).filter(
        BankTransaction.id == transaction_id, BankTransaction.deleted_at.is_(None)
    )
    if for_update:
        q = q.with_for_update()
    tx = q.first()
    if not tx:
        raise NotFoundError("Bank transaction not found")
    return tx


def list_transactions(
    db: Session,
    *,
    bank_account_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[str] = None,
    transaction_type: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[BankTransaction]:
    q = db.query(BankTransaction).filter(BankTransaction.deleted_at.is_(None))
    if bank_account_id:
        q = q.filter(BankTransaction.bank_account_id == bank_account_id)
    if date_from:
        q = q.filter(BankTransaction.transaction_date >= date_from)
    if date_to:
        q = q.filter(BankTransaction.transaction_date <= date_to)
    if status:
        q = q.filter(BankTransaction.reconciliation_status == _status(status))
    if transaction_type:
        q = q.filter(BankTransaction.transaction_type == _tx_type(transaction_type))
    return (
        q.order_by(BankTransaction.transaction_date.desc(), BankTransaction.id.desc())
        .offset(max(0, offset))
        .limit(min(max(1, limit), 500))
        .all()
    )


def record_transaction(
    db: Session,
    *,
    bank_account_id: int,
    transaction_type,
    amount,
    description: str,
    transaction_date: Optional[date] = None,
    reference_number: Optional[str] = None,
    counter_account_id: Optional[int] = None,
    counter_account_code: Optional[str] = None,
    bank_statement_date: Optional[date] = None,
    notes: Optional[str] = None,
    auto_journal: bool = True,
    purchase_order_id: Optional[int] = None,
) -> BankTransaction:
    """
    Deposit / withdrawal / transfer / fee / interest. The counter account
    defaults per type (deposit from cash, transfer out to payables, fee to
    bank charges, interest to interest income) and can be overridden.
    """
    ba = get_bank_account(db, bank_account_id, for_update=True)
    if not ba.is_active:
        raise StatusConflictError("Bank account is inactive")

    tx_type = _tx_type(transaction_type)
    amount = money2(amount)
    if amount <= 0:
        raise ValidationError("Transaction amount must be positive")
    if not (description or "").strip():
        raise ValidationError("Description is required")

    repo = AccountRepository(db)
    if counter_account_id:
        counter = repo.get(counter_account_id)
    else:
        counter = repo.find_by_code(counter_account_code or BANK_CONTRA_ACCOUNTS[tx_type.value])
    if counter.is_header or not counter.is_active:
        raise ValidationError(f"Account {counter.code} cannot take journal lines")
    if counter.id == ba.account_id:
        raise ValidationError("Counter account must differ from the bank's own account")

    tx = BankTransaction(
        bank_account_id=ba.id,
        transaction_date=transaction_date or today_local(),
        transaction_type=tx_type,
        amount=amount,
        reference_number=reference_number,
        description=description.strip(),
        counter_account_id=counter.id,
        purchase_order_id=purchase_order_id,
        reconciliation_status=ReconciliationStatus.UNRECONCILED,
        bank_statement_date=bank_statement_date,
        notes=notes,
    )
    tx.bank_account = ba
    db.add(tx)
    ba.current_balance = money2(D(ba.current_balance) + tx.signed_amount)
    db.flush()

    if auto_journal:
        entry = post_bank_transaction_journal(
            db,
            transaction_id=tx.id,
            transaction_type=tx_type.value,
            inflow=tx.is_inflow,
            bank_account_id=ba.account_id,
            counter_account_id=counter.id,
            amount=amount,
            description=tx.description,
            reference=reference_number or "",
            transaction_date=tx.transaction_date,
        )
        tx.journal_entry = entry
        tx.journal_entry_id = entry.id if entry else None
        db.flush()

    logger.info(
        "Bank %s %s %s amount=%s balance=%s",
        ba.bank_name, ba.account_number, tx_type.value, amount, ba.current_balance,
    )
    return tx


# -------------------------
# Reconciliation
# -------------------------
def reconcile(db: Session, transaction_id: int, bank_statement_date: Optional[date] = None) -> BankTransaction:
    tx = get_transaction(db, transaction_id, for_update=True)
    if tx.reconciliation_status == ReconciliationStatus.RECONCILED:
        raise ConflictStateError("Transaction already reconciled")
    if tx.reconciliation_status == ReconciliationStatus.VOID:
        raise StatusConflictError("Voided transactions cannot be reconciled")
    tx.reconciliation_status = ReconciliationStatus.RECONCILED
    tx.reconciled_at = now_local()
    if bank_statement_date:
        tx.bank_statement_date = bank_statement_date
    db.flush()
    return tx


def unreconcile(db: Session, transaction_id: int) -> BankTransaction:
    tx = get_transaction(db, transaction_id, for_update=True)
    if tx.reconciliation_status != ReconciliationStatus.RECONCILED:
        raise StatusConflictError("Transaction is not reconciled")
    tx.reconciliation_status = ReconciliationStatus.UNRECONCILED
    tx.reconciled_at = None
    db.flush()
    return tx


def bulk_reconcile(db: Session, transaction_ids: Iterable[int], bank_statement_date: date) -> dict:
    """Reconciles what it can; missing, voided or already reconciled ids are reported back."""
    ids = list(dict.fromkeys(int(i) for i in transaction_ids or []))
    found = {
        tx.id: tx
        for tx in db.query(BankTransaction)
        .filter(BankTransaction.id.in_(ids), BankTransaction.deleted_at.is_(None))
        .with_for_update()
        .all()
    } if ids else {}

    failed: List[int] = []
    done = 0
    stamp = now_local()
    for tx_id in ids:
        tx = found.get(tx_id)
        if tx is None or tx.reconciliation_status != ReconciliationStatus.UNRECONCILED:
            failed.append(tx_id)
            continue
        tx.reconciliation_status = ReconciliationStatus.RECONCILED
        tx.reconciled_at = stamp
        tx.bank_statement_date = bank_statement_date
        done += 1
    db.flush()
    logger.info("Bulk reconcile: %s reconciled, %s failed", done, len(failed))
    return {"success_count": done, "failed_ids": failed}


def void_transaction(db: Session, transaction_id: int, reason: str = "Bank transaction voided") -> BankTransaction:
    """
    Reverses the register balance and voids the journal. A supplier payment
    made through this transaction is reopened on its purchase order.
    """
    reason = (reason or "").strip() or "Bank transaction voided"
    tx = get_transaction(db, transaction_id, for_update=True)
    if tx.reconciliation_status == ReconciliationStatus.VOID:
        raise StatusConflictError("Transaction is already void")
    if tx.reconciliation_status == ReconciliationStatus.RECONCILED:
        raise StatusConflictError("Unreconcile the transaction before voiding it")

    if tx.journal_entry_id:
        void_entry(db, tx.journal_entry_id, reason)

    ba = get_bank_account(db, tx.bank_account_id, for_update=True)
    ba.current_balance = money2(D(ba.current_balance) - tx.signed_amount)

    if tx.purchase_order_id:
        po = db.get(PurchaseOrder, tx.purchase_order_id)
        if po is not None:
            po.paid_amount = money2(D(po.paid_amount) - D(tx.amount))
            po.paid = False

    tx.reconciliation_status = ReconciliationStatus.VOID
    tx.void_reason = reason
    db.flush()
    logger.info("Bank transaction %s voided", tx.id)
    return tx
