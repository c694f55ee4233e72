# FILE: petcare/api/routes_bank.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from petcare.api.deps import get_db
from petcare.api.response import fail, ok, safe_err
from petcare.schemas.bank import (
    BankAccountCreate,
    BankAccountOut,
    BankAccountUpdate,
    BankTransactionIn,
    BankTransactionOut,
    BulkReconcileIn,
    ReconcileIn,
    VoidIn,
)
from petcare.services import bank_service as svc
from petcare.services.errors import PetcareError
from petcare.utils.timezone import today_local

router = APIRouter(tags=["bank"])


def _account_out(ba):
    return BankAccountOut.model_validate(ba).model_dump()


def _tx_out(tx):
    return BankTransactionOut.model_validate(tx).model_dump()


# -------------------------
# Bank accounts
# -------------------------
@router.get("/bank-accounts")
def list_bank_accounts(include_inactive: bool = Query(False), db: Session = Depends(get_db)):
    try:
        return ok([_account_out(ba) for ba in svc.list_bank_accounts(db, include_inactive=include_inactive)])
    except Exception as e:
        return safe_err(e)


@router.get("/bank-accounts/summary")
def balance_summary(db: Session = Depends(get_db)):
    try:
        return ok(svc.balance_summary(db))
    except Exception as e:
        return safe_err(e)


@router.get("/bank-accounts/{bank_account_id:int}")
def get_bank_account(bank_account_id: int, db: Session = Depends(get_db)):
    try:
        ba = svc.get_bank_account(db, bank_account_id)
        data = _account_out(ba)
        data["reconciliation"] = svc.reconciliation_summary(db, ba.id)
        return ok(data)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/bank-accounts")
def create_bank_account(payload: BankAccountCreate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            ba = svc.create_bank_account(db, **payload.model_dump())
        return ok(_account_out(ba), status_code=201)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.put("/bank-accounts/{bank_account_id:int}")
def update_bank_account(bank_account_id: int, payload: BankAccountUpdate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            ba = svc.update_bank_account(db, bank_account_id, **payload.model_dump(exclude_unset=True))
        return ok(_account_out(ba))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.delete("/bank-accounts/{bank_account_id:int}")
def remove_bank_account(bank_account_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            ba = svc.remove_bank_account(db, bank_account_id)
        return ok({"id": ba.id, "deleted": True})
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.get("/bank-accounts/{bank_account_id:int}/balance")
def balance_at(
    bank_account_id: int,
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
):
    try:
        when = as_of or today_local()
        return ok({"bank_account_id": bank_account_id, "as_of": when, "balance": svc.balance_at(db, bank_account_id, when)})
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.get("/bank-accounts/{bank_account_id:int}/statement")
def statement(
    bank_account_id: int,
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    try:
        res = svc.get_statement(db, bank_account_id, date_from=date_from, date_to=date_to, status=status)
        return ok({
            "bank_account": _account_out(res["bank_account"]),
            "opening_balance": res["opening_balance"],
            "closing_balance": res["closing_balance"],
            "total_deposits": res["total_deposits"],
            "total_withdrawals": res["total_withdrawals"],
            "transactions": [
                {**_tx_out(row["transaction"]), "running_balance": row["balance"]}
                for row in res["transactions"]
            ],
        })
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


# -------------------------
# Bank transactions
# -------------------------
@router.get("/bank-transactions")
def list_transactions(
    bank_account_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    status: Optional[str] = Query(None),
    transaction_type: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    try:
        rows = svc.list_transactions(
            db, bank_account_id=bank_account_id, date_from=date_from, date_to=date_to,
            status=status, transaction_type=transaction_type, limit=limit, offset=offset,
        )
        return ok([_tx_out(tx) for tx in rows])
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.get("/bank-transactions/{transaction_id:int}")
def get_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        return ok(_tx_out(svc.get_transaction(db, transaction_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/bank-transactions")
def record_transaction(payload: BankTransactionIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            tx = svc.record_transaction(db, **payload.model_dump())
        return ok(_tx_out(tx), status_code=201)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/bank-transactions/bulk-reconcile")
def bulk_reconcile(payload: BulkReconcileIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = svc.bulk_reconcile(db, payload.transaction_ids, payload.bank_statement_date)
        return ok(res)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/bank-transactions/{transaction_id:int}/reconcile")
def reconcile(transaction_id: int, payload: ReconcileIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            tx = svc.reconcile(db, transaction_id, payload.bank_statement_date)
        return ok(_tx_out(tx))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/bank-transactions/{transaction_id:int}/unreconcile")
def unreconcile(transaction_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            tx = svc.unreconcile(db, transaction_id)
        return ok(_tx_out(tx))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/bank-transactions/{transaction_id:int}/void")
def void_transaction(transaction_id: int, payload: VoidIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            tx = svc.void_transaction(db, transaction_id, payload.reason)
        return ok(_tx_out(tx))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)
