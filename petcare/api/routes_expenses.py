# FILE: petcare/api/routes_expenses.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from petcare.api.deps import get_db
from petcare.api.response import fail, ok, safe_err
from petcare.schemas.expense import ExpenseCreate, ExpenseOut, ExpensePayIn
from petcare.services import expense_service as svc
from petcare.services.errors import PetcareError

router = APIRouter(prefix="/expenses", tags=["expenses"])


def _out(exp):
    return ExpenseOut.model_validate(exp).model_dump()


@router.get("")
def list_expenses(
    branch_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    try:
        rows = svc.list_expenses(
            db, branch_id=branch_id, status=status, date_from=date_from,
            date_to=date_to, limit=limit, offset=offset,
        )
        return ok([_out(x) for x in rows])
    except Exception as e:
        return safe_err(e)


@router.get("/{expense_id:int}")
def get_expense(expense_id: int, db: Session = Depends(get_db)):
    try:
        return ok(_out(svc.get_expense(db, expense_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("")
def create_expense(payload: ExpenseCreate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            exp = svc.create_expense(db, **payload.model_dump())
        return ok(_out(exp), status_code=201)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{expense_id:int}/pay")
def pay_expense(expense_id: int, payload: ExpensePayIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            exp = svc.pay_expense(db, expense_id, **payload.model_dump())
        return ok(_out(exp))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.delete("/{expense_id:int}")
def delete_expense(expense_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            exp = svc.delete_expense(db, expense_id)
        return ok({"id": exp.id, "deleted": True})
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)
