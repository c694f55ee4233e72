# FILE: petcare/api/routes_periods.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from petcare.api.deps import get_db
from petcare.api.response import fail, ok, safe_err
from petcare.schemas.accounting import JournalEntryOut, PeriodBalanceOut, PeriodCreate, PeriodOut, YearEndCloseIn
from petcare.services.errors import PetcareError
from petcare.services.periods import (
    close_period,
    create_period,
    get_period,
    get_period_balances,
    list_periods,
    lock_period,
    reopen_period,
    year_end_close,
)

router = APIRouter(prefix="/periods", tags=["periods"])


def _out(p):
    return PeriodOut.model_validate(p).model_dump()


@router.get("")
def get_periods(year: Optional[int] = Query(None), db: Session = Depends(get_db)):
    try:
        return ok([_out(p) for p in list_periods(db, year)])
    except Exception as e:
        return safe_err(e)


@router.get("/{period_id:int}")
def get_one(period_id: int, db: Session = Depends(get_db)):
    try:
        return ok(_out(get_period(db, period_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.get("/{period_id:int}/balances")
def get_balances(period_id: int, branch_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    try:
        rows = get_period_balances(db, period_id, branch_id)
        return ok([PeriodBalanceOut.model_validate(r).model_dump() for r in rows])
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("")
def create(payload: PeriodCreate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            p = create_period(db, payload.year, payload.month, payload.notes)
        return ok(_out(p), status_code=201)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{period_id:int}/close")
def close(period_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            p = close_period(db, period_id)
        return ok(_out(p))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{period_id:int}/lock")
def lock(period_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            p = lock_period(db, period_id)
        return ok(_out(p))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{period_id:int}/reopen")
def reopen(period_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            p = reopen_period(db, period_id)
        return ok(_out(p))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/year-end-close")
def close_year(payload: YearEndCloseIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = year_end_close(db, payload.year)
        entry = res["journal_entry"]
        return ok({
            "net_income": res["net_income"],
            "journal_entry": JournalEntryOut.model_validate(entry).model_dump() if entry else None,
        })
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)
