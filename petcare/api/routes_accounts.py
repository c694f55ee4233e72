# FILE: petcare/api/routes_accounts.py
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from petcare.api.deps import get_db
from petcare.api.response import fail, ok, safe_err
from petcare.schemas.accounting import AccountCreate, AccountOut, AccountUpdate
from petcare.services.accounts import (
    AccountRepository,
    account_tree,
    create_account,
    delete_account,
    get_account_balance,
    list_accounts,
    seed_default_chart,
    update_account,
)
from petcare.services.errors import PetcareError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.get("")
def get_accounts(
    account_type: Optional[str] = Query(None),
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
):
    try:
        rows = list_accounts(db, account_type=account_type, include_inactive=include_inactive)
        return ok([AccountOut.model_validate(a).model_dump() for a in rows])
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.get("/tree")
def get_account_tree(db: Session = Depends(get_db)):
    try:
        return ok(account_tree(db))
    except Exception as e:
        return safe_err(e)


@router.get("/{account_id:int}")
def get_account(account_id: int, db: Session = Depends(get_db)):
    try:
        return ok(AccountOut.model_validate(AccountRepository(db).get(account_id)).model_dump())
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.get("/{account_id:int}/balance")
def get_balance(
    account_id: int,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    branch_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    try:
        return ok(get_account_balance(db, account_id, start_date, end_date, branch_id))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("")
def create(payload: AccountCreate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            acc = create_account(db, **payload.model_dump())
        return ok(AccountOut.model_validate(acc).model_dump(), status_code=201)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.put("/{account_id:int}")
def update(account_id: int, payload: AccountUpdate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            acc = update_account(db, account_id, **payload.model_dump(exclude_unset=True))
        return ok(AccountOut.model_validate(acc).model_dump())
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.delete("/{account_id:int}")
def delete(account_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            acc = delete_account(db, account_id)
        return ok({"id": acc.id, "deleted": True})
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/seed")
def seed(db: Session = Depends(get_db)):
    try:
        with db.begin():
            added = seed_default_chart(db)
        logger.info("Chart of accounts seeded (%s new)", added)
        return ok({"added": added})
    except Exception as e:
        return safe_err(e)
