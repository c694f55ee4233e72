# FILE: petcare/api/routes_journal.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from petcare.api.deps import get_db
from petcare.api.response import fail, ok, safe_err
from petcare.schemas.accounting import JournalEntryCreate, JournalEntryOut, JournalEntryUpdate, VoidIn
from petcare.services.errors import PetcareError
from petcare.services.journal_engine import (
    create_manual_entry,
    delete_entry,
    get_by_source,
    get_entry,
    list_entries,
    post_entry,
    trial_balance,
    update_manual_entry,
    void_entry,
)

router = APIRouter(prefix="/journal-entries", tags=["journal"])


def _out(entry):
    return JournalEntryOut.model_validate(entry).model_dump()


@router.get("")
def get_entries(
    status: Optional[str] = Query(None),
    source_type: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    q: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    try:
        rows = list_entries(
            db, status=status, source_type=source_type, date_from=date_from,
            date_to=date_to, q=q, limit=limit, offset=offset,
        )
        return ok([_out(x) for x in rows])
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.get("/trial-balance")
def get_trial_balance(
    as_of: Optional[date] = Query(None),
    branch_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    try:
        return ok(trial_balance(db, as_of=as_of, branch_id=branch_id))
    except Exception as e:
        return safe_err(e)


@router.get("/by-source/{source_type}/{source_id:int}")
def get_entries_by_source(source_type: str, source_id: int, db: Session = Depends(get_db)):
    try:
        return ok([_out(x) for x in get_by_source(db, source_type.upper(), source_id)])
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.get("/{entry_id:int}")
def get_one(entry_id: int, db: Session = Depends(get_db)):
    try:
        return ok(_out(get_entry(db, entry_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("")
def create(payload: JournalEntryCreate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            entry = create_manual_entry(
                db,
                journal_date=payload.journal_date,
                description=payload.description,
                lines=payload.lines,
                journal_number=payload.journal_number,
            )
        return ok(_out(entry), status_code=201)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.put("/{entry_id:int}")
def update(entry_id: int, payload: JournalEntryUpdate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            entry = update_manual_entry(
                db,
                entry_id,
                journal_date=payload.journal_date,
                description=payload.description,
                lines=payload.lines,
            )
        return ok(_out(entry))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{entry_id:int}/post")
def post(entry_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            entry = post_entry(db, entry_id)
        return ok(_out(entry))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{entry_id:int}/void")
def void(entry_id: int, payload: VoidIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            entry = void_entry(db, entry_id, payload.reason)
        return ok(_out(entry))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.delete("/{entry_id:int}")
def delete(entry_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            entry = delete_entry(db, entry_id)
        return ok({"id": entry.id, "deleted": True})
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)
