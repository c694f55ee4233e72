# FILE: petcare/api/routes_purchase_orders.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from petcare.api.deps import get_db
from petcare.api.response import fail, ok, safe_err
from petcare.schemas.purchasing import (
    CancelPOIn,
    POCreate,
    POItemIn,
    POItemUpdate,
    POOut,
    POUpdate,
    ReceiveIn,
)
from petcare.schemas.bank import BankTransactionOut, SupplierPaymentIn
from petcare.services import purchase_service as svc
from petcare.services.errors import PetcareError

router = APIRouter(prefix="/purchase-orders", tags=["purchase-orders"])


def _out(po):
    return POOut.model_validate(po).model_dump()


@router.get("")
def list_purchase_orders(
    branch_id: Optional[int] = Query(None),
    supplier_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    try:
        rows = svc.list_purchase_orders(
            db, branch_id=branch_id, supplier_id=supplier_id, status=status, limit=limit, offset=offset,
        )
        return ok([_out(po) for po in rows])
    except Exception as e:
        return safe_err(e)


@router.get("/payables")
def list_payables(supplier_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    try:
        rows = svc.list_payables(db, supplier_id=supplier_id)
        return ok([{**_out(r["purchase_order"]), "outstanding": r["outstanding"]} for r in rows])
    except Exception as e:
        return safe_err(e)


@router.get("/{po_id:int}")
def get_purchase_order(po_id: int, db: Session = Depends(get_db)):
    try:
        return ok(_out(svc.get_purchase_order(db, po_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("")
def create_po(payload: POCreate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            po = svc.create_purchase_order(db, **payload.model_dump())
        return ok(_out(po), status_code=201)
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.put("/{po_id:int}")
def update_po(po_id: int, payload: POUpdate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            po = svc.update_purchase_order(db, po_id, **payload.model_dump(exclude_unset=True))
        return ok(_out(po))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{po_id:int}/items")
def add_item(po_id: int, payload: POItemIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            svc.add_item(db, po_id, **payload.model_dump())
        return ok(_out(svc.get_purchase_order(db, po_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.put("/{po_id:int}/items/{item_id:int}")
def update_item(po_id: int, item_id: int, payload: POItemUpdate, db: Session = Depends(get_db)):
    try:
        with db.begin():
            svc.update_item(db, po_id, item_id, **payload.model_dump(exclude_unset=True))
        return ok(_out(svc.get_purchase_order(db, po_id)))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.delete("/{po_id:int}/items/{item_id:int}")
def remove_item(po_id: int, item_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            po = svc.remove_item(db, po_id, item_id)
        return ok(_out(po))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{po_id:int}/submit")
def submit(po_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            po = svc.submit_purchase_order(db, po_id)
        return ok(_out(po))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{po_id:int}/receive")
def receive(po_id: int, payload: ReceiveIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = svc.receive_purchase_order(db, po_id, payload.items, paid=payload.paid)
        entry = res["journal_entry"]
        return ok({
            "purchase_order": _out(res["purchase_order"]),
            "journal_entry_id": entry.id if entry else None,
        })
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{po_id:int}/cancel")
def cancel(po_id: int, payload: CancelPOIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            po = svc.cancel_purchase_order(db, po_id, payload.reason)
        return ok(_out(po))
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)


@router.post("/{po_id:int}/payments")
def pay(po_id: int, payload: SupplierPaymentIn, db: Session = Depends(get_db)):
    try:
        with db.begin():
            res = svc.pay_purchase_order(db, po_id, **payload.model_dump())
        entry = res["journal_entry"]
        bank_tx = res["bank_transaction"]
        return ok({
            "purchase_order": _out(res["purchase_order"]),
            "amount": res["amount"],
            "outstanding": res["outstanding"],
            "journal_entry_id": entry.id if entry else None,
            "bank_transaction": BankTransactionOut.model_validate(bank_tx).model_dump() if bank_tx else None,
        })
    except PetcareError as e:
        return fail(e)
    except Exception as e:
        return safe_err(e)
